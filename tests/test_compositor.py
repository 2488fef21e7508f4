from __future__ import annotations

import unittest

import numpy as np
from PIL import Image

from core.compositor import (
    RenderError,
    apply_edit_state,
    render_preview,
    render_transformed,
    upscale_for_download,
)
from core.state import CropBox, EditState, FilterState, FilterType


def _halves(w: int, h: int) -> Image.Image:
    """Left half red, right half blue."""
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[..., 3] = 255
    arr[:, : w // 2, 0] = 255
    arr[:, w // 2:, 2] = 255
    return Image.fromarray(arr)


class CompositorTests(unittest.TestCase):
    def test_quarter_turn_swaps_dimensions(self) -> None:
        out = render_transformed(_halves(4, 2), EditState(rotation=90))
        self.assertEqual(out.size, (2, 4))
        out = render_transformed(_halves(4, 2), EditState(rotation=180))
        self.assertEqual(out.size, (4, 2))

    def test_flip_mirrors_horizontally(self) -> None:
        out = np.array(render_transformed(_halves(4, 2), EditState(scale_x=-1), high_quality=False))
        self.assertEqual(tuple(out[0, 0]), (0, 0, 255, 255))
        self.assertEqual(tuple(out[0, 3]), (255, 0, 0, 255))

    def test_straighten_grows_canvas_with_transparent_corners(self) -> None:
        img = Image.new("RGBA", (40, 20), (10, 20, 30, 255))
        out = render_transformed(img, EditState(straighten_angle=10))
        self.assertGreater(out.width, 40)
        self.assertGreater(out.height, 20)
        self.assertEqual(out.getpixel((0, 0))[3], 0)
        self.assertEqual(out.getpixel((out.width // 2, out.height // 2)), (10, 20, 30, 255))

    def test_apply_crop_output_size(self) -> None:
        img = Image.new("RGBA", (100, 50), (0, 128, 0, 255))
        st = EditState(crop_box=CropBox(60, 30, 110, 70))
        res = apply_edit_state(img, st, (200, 100))
        self.assertEqual(res.image.size, (50, 40))
        self.assertEqual((res.source_rect.x, res.source_rect.y), (10.0, 5.0))
        self.assertEqual(res.image.getpixel((25, 20)), (0, 128, 0, 255))

    def test_apply_viewport_output_size(self) -> None:
        img = Image.new("RGBA", (100, 50), (0, 128, 0, 255))
        res = apply_edit_state(img, EditState(edit_zoom=2.0), (200, 100))
        self.assertEqual(res.image.size, (100, 50))

    def test_viewport_outside_image_is_transparent(self) -> None:
        img = Image.new("RGBA", (100, 50), (0, 128, 0, 255))
        res = apply_edit_state(img, EditState(edit_zoom=1.0), (200, 100))
        self.assertEqual(res.image.size, (200, 100))
        self.assertEqual(res.image.getpixel((2, 2))[3], 0)
        self.assertEqual(res.image.getpixel((100, 50)), (0, 128, 0, 255))

    def test_apply_runs_filter_last(self) -> None:
        img = Image.new("RGBA", (10, 10), (255, 0, 0, 255))
        st = EditState(edit_zoom=1.0, filter=FilterState(FilterType.GRAYSCALE, 100))
        res = apply_edit_state(img, st, (10, 10))
        r, g, b, a = res.image.getpixel((5, 5))
        self.assertEqual((r, g, b, a), (54, 54, 54, 255))

    def test_missing_source_raises_render_error(self) -> None:
        with self.assertRaises(RenderError):
            apply_edit_state(None, EditState(), (100, 100))

    def test_preview_matches_transformed_size(self) -> None:
        img = _halves(6, 4)
        st = EditState(rotation=90, filter=FilterState(FilterType.SEPIA, 80))
        self.assertEqual(render_preview(img, st).size, (4, 6))
        self.assertIsNone(render_preview(None, st))

    def test_upscale_doubles(self) -> None:
        out = upscale_for_download(Image.new("RGBA", (7, 3), (50, 60, 70, 128)))
        self.assertEqual(out.size, (14, 6))
        self.assertLessEqual(abs(out.getpixel((3, 1))[3] - 128), 1)


if __name__ == "__main__":
    unittest.main()
