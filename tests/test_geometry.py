from __future__ import annotations

import math
import unittest

from core.geometry import (
    SourceRect,
    crop_box_to_source_rect,
    fit_zoom,
    image_to_screen_rect,
    output_size,
    raster_size,
    resolve_source_rect,
    rotated_bounds,
    screen_to_image_point,
    viewport_to_source_rect,
    wheel_zoom,
)
from core.state import CropBox, EditState, Pan


class GeometryTests(unittest.TestCase):
    def test_rotated_bounds(self) -> None:
        w, h = rotated_bounds(100, 50, math.radians(90))
        self.assertAlmostEqual(w, 50)
        self.assertAlmostEqual(h, 100)
        w, h = rotated_bounds(100, 100, math.radians(45))
        self.assertAlmostEqual(w, 100 * math.sqrt(2))
        self.assertEqual(raster_size(rotated_bounds(4, 2, math.radians(90))), (2, 4))

    def test_crop_inside_image_maps_inside_raster(self) -> None:
        container = (200.0, 100.0)
        bounds = (100.0, 50.0)
        # image drawn at (50, 25)-(150, 75)
        box = CropBox(60, 30, 110, 70)
        rect = crop_box_to_source_rect(box, container, bounds, bounds, 1.0, Pan())
        self.assertEqual(rect, SourceRect(10.0, 5.0, 50.0, 40.0))
        self.assertGreaterEqual(rect.x, 0)
        self.assertGreaterEqual(rect.y, 0)
        self.assertLessEqual(rect.x + rect.width, bounds[0])
        self.assertLessEqual(rect.y + rect.height, bounds[1])

    def test_crop_box_drawn_backwards(self) -> None:
        container = (200.0, 100.0)
        bounds = (100.0, 50.0)
        fwd = crop_box_to_source_rect(CropBox(60, 30, 110, 70), container, bounds, bounds, 2.0, Pan(3, -4))
        back = crop_box_to_source_rect(CropBox(110, 70, 60, 30), container, bounds, bounds, 2.0, Pan(3, -4))
        self.assertEqual(fwd, back)

    def test_viewport_rect(self) -> None:
        rect = viewport_to_source_rect((200, 100), (100, 50), 2.0, Pan())
        self.assertEqual(rect, SourceRect(0.0, 0.0, 100.0, 50.0))
        rect = viewport_to_source_rect((200, 100), (100, 50), 2.0, Pan(20, 0))
        self.assertEqual(rect.x, -10.0)

    def test_zero_size_crop_is_clamped(self) -> None:
        st = EditState(crop_box=CropBox(80, 40, 80, 40))
        rect = resolve_source_rect(st, (100, 50), (200, 100))
        self.assertEqual((rect.width, rect.height), (1.0, 1.0))
        self.assertEqual(output_size(rect), (1, 1))

    def test_crop_ignored_when_disabled(self) -> None:
        st = EditState(crop_box=CropBox(60, 30, 110, 70))
        rect = resolve_source_rect(st, (100, 50), (200, 100), use_crop=False)
        self.assertEqual((rect.width, rect.height), (200.0, 100.0))

    def test_fit_zoom(self) -> None:
        self.assertAlmostEqual(fit_zoom((200, 100), (100, 100)), 0.95)
        self.assertIsNone(fit_zoom((0, 100), (100, 100)))
        self.assertIsNone(fit_zoom((100, 0), (100, 100)))

    def test_wheel_zoom_clamps(self) -> None:
        self.assertAlmostEqual(wheel_zoom(1.0, -10), 1.1)
        self.assertAlmostEqual(wheel_zoom(1.0, 10), 0.9)
        self.assertEqual(wheel_zoom(1.0, -1000), 10.0)
        self.assertEqual(wheel_zoom(1.0, 1000), 0.1)

    def test_screen_to_image_point(self) -> None:
        pt = screen_to_image_point((60, 30), (200, 100), (100, 50), 1.0, Pan())
        self.assertEqual(pt, (10.0, 5.0))
        pt = screen_to_image_point((60, 30), (200, 100), (100, 50), 2.0, Pan(10, 0))
        self.assertEqual(pt, (25.0, 15.0))
        self.assertIsNone(screen_to_image_point((1, 1), (0, 0), (100, 50), 1.0, Pan()))

    def test_image_to_screen_rect(self) -> None:
        self.assertEqual(image_to_screen_rect((200, 100), (100, 50), 1.0, Pan(5, 5)), (55.0, 30.0, 100.0, 50.0))


if __name__ == "__main__":
    unittest.main()
