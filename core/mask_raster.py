from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw

logger = logging.getLogger(__name__)

# Alpha the brush leaves behind (the on-screen highlight is 60% opaque)
PAINT_ALPHA = 153

PAINTED_RGBA = (0, 0, 0, 255)
UNTOUCHED_RGBA = (255, 255, 255, 255)


class MaskRaster:
    """
    Freehand selection mask the size of the image.
    Only the alpha value is stored: 0 = untouched, >0 = painted.
    """

    def __init__(self, size: Tuple[int, int]):
        w, h = int(size[0]), int(size[1])
        if w <= 0 or h <= 0:
            raise ValueError("mask size must be positive")
        self._img = Image.new("L", (w, h), 0)
        self._draw = ImageDraw.Draw(self._img)
        self._last: Optional[Tuple[float, float]] = None

    @property
    def size(self) -> Tuple[int, int]:
        return self._img.size

    @property
    def alpha(self) -> np.ndarray:
        return np.array(self._img, dtype=np.uint8)

    @property
    def stroking(self) -> bool:
        return self._last is not None

    def is_empty(self) -> bool:
        return self._img.getbbox() is None

    def begin_stroke(self, x: float, y: float) -> None:
        self._last = (float(x), float(y))

    def stroke_to(self, x: float, y: float, brush_size: float, zoom: float = 1.0) -> None:
        if self._last is None:
            return
        pt = (float(x), float(y))
        self.paint_segment(self._last, pt, brush_size, zoom)
        self._last = pt

    def end_stroke(self) -> None:
        self._last = None

    def paint_segment(
        self,
        p0: Tuple[float, float],
        p1: Tuple[float, float],
        brush_size: float,
        zoom: float = 1.0,
    ) -> None:
        # Brush size is in screen pixels; dividing by zoom keeps it constant on screen
        width = float(brush_size) / max(1e-6, float(zoom))
        r = width * 0.5
        line_w = max(1, int(round(width)))
        self._draw.line([p0, p1], fill=PAINT_ALPHA, width=line_w, joint="curve")
        # Round caps
        for cx, cy in (p0, p1):
            self._draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=PAINT_ALPHA)

    def clear(self) -> None:
        self._img.paste(0, (0, 0, self._img.width, self._img.height))
        self._last = None

    def export(self) -> Image.Image:
        """Two-tone inpainting mask: painted -> opaque black, untouched -> opaque white."""
        return export_inpainting_mask(self.alpha)


def export_inpainting_mask(alpha: np.ndarray) -> Image.Image:
    if alpha.ndim != 2:
        raise ValueError("alpha must be HxW")
    painted = alpha > 0
    h, w = alpha.shape
    out = np.empty((h, w, 4), dtype=np.uint8)
    out[...] = UNTOUCHED_RGBA
    out[painted] = PAINTED_RGBA
    logger.debug("exported mask %dx%d with %d painted px", w, h, int(painted.sum()))
    return Image.fromarray(out)
