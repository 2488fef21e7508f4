from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

RGB = Tuple[int, int, int]

DEFAULT_TOLERANCE = 20


def detect_background_colors(rgba: np.ndarray, tolerance: float) -> List[RGB]:
    """
    Top-left pixel is the background. A second color is taken from the first
    pixel of the top row that differs from it by more than ``tolerance`` on
    any channel (two-tone checkerboard transparency placeholders).
    """
    if rgba.ndim != 3 or rgba.shape[2] < 3:
        raise ValueError("rgba must be HxWxC with at least 3 channels")
    if rgba.shape[0] == 0 or rgba.shape[1] == 0:
        return []

    row = rgba[0, :, :3].astype(np.int32)
    color1 = row[0]
    colors: List[RGB] = [tuple(int(v) for v in color1)]

    diff = np.abs(row[1:] - color1) > tolerance
    hits = np.flatnonzero(np.any(diff, axis=1))
    if hits.size:
        colors.append(tuple(int(v) for v in row[1 + int(hits[0])]))
    return colors


def build_color_key_remove_mask(
    rgba: np.ndarray,
    palette_rgbs: List[RGB],
    tolerance: float,
) -> np.ndarray:
    """True where a pixel is strictly closer than ``tolerance`` (RGB euclidean) to any palette color."""
    if rgba.dtype != np.uint8 or rgba.ndim != 3 or rgba.shape[2] != 4:
        raise ValueError("rgba must be HxWx4 uint8")

    remove = np.zeros((rgba.shape[0], rgba.shape[1]), dtype=bool)
    if not palette_rgbs or tolerance <= 0:
        return remove

    rgb = rgba[..., :3].astype(np.float64)
    tol2 = float(tolerance) * float(tolerance)

    for (R, G, B) in palette_rgbs:
        dr = rgb[..., 0] - float(R)
        dg = rgb[..., 1] - float(G)
        db = rgb[..., 2] - float(B)
        d2 = dr * dr + dg * dg + db * db
        remove |= (d2 < tol2)

    return remove


def apply_color_key_alpha(
    rgba: np.ndarray,
    palette_rgbs: List[RGB],
    tolerance: float,
) -> np.ndarray:
    """
    rgba: HxWx4 uint8
    Returns: new rgba with alpha set to 0 for pixels close to any palette color.
    """
    remove = build_color_key_remove_mask(rgba, palette_rgbs, tolerance)
    out = rgba.copy()
    out[..., 3][remove] = 0
    return out


def make_background_transparent(img: Image.Image, tolerance: float = DEFAULT_TOLERANCE) -> Image.Image:
    """
    Chroma-key the sampled border color(s) out of ``img``.

    The tolerance is compared directly with the RGB distance (0..~441), so a
    0-100 slider only covers the lower part of that range. Interior pixels that
    match the background are removed too.
    """
    rgba = np.array(img.convert("RGBA"), dtype=np.uint8)
    colors = detect_background_colors(rgba, tolerance)
    out = apply_color_key_alpha(rgba, colors, tolerance)
    logger.debug("chroma key colors=%s tolerance=%s", colors, tolerance)
    return Image.fromarray(out)
