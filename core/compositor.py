from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from core.filters import apply_download_enhance_rgba, apply_filter_rgba
from core.geometry import (
    SourceRect,
    composed_angle,
    output_size,
    raster_size,
    resolve_source_rect,
    rotated_bounds,
)
from core.state import EditState, FilterType

logger = logging.getLogger(__name__)


class RenderError(RuntimeError):
    pass


def pil_to_np_rgba(img: Image.Image) -> np.ndarray:
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError("Expected RGBA image")
    return arr


def np_rgba_to_pil(arr: np.ndarray) -> Image.Image:
    return Image.fromarray(arr)


def _resample(high_quality: bool) -> Image.Resampling:
    return Image.Resampling.BICUBIC if high_quality else Image.Resampling.BILINEAR


def render_transformed(
    src_rgba_pil: Image.Image,
    state: EditState,
    high_quality: bool = True,
) -> Image.Image:
    """
    Flip, then rotate by rotation + straighten about the image center, into a
    raster the size of the rotated bounding box. Uncovered corners are transparent.
    """
    w, h = src_rgba_pil.size
    if w <= 0 or h <= 0:
        raise RenderError("Source image is empty")

    angle = composed_angle(state.rotation, state.straighten_angle)
    bounds = rotated_bounds(w, h, angle)
    out_w, out_h = raster_size(bounds)
    # Center of the box; uses the float bounds so preview and output agree
    bcx, bcy = bounds[0] * 0.5, bounds[1] * 0.5
    sx = -1.0 if state.scale_x < 0 else 1.0
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)

    # Inverse map, output pixel -> source pixel: undo rotation, then undo flip
    a = sx * cos_a
    b = sx * sin_a
    c = -a * bcx - b * bcy + w * 0.5
    d = -sin_a
    e = cos_a
    f = sin_a * bcx - cos_a * bcy + h * 0.5

    try:
        return src_rgba_pil.convert("RGBA").transform(
            (out_w, out_h),
            Image.Transform.AFFINE,
            (a, b, c, d, e, f),
            resample=_resample(high_quality),
            fillcolor=(0, 0, 0, 0),
        )
    except (ValueError, MemoryError, OSError) as exc:
        raise RenderError(f"Could not render transformed image: {exc}") from exc


def draw_sub_rect(
    transformed: Image.Image,
    rect: SourceRect,
    out_size: Tuple[int, int],
    high_quality: bool = True,
) -> Image.Image:
    """Scale ``rect`` of ``transformed`` into a new raster of ``out_size``; outside the raster is transparent."""
    box = (rect.x, rect.y, rect.x + rect.width, rect.y + rect.height)
    try:
        return transformed.transform(
            out_size,
            Image.Transform.EXTENT,
            box,
            resample=_resample(high_quality),
            fillcolor=(0, 0, 0, 0),
        )
    except (ValueError, MemoryError, OSError) as exc:
        raise RenderError(f"Could not draw output: {exc}") from exc


@dataclass
class ApplyResult:
    image: Image.Image
    source_rect: SourceRect


def apply_edit_state(
    src_rgba_pil: Image.Image,
    state: EditState,
    container_size: Tuple[float, float],
    use_crop: bool = True,
    high_quality: bool = True,
) -> ApplyResult:
    """
    Render the final raster for ``state``:
    transformed raster -> source rectangle (crop box or viewport) ->
    output size -> filtered output.
    """
    if src_rgba_pil is None:
        raise RenderError("No image to render")

    transformed = render_transformed(src_rgba_pil, state, high_quality=high_quality)
    rect = resolve_source_rect(state, src_rgba_pil.size, container_size, use_crop=use_crop)
    size = output_size(rect)
    out = draw_sub_rect(transformed, rect, size, high_quality=high_quality)

    if FilterType(state.filter.type) is not FilterType.NONE:
        out = np_rgba_to_pil(apply_filter_rgba(pil_to_np_rgba(out), state.filter))

    logger.info(
        "applied edits: rect=(%.1f, %.1f, %.1f, %.1f) out=%dx%d filter=%s",
        rect.x, rect.y, rect.width, rect.height, size[0], size[1], state.filter.type.value,
    )
    return ApplyResult(image=out, source_rect=rect)


def render_preview(
    src_rgba_pil: Optional[Image.Image],
    state: EditState,
) -> Optional[Image.Image]:
    """Transformed + filtered image at full resolution, for the live edit preview."""
    if src_rgba_pil is None:
        return None
    img = render_transformed(src_rgba_pil, state, high_quality=False)
    if FilterType(state.filter.type) is not FilterType.NONE:
        img = np_rgba_to_pil(apply_filter_rgba(pil_to_np_rgba(img), state.filter))
    return img


def upscale_for_download(img: Image.Image, factor: int = 2) -> Image.Image:
    w, h = img.size
    scaled = img.convert("RGBA").resize(
        (max(1, w * factor), max(1, h * factor)), resample=Image.Resampling.LANCZOS
    )
    return np_rgba_to_pil(apply_download_enhance_rgba(pil_to_np_rgba(scaled)))
