"""
Coordinate mapping between the three spaces the editor works in.

Source space: pixels of the loaded image.
Transformed space: the flipped + rotated image inside its axis-aligned
bounding box (size from ``rotated_bounds``).
Screen space: container-local display pixels, where the transformed image is
drawn centered, scaled by ``edit_zoom`` and offset by ``edit_pan``.

Everything here is a pure function. No raster is produced; the compositor
uses the same functions at Apply time so preview and output agree.
"""
from __future__ import annotations

import math
from typing import NamedTuple, Optional, Tuple

from core.state import CropBox, EditState, Pan

Size = Tuple[float, float]
Point = Tuple[float, float]


class SourceRect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


def composed_angle(rotation: float, straighten_angle: float) -> float:
    """Rotation and straighten angle summed in degrees, returned in radians."""
    return math.radians(float(rotation) + float(straighten_angle))


def rotated_bounds(width: float, height: float, angle_rad: float) -> Tuple[float, float]:
    abs_cos = abs(math.cos(angle_rad))
    abs_sin = abs(math.sin(angle_rad))
    new_w = width * abs_cos + height * abs_sin
    new_h = width * abs_sin + height * abs_cos
    return (new_w, new_h)


def transformed_size(image_size: Size, state: EditState) -> Tuple[float, float]:
    w, h = image_size
    return rotated_bounds(w, h, composed_angle(state.rotation, state.straighten_angle))


def raster_size(bounds: Size) -> Tuple[int, int]:
    # Bounds carry float noise from cos/sin (e.g. 1e-14 over a whole pixel)
    bw, bh = bounds
    return (max(1, int(math.floor(bw + 1e-6))), max(1, int(math.floor(bh + 1e-6))))


def is_degenerate(container_size: Size) -> bool:
    cw, ch = container_size
    return not (cw > 0 and ch > 0)


def display_origin(
    container_size: Size,
    natural_size: Size,
    zoom: float,
    pan: Pan,
) -> Tuple[float, float]:
    cw, ch = container_size
    nw, nh = natural_size
    disp_w = nw * zoom
    disp_h = nh * zoom
    return ((cw - disp_w) * 0.5 + pan.x, (ch - disp_h) * 0.5 + pan.y)


def crop_box_to_source_rect(
    crop_box: CropBox,
    container_size: Size,
    natural_size: Size,
    bounds: Size,
    zoom: float,
    pan: Pan,
) -> SourceRect:
    """
    Map a screen-space crop box onto the transformed raster.
    ``natural_size`` is the unzoomed display size of the preview image,
    ``bounds`` the transformed raster size it stands for.
    """
    nw, nh = natural_size
    new_w, new_h = bounds
    disp_w = nw * zoom
    disp_h = nh * zoom
    ox, oy = display_origin(container_size, natural_size, zoom, pan)
    left, top, cw, ch = crop_box.rect()

    sx = ((left - ox) / disp_w) * new_w
    sy = ((top - oy) / disp_h) * new_h
    sw = (cw / disp_w) * new_w
    sh = (ch / disp_h) * new_h
    return SourceRect(sx, sy, sw, sh)


def viewport_to_source_rect(
    container_size: Size,
    bounds: Size,
    zoom: float,
    pan: Pan,
) -> SourceRect:
    cw, ch = container_size
    new_w, new_h = bounds
    sw = cw / zoom
    sh = ch / zoom
    sx = (new_w - sw) / 2.0 - (pan.x / zoom)
    sy = (new_h - sh) / 2.0 - (pan.y / zoom)
    return SourceRect(sx, sy, sw, sh)


def clamp_min_size(rect: SourceRect) -> SourceRect:
    return SourceRect(rect.x, rect.y, max(1.0, rect.width), max(1.0, rect.height))


def resolve_source_rect(
    state: EditState,
    image_size: Size,
    container_size: Size,
    use_crop: bool = True,
) -> SourceRect:
    """
    The rectangle of the transformed raster that Apply will output.
    Uses the crop box when there is one (and ``use_crop``), otherwise the
    current viewport. The preview draws the transformed bounding box, so that
    box is also the natural display size.
    """
    bounds = transformed_size(image_size, state)
    if use_crop and state.crop_box is not None:
        rect = crop_box_to_source_rect(
            state.crop_box, container_size, bounds, bounds, state.edit_zoom, state.edit_pan
        )
    else:
        rect = viewport_to_source_rect(container_size, bounds, state.edit_zoom, state.edit_pan)
    return clamp_min_size(rect)


def output_size(rect: SourceRect) -> Tuple[int, int]:
    return (max(1, int(round(rect.width))), max(1, int(round(rect.height))))


def fit_zoom(container_size: Size, image_size: Size, margin: float = 0.95) -> Optional[float]:
    """Zoom that fits the image inside the container, or None if nothing can be measured."""
    if is_degenerate(container_size):
        return None
    iw, ih = image_size
    if iw <= 0 or ih <= 0:
        return None
    cw, ch = container_size
    zoom = min(cw / iw, ch / ih) * margin
    if not math.isfinite(zoom) or zoom <= 0:
        return None
    return zoom


def wheel_zoom(
    current: float,
    delta_y: float,
    rate: float = 0.01,
    zoom_min: float = 0.1,
    zoom_max: float = 10.0,
) -> float:
    new_zoom = current * (1.0 - float(delta_y) * rate)
    return min(max(zoom_min, new_zoom), zoom_max)


def screen_to_image_point(
    point: Point,
    container_size: Size,
    image_size: Size,
    zoom: float,
    pan: Pan,
) -> Optional[Point]:
    """Screen point to image pixel coordinates for an untransformed, centered view."""
    if is_degenerate(container_size) or zoom <= 0:
        return None
    ox, oy = display_origin(container_size, image_size, zoom, pan)
    return ((point[0] - ox) / zoom, (point[1] - oy) / zoom)


def image_to_screen_rect(
    container_size: Size,
    natural_size: Size,
    zoom: float,
    pan: Pan,
) -> Tuple[float, float, float, float]:
    """Where the preview is drawn: (x, y, w, h) in container-local pixels."""
    ox, oy = display_origin(container_size, natural_size, zoom, pan)
    return (ox, oy, natural_size[0] * zoom, natural_size[1] * zoom)
