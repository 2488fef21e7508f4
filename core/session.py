from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Tuple

from PIL import Image

from core.compositor import apply_edit_state
from core.geometry import fit_zoom, is_degenerate, screen_to_image_point, wheel_zoom
from core.history import EditHistory
from core.mask_color_key import make_background_transparent
from core.mask_raster import MaskRaster
from core.state import (
    ActionKind,
    CropBox,
    EditorMode,
    EditorSettings,
    EditState,
    FilterState,
    FilterType,
    Pan,
)

logger = logging.getLogger(__name__)

# Intensity a filter starts at when it is first selected
DEFAULT_FILTER_INTENSITY = {
    FilterType.NONE: 100,
    FilterType.SEPIA: 80,
    FilterType.GRAYSCALE: 100,
    FilterType.VINTAGE: 100,
}


class EditorSession:
    """
    Owns the loaded image and whichever of edit/mask mode is active.

    Only one mode is active at a time; entering one mode tears down the
    state of the other. All gesture handlers are no-ops outside their mode.
    """

    def __init__(self, settings: Optional[EditorSettings] = None):
        self.settings = settings or EditorSettings()
        self.mode = EditorMode.VIEWING
        self.image: Optional[Image.Image] = None
        self.container_size: Tuple[float, float] = (0.0, 0.0)

        # View transform outside edit mode (viewing and masking)
        self.view_zoom = 1.0
        self.view_pan = Pan()

        self.history: Optional[EditHistory] = None
        self.mask: Optional[MaskRaster] = None

        self.cropping = False
        self.drawing_crop: Optional[CropBox] = None
        self.filters_panel_open = False

        self._pan_anchor: Optional[Tuple[float, float]] = None
        self._live_pan: Optional[Pan] = None

    # ---------------------------
    # Image / layout
    # ---------------------------
    @property
    def has_image(self) -> bool:
        return self.image is not None

    def load_image(self, img: Image.Image) -> None:
        self._close_edit()
        self._close_mask()
        self.mode = EditorMode.VIEWING
        self.image = img.convert("RGBA")
        self.fit_all()

    def set_container_size(self, width: float, height: float) -> None:
        self.container_size = (float(width), float(height))
        if not self.has_image:
            return
        if self.mode is EditorMode.EDITING:
            self.fit_for_editing()
        else:
            self.fit_all()

    def fit_all(self) -> bool:
        if self.image is None:
            return False
        zoom = fit_zoom(self.container_size, self.image.size, self.settings.fit_margin)
        if zoom is None:
            logger.debug("fit skipped: container %s not measured", self.container_size)
            return False
        self.view_zoom = zoom
        self.view_pan = Pan()
        return True

    def fit_for_editing(self) -> bool:
        if self.image is None or self.history is None:
            return False
        zoom = fit_zoom(self.container_size, self.image.size, self.settings.fit_margin)
        if zoom is None:
            logger.debug("edit fit skipped: container %s not measured", self.container_size)
            return False
        self.history.rebase_initial(edit_zoom=zoom, edit_pan=Pan())
        return True

    def fit_to_height(self) -> bool:
        """Scale the view so the image fills the container height, centered."""
        if self.image is None or self.editing:
            return False
        ch = self.container_size[1]
        if ch <= 0:
            logger.debug("fit to height skipped: container %s not measured", self.container_size)
            return False
        zoom = ch / self.image.height
        self.view_zoom = zoom if zoom > 0 else 1.0
        self.view_pan = Pan()
        return True

    def set_view_zoom(self, zoom: float) -> bool:
        """Fixed zoom preset (50%, 100%, ...), recentered."""
        if self.image is None or self.editing:
            return False
        self.view_zoom = self.settings.clamp_zoom(zoom)
        self.view_pan = Pan()
        return True

    # ---------------------------
    # Mode transitions
    # ---------------------------
    def enter_edit_mode(self) -> bool:
        if self.image is None:
            return False
        self._close_mask()
        self._close_edit()
        self.mode = EditorMode.EDITING
        self.history = EditHistory(settings=self.settings)
        self.fit_for_editing()
        logger.debug("entered edit mode")
        return True

    def enter_mask_mode(self) -> bool:
        if self.image is None:
            return False
        self._close_edit()
        self._close_mask()
        self.mode = EditorMode.MASKING
        self.mask = MaskRaster(self.image.size)
        self.fit_all()
        logger.debug("entered mask mode")
        return True

    def cancel_edit(self) -> None:
        if self.mode is not EditorMode.EDITING:
            return
        self._close_edit()
        self.mode = EditorMode.VIEWING
        self.fit_all()

    def cancel_mask(self) -> None:
        if self.mode is not EditorMode.MASKING:
            return
        self._close_mask()
        self.mode = EditorMode.VIEWING

    def _close_edit(self) -> None:
        self.history = None
        self.cropping = False
        self.drawing_crop = None
        self.filters_panel_open = False
        self._pan_anchor = None
        self._live_pan = None

    def _close_mask(self) -> None:
        if self.mask is not None:
            self.mask.clear()
        self.mask = None

    # ---------------------------
    # Edit state
    # ---------------------------
    @property
    def editing(self) -> bool:
        return self.mode is EditorMode.EDITING and self.history is not None

    @property
    def current_state(self) -> Optional[EditState]:
        if not self.editing:
            return None
        st = self.history.current
        if self._live_pan is not None:
            st = replace(st, edit_pan=self._live_pan)
        return st

    @property
    def zoom_locked(self) -> bool:
        # Zoom and pan stay frozen while a crop box is being drawn or adjusted
        return self.editing and self.cropping

    def _push(self, action: ActionKind, **changes) -> Optional[EditState]:
        if not self.editing:
            return None
        return self.history.push(action, **changes)

    def _push_view(self, action: ActionKind, **changes) -> Optional[EditState]:
        # A crop box is only valid for the zoom/pan it was drawn under
        if self.editing and self.history.current.crop_box is not None:
            changes["crop_box"] = None
        return self._push(action, **changes)

    def rotate(self, clockwise: bool = True) -> Optional[EditState]:
        if not self.editing:
            return None
        step = 90 if clockwise else -90
        return self._push(ActionKind.ROTATE, rotation=(self.history.current.rotation + step + 360) % 360)

    def flip(self) -> Optional[EditState]:
        if not self.editing:
            return None
        return self._push(ActionKind.FLIP, scale_x=self.history.current.scale_x * -1)

    def zoom_in(self) -> Optional[EditState]:
        if not self.editing or self.zoom_locked:
            return None
        return self._push_view(ActionKind.ZOOM, edit_zoom=self.history.current.edit_zoom * self.settings.zoom_step)

    def zoom_out(self) -> Optional[EditState]:
        if not self.editing or self.zoom_locked:
            return None
        return self._push_view(ActionKind.ZOOM, edit_zoom=self.history.current.edit_zoom / self.settings.zoom_step)

    def wheel(self, delta_y: float) -> bool:
        if self.image is None or self.mode is EditorMode.MASKING:
            return False
        s = self.settings
        if self.editing:
            if self.zoom_locked:
                return False
            z = wheel_zoom(self.history.current.edit_zoom, delta_y, s.wheel_zoom_rate, s.zoom_min, s.zoom_max)
            self._push_view(ActionKind.ZOOM, edit_zoom=z)
        else:
            self.view_zoom = wheel_zoom(self.view_zoom, delta_y, s.wheel_zoom_rate, s.zoom_min, s.zoom_max)
        return True

    def set_straighten(self, angle: float) -> Optional[EditState]:
        return self._push(ActionKind.STRAIGHTEN, straighten_angle=float(angle))

    def select_filter(self, filter_type: FilterType) -> Optional[EditState]:
        if not self.editing:
            return None
        ftype = FilterType(filter_type)
        cur = self.history.current.filter
        intensity = cur.intensity if cur.type is ftype and ftype is not FilterType.NONE else DEFAULT_FILTER_INTENSITY[ftype]
        return self._push(ActionKind.for_filter(ftype), filter=FilterState(ftype, intensity))

    def set_filter_intensity(self, intensity: int) -> Optional[EditState]:
        if not self.editing:
            return None
        cur = self.history.current.filter
        return self._push(ActionKind.FILTER, filter=FilterState(cur.type, int(intensity)))

    def reset(self) -> Optional[EditState]:
        if not self.editing:
            return None
        self.cropping = False
        self.drawing_crop = None
        self.filters_panel_open = False
        return self.history.reset()

    def undo(self) -> bool:
        return self.editing and self.history.undo()

    def redo(self) -> bool:
        return self.editing and self.history.redo()

    def jump_to(self, index: int) -> Optional[EditState]:
        if not self.editing:
            return None
        return self.history.jump_to(index)

    def set_cropping(self, enabled: bool) -> None:
        if not self.editing:
            return
        self.cropping = bool(enabled)
        if not self.cropping:
            self.drawing_crop = None

    def toggle_filters_panel(self) -> None:
        if self.editing:
            self.filters_panel_open = not self.filters_panel_open

    # ---------------------------
    # Pan gesture
    # ---------------------------
    def begin_pan(self, x: float, y: float) -> bool:
        if self.image is None or self.mode is EditorMode.MASKING:
            return False
        if self.editing:
            if self.zoom_locked:
                return False
            pan = self.history.current.edit_pan
        else:
            pan = self.view_pan
        self._pan_anchor = (x - pan.x, y - pan.y)
        return True

    def drag_pan(self, x: float, y: float) -> bool:
        if self._pan_anchor is None:
            return False
        pan = Pan(x - self._pan_anchor[0], y - self._pan_anchor[1])
        if self.editing:
            self._live_pan = pan
        else:
            self.view_pan = pan
        return True

    def end_pan(self) -> Optional[EditState]:
        if self._pan_anchor is None:
            return None
        self._pan_anchor = None
        live, self._live_pan = self._live_pan, None
        if self.editing and live is not None:
            return self._push_view(ActionKind.PAN, edit_pan=live)
        return None

    @property
    def panning(self) -> bool:
        return self._pan_anchor is not None

    # ---------------------------
    # Crop gesture
    # ---------------------------
    def begin_crop(self, x: float, y: float) -> bool:
        if not self.editing or not self.cropping:
            return False
        self.drawing_crop = CropBox(float(x), float(y), float(x), float(y))
        return True

    def drag_crop(self, x: float, y: float) -> bool:
        if self.drawing_crop is None:
            return False
        self.drawing_crop = self.drawing_crop.with_end(x, y)
        return True

    def end_crop(self) -> Optional[EditState]:
        if self.drawing_crop is None:
            return None
        box, self.drawing_crop = self.drawing_crop, None
        return self._push(ActionKind.CROP, crop_box=box)

    # ---------------------------
    # Keyboard
    # ---------------------------
    def handle_key(self, key: str, ctrl: bool = False, shift: bool = False) -> bool:
        """
        Ctrl/Cmd+Z undo, Ctrl/Cmd+Shift+Z redo.
        Escape backs out one level: crop drag, crop mode, filters panel, session.
        """
        if not self.editing:
            return False
        if ctrl and key.lower() == "z":
            if shift:
                self.redo()
            else:
                self.undo()
            return True
        if key == "Escape":
            if self.drawing_crop is not None:
                self.drawing_crop = None
            elif self.cropping:
                self.cropping = False
            elif self.filters_panel_open:
                self.filters_panel_open = False
            else:
                self.cancel_edit()
            return True
        return False

    # ---------------------------
    # Commit
    # ---------------------------
    def apply_edits(self) -> Optional[Image.Image]:
        """
        Render the current edit state into a new image and close the session.
        On failure nothing changes, so the user can retry. Returns None
        without rendering while the container has no size.
        """
        if not self.editing or self.image is None:
            raise RuntimeError("Not in edit mode")
        if is_degenerate(self.container_size):
            logger.debug("apply skipped: container %s not measured", self.container_size)
            return None
        result = apply_edit_state(
            self.image,
            self.current_state,
            self.container_size,
            use_crop=self.cropping,
        )
        self.image = result.image
        self.cancel_edit()
        return result.image

    # ---------------------------
    # Mask
    # ---------------------------
    def _screen_to_image(self, x: float, y: float) -> Optional[Tuple[float, float]]:
        if self.image is None:
            return None
        return screen_to_image_point((x, y), self.container_size, self.image.size, self.view_zoom, self.view_pan)

    def begin_mask_stroke(self, x: float, y: float) -> bool:
        if self.mode is not EditorMode.MASKING or self.mask is None:
            return False
        pt = self._screen_to_image(x, y)
        if pt is None:
            return False
        self.mask.begin_stroke(*pt)
        return True

    def continue_mask_stroke(self, x: float, y: float) -> bool:
        if self.mask is None or not self.mask.stroking:
            return False
        pt = self._screen_to_image(x, y)
        if pt is None:
            return False
        self.mask.stroke_to(pt[0], pt[1], self.settings.brush_size, self.view_zoom)
        return True

    def end_mask_stroke(self) -> None:
        if self.mask is not None:
            self.mask.end_stroke()

    def clear_mask(self) -> None:
        if self.mask is not None:
            self.mask.clear()

    def export_mask(self) -> Image.Image:
        """Two-tone inpainting mask of the current strokes; mask mode stays open."""
        if self.mode is not EditorMode.MASKING or self.mask is None:
            raise RuntimeError("Not in mask mode")
        return self.mask.export()

    def apply_mask(self) -> Image.Image:
        """Export the two-tone inpainting mask and leave mask mode."""
        exported = self.export_mask()
        logger.info("mask exported at %dx%d", exported.width, exported.height)
        self.cancel_mask()
        return exported

    # ---------------------------
    # Background removal
    # ---------------------------
    def remove_background(self, tolerance: Optional[float] = None) -> Image.Image:
        if self.image is None:
            raise RuntimeError("No image loaded")
        tol = self.settings.chroma_tolerance if tolerance is None else tolerance
        self.image = make_background_transparent(self.image, tol)
        return self.image
