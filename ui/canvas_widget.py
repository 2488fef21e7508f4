from __future__ import annotations
from typing import Optional, Callable, Tuple

import numpy as np
from PIL import Image
from PySide6.QtCore import Qt, QRectF
from PySide6.QtGui import QPainter, QImage, QPixmap, QColor, QPen
from PySide6.QtWidgets import QWidget

from core.compositor import render_preview
from core.geometry import image_to_screen_rect, transformed_size
from core.session import EditorSession
from core.state import EditorMode

# Mask highlight color; alpha comes from the mask raster
MASK_RGB = (250, 204, 21)


def pil_rgba_to_qimage(img: Image.Image) -> QImage:
    img = img.convert("RGBA")
    w, h = img.size
    data = img.tobytes("raw", "RGBA")
    qimg = QImage(data, w, h, QImage.Format_RGBA8888)
    # Important: keep a copy because Python-owned bytes may be freed
    return qimg.copy()


class CanvasWidget(QWidget):
    """
    Displays the session image and routes gestures into the session.
      - viewing: left-drag pans, wheel zooms
      - editing: left-drag pans (or draws the crop box in crop mode), wheel zooms
      - masking: left-drag paints the mask
    Undo/redo and Escape are window shortcuts, see MainWindow.
    """
    def __init__(
        self,
        session: EditorSession,
        on_changed: Optional[Callable[[], None]] = None,
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setMinimumSize(320, 240)

        self.session = session
        self._on_changed = on_changed

        self._pixmap: Optional[QPixmap] = None
        self._pixmap_src: Optional[int] = None
        self._preview_key: Optional[Tuple] = None
        self._preview_pixmap: Optional[QPixmap] = None
        self._cursor_pos: Optional[Tuple[float, float]] = None
        self._dragging = False

    def _changed(self) -> None:
        self.update()
        if self._on_changed is not None:
            self._on_changed()

    def invalidate(self) -> None:
        self._pixmap = None
        self._pixmap_src = None
        self._preview_key = None
        self._preview_pixmap = None
        self.update()

    # ---------------------------
    # Rendering
    # ---------------------------
    def _image_pixmap(self) -> Optional[QPixmap]:
        img = self.session.image
        if img is None:
            return None
        if self._pixmap is None or self._pixmap_src != id(img):
            self._pixmap = QPixmap.fromImage(pil_rgba_to_qimage(img))
            self._pixmap_src = id(img)
        return self._pixmap

    def _edit_preview_pixmap(self) -> Optional[QPixmap]:
        st = self.session.current_state
        img = self.session.image
        if st is None or img is None:
            return None
        key = (id(img), st.rotation, st.scale_x, st.straighten_angle, st.filter)
        if key != self._preview_key:
            self._preview_pixmap = QPixmap.fromImage(pil_rgba_to_qimage(render_preview(img, st)))
            self._preview_key = key
        return self._preview_pixmap

    def paintEvent(self, _) -> None:
        p = QPainter(self)
        p.setRenderHint(QPainter.SmoothPixmapTransform, True)
        p.fillRect(self.rect(), QColor(30, 30, 30))

        s = self.session
        if s.image is None:
            p.setPen(QPen(QColor(220, 220, 220)))
            p.drawText(self.rect(), Qt.AlignCenter, "Drop an image or File → Open…")
            return

        container = (float(self.width()), float(self.height()))
        if s.mode is EditorMode.EDITING and s.current_state is not None:
            st = s.current_state
            bounds = transformed_size(s.image.size, st)
            x, y, w, h = image_to_screen_rect(container, bounds, st.edit_zoom, st.edit_pan)
            pm = self._edit_preview_pixmap()
            if pm is not None:
                p.drawPixmap(QRectF(x, y, w, h), pm, QRectF(pm.rect()))
            self._draw_crop_box(p)
        else:
            x, y, w, h = image_to_screen_rect(container, s.image.size, s.view_zoom, s.view_pan)
            pm = self._image_pixmap()
            if pm is not None:
                p.drawPixmap(QRectF(x, y, w, h), pm, QRectF(pm.rect()))
            if s.mode is EditorMode.MASKING and s.mask is not None:
                self._draw_mask(p, QRectF(x, y, w, h))
                self._draw_brush_cursor(p)

    def _draw_mask(self, p: QPainter, target: QRectF) -> None:
        alpha = self.session.mask.alpha
        h, w = alpha.shape
        rgba = np.empty((h, w, 4), dtype=np.uint8)
        rgba[..., 0], rgba[..., 1], rgba[..., 2] = MASK_RGB
        rgba[..., 3] = alpha
        overlay = QPixmap.fromImage(pil_rgba_to_qimage(Image.fromarray(rgba)))
        p.drawPixmap(target, overlay, QRectF(overlay.rect()))

    def _draw_brush_cursor(self, p: QPainter) -> None:
        if self._cursor_pos is None:
            return
        r = self.session.settings.brush_size * 0.5
        cx, cy = self._cursor_pos
        p.setPen(QPen(QColor(234, 179, 8), 2))
        p.setBrush(QColor(250, 204, 21, 128))
        p.drawEllipse(QRectF(cx - r, cy - r, 2 * r, 2 * r))

    def _draw_crop_box(self, p: QPainter) -> None:
        s = self.session
        box = s.drawing_crop
        if box is None and s.cropping and s.current_state is not None:
            box = s.current_state.crop_box
        if box is None:
            return
        left, top, w, h = box.rect()
        r = QRectF(left, top, w, h)
        shade = QColor(0, 0, 0, 150)
        p.fillRect(QRectF(0, 0, self.width(), top), shade)
        p.fillRect(QRectF(0, top + h, self.width(), max(0.0, self.height() - top - h)), shade)
        p.fillRect(QRectF(0, top, left, h), shade)
        p.fillRect(QRectF(left + w, top, max(0.0, self.width() - left - w), h), shade)
        pen = QPen(QColor(250, 204, 21), 2)
        pen.setDashPattern([4, 4])
        p.setPen(pen)
        p.drawRect(r)

    # ---------------------------
    # Events
    # ---------------------------
    def resizeEvent(self, e) -> None:
        self.session.set_container_size(self.width(), self.height())
        super().resizeEvent(e)
        self._changed()

    def wheelEvent(self, e) -> None:
        delta = e.angleDelta().y()
        if delta == 0:
            return
        # 120 per notch, positive = away from the user (zoom in)
        if self.session.wheel(-delta / 12.0):
            self._changed()
        e.accept()

    def mousePressEvent(self, e) -> None:
        if e.button() != Qt.LeftButton:
            return
        pos = e.position()
        s = self.session
        if s.mode is EditorMode.MASKING:
            self._dragging = s.begin_mask_stroke(pos.x(), pos.y())
        elif s.mode is EditorMode.EDITING and s.cropping:
            self._dragging = s.begin_crop(pos.x(), pos.y())
        else:
            self._dragging = s.begin_pan(pos.x(), pos.y())
        if self._dragging:
            self._changed()

    def mouseMoveEvent(self, e) -> None:
        pos = e.position()
        s = self.session
        if s.mode is EditorMode.MASKING:
            self._cursor_pos = (pos.x(), pos.y())
            if self._dragging:
                s.continue_mask_stroke(pos.x(), pos.y())
            self.update()
            return
        if not self._dragging:
            return
        if s.drawing_crop is not None:
            s.drag_crop(pos.x(), pos.y())
        elif s.panning:
            s.drag_pan(pos.x(), pos.y())
        self.update()

    def mouseReleaseEvent(self, e) -> None:
        if e.button() != Qt.LeftButton or not self._dragging:
            return
        self._dragging = False
        s = self.session
        if s.mode is EditorMode.MASKING:
            s.end_mask_stroke()
        elif s.drawing_crop is not None:
            s.end_crop()
        else:
            s.end_pan()
        self._changed()

    def leaveEvent(self, e) -> None:
        self._cursor_pos = None
        if self.session.mode is EditorMode.MASKING and self._dragging:
            self._dragging = False
            self.session.end_mask_stroke()
        self.update()
        super().leaveEvent(e)
