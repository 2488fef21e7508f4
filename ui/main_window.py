from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction, QBrush, QColor, QKeySequence, QIcon, QShortcut
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QFileDialog, QVBoxLayout, QHBoxLayout, QLabel,
    QSpinBox, QSlider, QPushButton, QMessageBox, QDockWidget, QComboBox,
    QGroupBox, QScrollArea, QListWidget, QListWidgetItem, QInputDialog,
)

from core.compositor import RenderError, upscale_for_download
from core.io import ImageLoadError, load_image_rgba, save_image
from core.session import EditorSession
from core.state import EditorMode, EditorSettings, FilterType
from ui.canvas_widget import CanvasWidget

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self, logo_path: Optional[Path] = None, settings: Optional[EditorSettings] = None):
        super().__init__()
        if logo_path is not None and logo_path.exists():
            self.setWindowIcon(QIcon(str(logo_path)))
        self.setWindowTitle("PhotoRetouch")

        self.session = EditorSession(settings)
        self._syncing = False

        self.canvas = CanvasWidget(self.session, on_changed=self._sync_ui_from_session)

        central = QWidget()
        lay = QVBoxLayout()
        lay.addWidget(self.canvas)
        central.setLayout(lay)
        self.setCentralWidget(central)

        self._build_menu()
        self._build_controls_dock()

        self.setAcceptDrops(True)
        self.resize(1200, 800)
        self._sync_ui_from_session()

    # ---------------------------
    # Menu / Actions
    # ---------------------------
    def _build_menu(self) -> None:
        open_act = QAction("Open…", self)
        open_act.setShortcut(QKeySequence.StandardKey.Open)
        open_act.triggered.connect(self.open_file)

        save_act = QAction("Save As…", self)
        save_act.setShortcut(QKeySequence.StandardKey.SaveAs)
        save_act.triggered.connect(lambda: self.save_as(upscale=False))

        save_2x_act = QAction("Save Upscaled 2x As…", self)
        save_2x_act.triggered.connect(lambda: self.save_as(upscale=True))

        quit_act = QAction("Quit", self)
        quit_act.setShortcut(QKeySequence.StandardKey.Quit)
        quit_act.triggered.connect(self.close)

        self._act_undo = QAction("Undo", self)
        self._act_undo.setShortcut(QKeySequence.StandardKey.Undo)
        self._act_undo.triggered.connect(self._undo)
        self._act_redo = QAction("Redo", self)
        self._act_redo.setShortcut(QKeySequence.StandardKey.Redo)
        self._act_redo.triggered.connect(self._redo)

        # Window-wide so it works whichever control has focus
        self._esc_shortcut = QShortcut(QKeySequence(Qt.Key_Escape), self)
        self._esc_shortcut.activated.connect(self._escape)

        self._view_acts: list[QAction] = []
        for text, fn in (
            ("Fit", self.session.fit_all),
            ("Fit Height", self.session.fit_to_height),
            ("50%", lambda: self.session.set_view_zoom(0.5)),
            ("100%", lambda: self.session.set_view_zoom(1.0)),
            ("200%", lambda: self.session.set_view_zoom(2.0)),
        ):
            act = QAction(text, self)
            act.triggered.connect(lambda _=False, f=fn: self._run(f))
            self._view_acts.append(act)

        mfile = self.menuBar().addMenu("&File")
        mfile.addAction(open_act)
        mfile.addAction(save_act)
        mfile.addAction(save_2x_act)
        mfile.addSeparator()
        mfile.addAction(quit_act)

        medit = self.menuBar().addMenu("&Edit")
        medit.addAction(self._act_undo)
        medit.addAction(self._act_redo)

        mview = self.menuBar().addMenu("&View")
        for act in self._view_acts:
            mview.addAction(act)

    def _build_controls_dock(self) -> None:
        dock = QDockWidget("Controls", self)
        dock.setAllowedAreas(Qt.LeftDockWidgetArea | Qt.RightDockWidgetArea)
        root = QWidget()
        root_lay = QVBoxLayout(root)
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        panel = QWidget()
        v = QVBoxLayout(panel)

        # --- Modes ---
        modes = QGroupBox("Mode")
        ml = QHBoxLayout(modes)
        self.edit_btn = QPushButton("Edit")
        self.edit_btn.clicked.connect(self._enter_edit)
        self.mask_btn = QPushButton("Mask")
        self.mask_btn.clicked.connect(self._enter_mask)
        self.bg_btn = QPushButton("Remove Background")
        self.bg_btn.clicked.connect(self._remove_background)
        ml.addWidget(self.edit_btn)
        ml.addWidget(self.mask_btn)
        ml.addWidget(self.bg_btn)
        v.addWidget(modes)

        # --- Edit ---
        self.edit_group = QGroupBox("Edit")
        el = QVBoxLayout(self.edit_group)
        row = QHBoxLayout()
        for text, slot in (
            ("⟲ 90°", lambda: self.session.rotate(clockwise=False)),
            ("⟳ 90°", lambda: self.session.rotate(clockwise=True)),
            ("Flip", self.session.flip),
            ("−", self.session.zoom_out),
            ("+", self.session.zoom_in),
        ):
            b = QPushButton(text)
            b.clicked.connect(lambda _=False, f=slot: self._run(f))
            row.addWidget(b)
        el.addLayout(row)

        srow = QHBoxLayout()
        srow.addWidget(QLabel("Straighten"))
        self.straighten = QSlider(Qt.Horizontal)
        lim = int(self.session.settings.straighten_limit * 2)
        self.straighten.setRange(-lim, lim)  # half-degree steps
        self.straighten.valueChanged.connect(lambda val: self._run(lambda: self.session.set_straighten(val / 2.0)))
        self.straighten_lbl = QLabel("0.0°")
        srow.addWidget(self.straighten)
        srow.addWidget(self.straighten_lbl)
        el.addLayout(srow)

        self.filters_btn = QPushButton("Filters")
        self.filters_btn.setCheckable(True)
        self.filters_btn.toggled.connect(self._on_filters_toggled)
        el.addWidget(self.filters_btn)

        self.filters_row = QWidget()
        frow = QHBoxLayout(self.filters_row)
        frow.setContentsMargins(0, 0, 0, 0)
        frow.addWidget(QLabel("Filter"))
        self.filter_combo = QComboBox()
        for ft in FilterType:
            self.filter_combo.addItem(ft.value.capitalize(), ft)
        self.filter_combo.currentIndexChanged.connect(self._on_filter_selected)
        self.intensity = QSlider(Qt.Horizontal)
        self.intensity.setRange(0, 100)
        self.intensity.valueChanged.connect(lambda val: self._run(lambda: self.session.set_filter_intensity(val)))
        frow.addWidget(self.filter_combo)
        frow.addWidget(self.intensity)
        el.addWidget(self.filters_row)

        brow = QHBoxLayout()
        self.crop_btn = QPushButton("Crop")
        self.crop_btn.setCheckable(True)
        self.crop_btn.toggled.connect(lambda on: self._run(lambda: self.session.set_cropping(on)))
        reset_btn = QPushButton("Reset")
        reset_btn.clicked.connect(lambda: self._run(self.session.reset))
        apply_btn = QPushButton("Apply")
        apply_btn.clicked.connect(self._apply_edits)
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(lambda: self._run(self.session.cancel_edit))
        for b in (self.crop_btn, reset_btn, apply_btn, cancel_btn):
            brow.addWidget(b)
        el.addLayout(brow)

        el.addWidget(QLabel("History"))
        self.history_list = QListWidget()
        self.history_list.itemClicked.connect(self._on_history_clicked)
        el.addWidget(self.history_list)
        v.addWidget(self.edit_group)

        # --- Mask ---
        self.mask_group = QGroupBox("Mask")
        mkl = QVBoxLayout(self.mask_group)
        b_row = QHBoxLayout()
        b_row.addWidget(QLabel("Brush size"))
        self.brush = QSpinBox()
        self.brush.setRange(5, 150)
        self.brush.setValue(int(self.session.settings.brush_size))
        self.brush.valueChanged.connect(self._on_brush_changed)
        b_row.addWidget(self.brush)
        mkl.addLayout(b_row)
        m_row = QHBoxLayout()
        clear_btn = QPushButton("Clear")
        clear_btn.clicked.connect(lambda: self._run(self.session.clear_mask))
        save_mask_btn = QPushButton("Save Mask…")
        save_mask_btn.clicked.connect(self._apply_mask)
        cancel_mask_btn = QPushButton("Cancel")
        cancel_mask_btn.clicked.connect(lambda: self._run(self.session.cancel_mask))
        for b in (clear_btn, save_mask_btn, cancel_mask_btn):
            m_row.addWidget(b)
        mkl.addLayout(m_row)
        v.addWidget(self.mask_group)

        # --- Background removal ---
        bg = QGroupBox("Background removal")
        bl = QHBoxLayout(bg)
        bl.addWidget(QLabel("Tolerance"))
        self.tolerance = QSpinBox()
        self.tolerance.setRange(0, 100)
        self.tolerance.setValue(int(self.session.settings.chroma_tolerance))
        self.tolerance.valueChanged.connect(self._on_tolerance_changed)
        bl.addWidget(self.tolerance)
        v.addWidget(bg)

        v.addStretch(1)
        scroll.setWidget(panel)
        root_lay.addWidget(scroll)
        dock.setWidget(root)
        self.addDockWidget(Qt.RightDockWidgetArea, dock)

    # ---------------------------
    # File IO
    # ---------------------------
    def open_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self, "Open Image", "", "Images (*.png *.jpg *.jpeg *.bmp *.webp *.tif *.tiff)"
        )
        if not path:
            return
        self.load_path(path)

    def load_path(self, path: str) -> None:
        try:
            img = load_image_rgba(path)
        except ImageLoadError as e:
            QMessageBox.critical(self, "Open failed", str(e))
            return
        self.session.load_image(img)
        self.session.set_container_size(self.canvas.width(), self.canvas.height())
        self.canvas.invalidate()
        self._sync_ui_from_session()
        logger.info("loaded %s (%dx%d)", path, img.width, img.height)

    def save_as(self, upscale: bool = False) -> None:
        if self.session.image is None:
            QMessageBox.information(self, "Nothing to save", "Load an image first.")
            return

        path, _ = QFileDialog.getSaveFileName(
            self, "Save As", "", "PNG (*.png);;JPG (*.jpg *.jpeg);;WEBP (*.webp)"
        )
        if not path:
            return

        quality = self.session.settings.jpeg_quality
        comment = ""
        if Path(path).suffix.lower() in {".jpg", ".jpeg"}:
            quality, ok = QInputDialog.getInt(self, "JPEG quality", "Quality", quality, 1, 100)
            if not ok:
                return
            comment, _ = QInputDialog.getText(self, "Comment", "Metadata comment (optional)")

        img = self.session.image
        try:
            if upscale:
                img = upscale_for_download(img)
            save_image(path, img, quality=quality, comment=comment)
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Save failed", str(e))
            return

    # ---------------------------
    # Drag & drop support
    # ---------------------------
    def dragEnterEvent(self, e) -> None:
        if e.mimeData().hasUrls():
            e.acceptProposedAction()

    def dropEvent(self, e) -> None:
        urls = e.mimeData().urls()
        if not urls:
            return
        path = urls[0].toLocalFile()
        if path:
            self.load_path(path)

    # ---------------------------
    # Session actions
    # ---------------------------
    def _run(self, fn) -> None:
        if self._syncing:
            return
        fn()
        self.canvas.update()
        self._sync_ui_from_session()

    def _enter_edit(self) -> None:
        self.session.set_container_size(self.canvas.width(), self.canvas.height())
        if self.session.enter_edit_mode():
            self.canvas.invalidate()
            self.canvas.setFocus()
        self._sync_ui_from_session()

    def _enter_mask(self) -> None:
        self.session.set_container_size(self.canvas.width(), self.canvas.height())
        if self.session.enter_mask_mode():
            self.canvas.invalidate()
            self.canvas.setFocus()
        self._sync_ui_from_session()

    def _apply_edits(self) -> None:
        try:
            out = self.session.apply_edits()
        except RenderError as e:
            QMessageBox.critical(self, "Apply failed", str(e))
            return
        if out is None:
            return
        self.canvas.invalidate()
        self._sync_ui_from_session()

    def _apply_mask(self) -> None:
        if self.session.mode is not EditorMode.MASKING:
            return
        path, _ = QFileDialog.getSaveFileName(self, "Save Mask", "", "PNG (*.png)")
        if not path:
            return
        # Strokes survive a failed save so the user can retry
        mask = self.session.export_mask()
        try:
            save_image(path, mask)
        except (OSError, ValueError) as e:
            QMessageBox.critical(self, "Save failed", str(e))
            return
        self.session.cancel_mask()
        self.canvas.invalidate()
        self._sync_ui_from_session()

    def _remove_background(self) -> None:
        if self.session.image is None or self.session.mode is not EditorMode.VIEWING:
            return
        self.session.remove_background()
        self.canvas.invalidate()
        self._sync_ui_from_session()

    def _undo(self) -> None:
        self._run(self.session.undo)

    def _redo(self) -> None:
        self._run(self.session.redo)

    def _escape(self) -> None:
        self._run(lambda: self.session.handle_key("Escape"))

    def _on_filters_toggled(self, on: bool) -> None:
        if on != self.session.filters_panel_open:
            self._run(self.session.toggle_filters_panel)

    def _on_filter_selected(self, idx: int) -> None:
        ft = self.filter_combo.itemData(idx)
        if ft is not None:
            self._run(lambda: self.session.select_filter(ft))

    def _on_history_clicked(self, item: QListWidgetItem) -> None:
        idx = item.data(Qt.UserRole)
        self._run(lambda: self.session.jump_to(int(idx)))

    def _on_brush_changed(self, val: int) -> None:
        self.session.settings.brush_size = float(val)

    def _on_tolerance_changed(self, val: int) -> None:
        self.session.settings.chroma_tolerance = int(val)

    def _sync_ui_from_session(self) -> None:
        s = self.session
        self._syncing = True
        try:
            has = s.image is not None
            viewing = s.mode is EditorMode.VIEWING
            self.edit_btn.setEnabled(has and viewing)
            self.mask_btn.setEnabled(has and viewing)
            self.bg_btn.setEnabled(has and viewing)
            self.edit_group.setEnabled(s.editing)
            self.mask_group.setEnabled(s.mode is EditorMode.MASKING)

            self._act_undo.setEnabled(s.editing and s.history.can_undo())
            self._act_redo.setEnabled(s.editing and s.history.can_redo())
            for act in self._view_acts:
                act.setEnabled(has and not s.editing)

            self.filters_btn.setChecked(s.filters_panel_open)
            self.filters_row.setVisible(s.filters_panel_open)

            self.history_list.clear()
            st = s.current_state
            if st is None:
                self.crop_btn.setChecked(False)
                return
            self.straighten.setValue(int(round(st.straighten_angle * 2)))
            self.straighten_lbl.setText(f"{st.straighten_angle:.1f}°")
            self.filter_combo.setCurrentIndex(self.filter_combo.findData(st.filter.type))
            self.intensity.setValue(int(st.filter.intensity))
            self.intensity.setEnabled(st.filter.type is not FilterType.NONE)
            self.crop_btn.setChecked(s.cropping)
            for entry in s.history.entries():
                item = QListWidgetItem(("✓ " if entry.is_current else "   ") + entry.label)
                item.setData(Qt.UserRole, entry.index)
                if entry.is_future:
                    item.setForeground(QBrush(QColor(140, 140, 140)))
                self.history_list.addItem(item)
        finally:
            self._syncing = False
