from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


class MainWindowTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        try:
            from PySide6.QtWidgets import QApplication
        except Exception as exc:  # pragma: no cover - environment dependency
            raise unittest.SkipTest(f"missing runtime dependency: {exc}")
        cls.app = QApplication.instance() or QApplication([])

    def _window(self):
        from PIL import Image
        from ui.main_window import MainWindow

        w = MainWindow()
        self.addCleanup(w.close)
        w.show()
        self.app.processEvents()
        w.session.load_image(Image.new("RGBA", (100, 50), (30, 60, 90, 255)))
        w.session.set_container_size(200, 100)
        w._sync_ui_from_session()
        return w

    def _painted_mask_window(self):
        w = self._window()
        w._enter_mask()
        w.session.mask.begin_stroke(10, 10)
        w.session.mask.stroke_to(40, 10, brush_size=8)
        w.session.mask.end_stroke()
        return w

    def test_failed_mask_save_keeps_strokes(self) -> None:
        from core.state import EditorMode

        w = self._painted_mask_window()
        with mock.patch(
            "ui.main_window.QFileDialog.getSaveFileName",
            return_value=("/nonexistent_dir/x/mask.png", ""),
        ), mock.patch("ui.main_window.QMessageBox.critical") as critical:
            w._apply_mask()

        critical.assert_called_once()
        self.assertIs(w.session.mode, EditorMode.MASKING)
        self.assertIsNotNone(w.session.mask)
        self.assertFalse(w.session.mask.is_empty())

    def test_mask_save_closes_mask_mode(self) -> None:
        from core.state import EditorMode

        w = self._painted_mask_window()
        with tempfile.TemporaryDirectory() as d:
            target = Path(d) / "mask.png"
            with mock.patch(
                "ui.main_window.QFileDialog.getSaveFileName",
                return_value=(str(target), ""),
            ):
                w._apply_mask()
            self.assertTrue(target.exists())
        self.assertIs(w.session.mode, EditorMode.VIEWING)
        self.assertIsNone(w.session.mask)

    def test_undo_redo_are_window_shortcuts(self) -> None:
        from PySide6.QtGui import QKeySequence

        w = self._window()
        self.assertEqual(w._act_undo.shortcut(), QKeySequence(QKeySequence.StandardKey.Undo))
        self.assertEqual(w._act_redo.shortcut(), QKeySequence(QKeySequence.StandardKey.Redo))

        w._enter_edit()
        w._run(w.session.rotate)
        self.assertEqual(w.session.history.index, 1)
        w._act_undo.trigger()
        self.assertEqual(w.session.history.index, 0)
        w._act_redo.trigger()
        self.assertEqual(w.session.history.index, 1)

    def test_escape_backs_out_of_crop_then_edit(self) -> None:
        from core.state import EditorMode

        w = self._window()
        w._enter_edit()
        w.crop_btn.setChecked(True)
        self.assertTrue(w.session.cropping)

        w._esc_shortcut.activated.emit()
        self.assertFalse(w.session.cropping)
        self.assertFalse(w.crop_btn.isChecked())
        self.assertIs(w.session.mode, EditorMode.EDITING)

        w._esc_shortcut.activated.emit()
        self.assertIs(w.session.mode, EditorMode.VIEWING)

    def test_filters_button_toggles_panel(self) -> None:
        w = self._window()
        w._enter_edit()
        self.assertTrue(w.filters_row.isHidden())

        w.filters_btn.setChecked(True)
        self.assertTrue(w.session.filters_panel_open)
        self.assertFalse(w.filters_row.isHidden())

        w._esc_shortcut.activated.emit()
        self.assertFalse(w.session.filters_panel_open)
        self.assertFalse(w.filters_btn.isChecked())
        self.assertTrue(w.filters_row.isHidden())

    def test_view_menu_presets(self) -> None:
        w = self._window()
        labels = [a.text() for a in w._view_acts]
        self.assertEqual(labels, ["Fit", "Fit Height", "50%", "100%", "200%"])

        w._view_acts[4].trigger()
        self.assertEqual(w.session.view_zoom, 2.0)
        w._view_acts[1].trigger()
        self.assertEqual(w.session.view_zoom, 2.0)
        w._view_acts[2].trigger()
        self.assertEqual(w.session.view_zoom, 0.5)
        w._view_acts[0].trigger()
        self.assertAlmostEqual(w.session.view_zoom, 1.9)

        w._enter_edit()
        self.assertFalse(w._view_acts[0].isEnabled())


if __name__ == "__main__":
    unittest.main()
