import argparse
import logging
import sys
from pathlib import Path

from PySide6.QtWidgets import QApplication

from core.log_config import setup_logging
from ui.main_window import MainWindow

logger = logging.getLogger(__name__)


def _parse_args(argv):
    parser = argparse.ArgumentParser(prog="photoretouch", description="Photo retouching editor")
    parser.add_argument("image", nargs="?", help="image to open on startup")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="also write logs to this file")
    return parser.parse_known_args(argv)


def main() -> int:
    args, qt_args = _parse_args(sys.argv[1:])
    setup_logging(getattr(logging, args.log_level), args.log_file)

    app = QApplication([sys.argv[0]] + qt_args)
    app.setApplicationName("PhotoRetouch")
    app.setOrganizationName("PhotoRetouch")

    w = MainWindow()
    w.show()
    if args.image:
        logger.info("opening %s", args.image)
        w.load_path(args.image)
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
