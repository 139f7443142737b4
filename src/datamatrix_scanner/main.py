import sys
import signal
import logging

from PySide6.QtWidgets import QApplication

from datamatrix_scanner.camera import CameraUnavailable, acquire_camera
from datamatrix_scanner.decoder import DataMatrixDecoder
from datamatrix_scanner.logging_setup import setup_logging
from datamatrix_scanner.mainwindow import MainWindow

logger = logging.getLogger(__name__)


def main():
    setup_logging()

    # Enable Ctrl+C termination
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    app = QApplication.instance() or QApplication(sys.argv)

    try:
        camera, view_size = acquire_camera()
    except CameraUnavailable as e:
        logger.error("Cannot start scanner: %s", e)
        return 1

    window = MainWindow(camera, DataMatrixDecoder(), view_size)
    window.start()
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
