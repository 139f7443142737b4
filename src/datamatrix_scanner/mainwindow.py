import logging

from PySide6.QtWidgets import (
    QMainWindow,
    QWidget,
    QHBoxLayout,
    QPlainTextEdit,
)
from PySide6.QtCore import Slot, QThread

from datamatrix_scanner.config import WINDOW_TITLE
from datamatrix_scanner.preview_widget import PreviewWidget
from datamatrix_scanner.scanner import ResultChannel, SessionClock
from datamatrix_scanner.workers import ScanWorker, ResultUpdater

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    def __init__(self, camera, decoder, view_size=None, parent=None):
        super().__init__(parent)
        self.setWindowTitle(WINDOW_TITLE)

        # Preview on the west, decoded-text log filling the rest
        central = QWidget(self)
        layout = QHBoxLayout(central)
        self.preview = PreviewWidget(view_size, parent=central)
        self.text_log = QPlainTextEdit(central)
        self.text_log.setReadOnly(True)
        if view_size:
            self.text_log.setMinimumWidth(view_size[0] // 2)
        layout.addWidget(self.preview, 1)
        layout.addWidget(self.text_log, 1)
        self.setCentralWidget(central)

        # The worker only ever sees the channel, never this window
        self.channel = ResultChannel()
        self.clock = SessionClock()

        # Setup Scan Thread
        self.scan_thread = QThread()
        self.scan_worker = ScanWorker(camera, decoder, self.channel, clock=self.clock)
        self.scan_worker.moveToThread(self.scan_thread)
        self.scan_thread.started.connect(self.scan_worker.run)
        self.scan_worker.finished.connect(self.scan_thread.quit)
        self.scan_worker.frame_ready.connect(self.preview.set_image)

        # Setup Result Updater Thread
        self.updater_thread = QThread()
        self.updater = ResultUpdater(self.channel)
        self.updater.moveToThread(self.updater_thread)
        self.updater_thread.started.connect(self.updater.run)
        self.updater.finished.connect(self.updater_thread.quit)
        self.updater.result_ready.connect(self.append_result)

    def start(self):
        self.clock = SessionClock()
        self.scan_worker.loop.clock = self.clock
        self.scan_thread.start()
        self.updater_thread.start()
        logger.info("Scanner started")

    @Slot(str)
    def append_result(self, text):
        elapsed = self.clock.elapsed_ms()
        self.text_log.appendPlainText(text)
        self.text_log.appendPlainText(f"Elapsed time: {elapsed} milliseconds")
        logger.info("Elapsed time: %d milliseconds", elapsed)

    def stop(self):
        self.scan_worker.stop()
        self.updater.stop()

        # Cleanup Scan Thread
        if self.scan_thread.isRunning():
            self.scan_thread.quit()
            self.scan_thread.wait()

        # Cleanup Result Updater Thread
        if self.updater_thread.isRunning():
            self.updater_thread.quit()
            self.updater_thread.wait()

    def closeEvent(self, event):
        self.stop()
        logger.info("Scanner stopped")
        super().closeEvent(event)
