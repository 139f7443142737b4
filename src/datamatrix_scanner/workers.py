import logging
import threading

import numpy as np
from PySide6.QtCore import QObject, Signal, Slot
from PySide6.QtGui import QImage

from datamatrix_scanner.scanner import ResultChannel, ScanLoop, pump_results

logger = logging.getLogger(__name__)


def frame_to_qimage(frame: np.ndarray) -> QImage:
    frame = np.ascontiguousarray(frame)
    if frame.ndim == 2:
        h, w = frame.shape
        return QImage(frame.data, w, h, w, QImage.Format_Grayscale8).copy()
    h, w, c = frame.shape
    fmt = QImage.Format_RGBA8888 if c == 4 else QImage.Format_RGB888
    # copy() detaches the image from the numpy buffer
    return QImage(frame.data, w, h, w * c, fmt).copy()


class ScanWorker(QObject):
    """Runs the scan loop on its own thread and owns the camera while doing so."""

    frame_ready = Signal(QImage)
    finished = Signal()

    def __init__(self, camera, decoder, channel: ResultChannel, clock=None):
        super().__init__()
        self.stop_event = threading.Event()
        self.loop = ScanLoop(
            camera,
            decoder,
            channel,
            stop_event=self.stop_event,
            clock=clock,
            on_frame=self._publish_frame,
        )

    def _publish_frame(self, frame):
        self.frame_ready.emit(frame_to_qimage(frame))

    @Slot()
    def run(self):
        try:
            self.loop.run()
        except Exception:
            logger.exception("Scan worker stopped on an unexpected error")
        finally:
            self.finished.emit()

    def stop(self):
        # Called from the GUI thread; the loop notices at its next sleep
        self.stop_event.set()

    def snapshot(self):
        return self.loop.snapshot()


class ResultUpdater(QObject):
    """Consumes the result channel and hands each string to the GUI thread."""

    result_ready = Signal(str)
    finished = Signal()

    def __init__(self, channel: ResultChannel):
        super().__init__()
        self.channel = channel
        self.stop_event = threading.Event()

    @Slot()
    def run(self):
        # result_ready crosses threads as a queued connection, so the
        # receiving slot always runs on the GUI thread
        pump_results(self.channel, self.stop_event, self.result_ready.emit)
        self.finished.emit()

    def stop(self):
        self.stop_event.set()
