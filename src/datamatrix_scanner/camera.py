import logging
import platform
from typing import List, Optional, Protocol, Tuple

import cv2
import numpy as np

from datamatrix_scanner.config import CAMERA_INDEX, CAMERA_PROBE_LIMIT

logger = logging.getLogger(__name__)

Size = Tuple[int, int]

# Candidate view sizes, probed against the device since OpenCV cannot list them
COMMON_RESOLUTIONS: List[Size] = [
    (320, 240),
    (640, 480),
    (800, 600),
    (1024, 768),
    (1280, 720),
    (1280, 960),
    (1600, 1200),
    (1920, 1080),
    (2560, 1440),
    (3840, 2160),
]


class CameraUnavailable(RuntimeError):
    pass


class CameraSource(Protocol):
    def view_sizes(self) -> List[Size]: ...

    def set_view_size(self, size: Size) -> None: ...

    def open(self) -> bool: ...

    def is_open(self) -> bool: ...

    def get_image(self) -> Optional[np.ndarray]: ...

    def close(self) -> None: ...


def _capture_api():
    # DirectShow on Windows, V4L2 on Linux, whatever OpenCV picks elsewhere
    system = platform.system()
    if system == "Windows":
        return cv2.CAP_DSHOW
    if system == "Linux":
        return cv2.CAP_V4L2
    return cv2.CAP_ANY


class OpenCVCamera:
    """CameraSource backed by cv2.VideoCapture. Frames come out as RGB."""

    def __init__(self, index: int):
        self.index = index
        self.view_size: Optional[Size] = None
        self._cap = None

    def __repr__(self):
        return f"OpenCVCamera({self.index})"

    def _ensure_capture(self):
        if self._cap is None:
            self._cap = cv2.VideoCapture(self.index, _capture_api())
        return self._cap

    def view_sizes(self) -> List[Size]:
        cap = self._ensure_capture()
        if not cap.isOpened():
            return []

        found = set()
        for width, height in COMMON_RESOLUTIONS:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            actual = (
                int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            )
            if actual[0] > 0 and actual[1] > 0:
                found.add(actual)
        return sorted(found, key=lambda s: s[0] * s[1])

    def set_view_size(self, size: Size) -> None:
        self.view_size = size
        cap = self._ensure_capture()
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, size[0])
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, size[1])

    def open(self) -> bool:
        cap = self._ensure_capture()
        if not cap.isOpened():
            cap.open(self.index, _capture_api())
        if cap.isOpened() and self.view_size is not None:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.view_size[0])
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.view_size[1])
        # Keep latency low; we only ever want the newest frame
        if hasattr(cv2, "CAP_PROP_BUFFERSIZE"):
            cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        return cap.isOpened()

    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def get_image(self) -> Optional[np.ndarray]:
        if not self.is_open():
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


def list_cameras(max_probe: int = CAMERA_PROBE_LIMIT, factory=None) -> List[int]:
    """Return the indices of the video devices that can be opened."""
    factory = factory or (lambda index: cv2.VideoCapture(index, _capture_api()))
    found = []
    for index in range(max_probe):
        cap = factory(index)
        try:
            if cap.isOpened():
                found.append(index)
        finally:
            cap.release()
    return found


def select_camera_index(devices: List[int], preferred: int = CAMERA_INDEX) -> int:
    if not devices:
        raise CameraUnavailable("No camera devices found")
    if preferred < len(devices):
        return devices[preferred]
    logger.warning(
        "Camera #%d requested but only %d device(s) found; using the first", preferred, len(devices)
    )
    return devices[0]


def select_view_size(sizes: List[Size]) -> Size:
    """Second-highest resolution when there is a choice, trading quality for throughput."""
    if not sizes:
        raise CameraUnavailable("Camera reports no supported view sizes")
    ordered = sorted(sizes, key=lambda s: s[0] * s[1])
    if len(ordered) > 1:
        return ordered[-2]
    return ordered[0]


def acquire_camera(enumerate_devices=list_cameras, factory=OpenCVCamera, preferred: int = CAMERA_INDEX):
    """Find, configure and open the scanning camera. Raises CameraUnavailable."""
    index = select_camera_index(enumerate_devices(), preferred)
    camera = factory(index)

    try:
        size = select_view_size(camera.view_sizes())
        logger.info("Optimal resolution: %dx%d", size[0], size[1])
        camera.set_view_size(size)
        if not camera.open():
            raise CameraUnavailable(f"Unable to open camera index {index}")
    except CameraUnavailable:
        camera.close()
        raise
    logger.info("Using camera %r at %dx%d", camera, size[0], size[1])
    return camera, size
