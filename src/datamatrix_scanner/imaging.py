import cv2
import numpy as np

from datamatrix_scanner.config import ROI_SIZE


class FrameTooSmall(ValueError):
    pass


def crop_roi(frame: np.ndarray, size: int = ROI_SIZE) -> np.ndarray:
    """Return the centered size x size region of frame."""
    height, width = frame.shape[:2]
    if width < size or height < size:
        raise FrameTooSmall(f"Frame {width}x{height} is smaller than ROI {size}x{size}")

    x = (width - size) // 2
    y = (height - size) // 2
    return frame[y:y + size, x:x + size]


def to_luminance(roi: np.ndarray) -> np.ndarray:
    if roi.ndim == 2:
        return roi
    code = cv2.COLOR_RGBA2GRAY if roi.shape[2] == 4 else cv2.COLOR_RGB2GRAY
    # ROI slices are strided views of the frame
    return cv2.cvtColor(np.ascontiguousarray(roi), code)
