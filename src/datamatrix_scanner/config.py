from pathlib import Path

# Scan loop
FRAME_SKIP = 5
ROI_SIZE = 300
SCAN_INTERVAL_MIN = 50  # ms
SCAN_INTERVAL_MAX = 500  # ms
SCAN_INTERVAL_INITIAL = 100  # ms
FAILURE_THRESHOLD = 5
BACKOFF_STEP = 50  # ms
RECOVERY_STEP = 10  # ms

# Second attached device. On a single-camera host the first one is used instead.
CAMERA_INDEX = 1
CAMERA_PROBE_LIMIT = 8

# How often a blocked channel take re-checks for cancellation
CHANNEL_POLL_S = 0.05

WINDOW_TITLE = "QR Code Scanner"
LOG_FILE_NAME = "logs.txt"


def desktop_dir(home=None):
    home = Path(home) if home is not None else Path.home()
    return home / "Desktop"


def log_file_path(home=None):
    return desktop_dir(home) / LOG_FILE_NAME
