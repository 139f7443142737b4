import logging
import os
from pathlib import Path

from datamatrix_scanner.config import log_file_path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("datamatrix_scanner")


def _has_file_handler(path):
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(path):
            return True
    return False


def setup_logging(path=None, level=logging.INFO):
    """Attach the console and log-file handlers to the package logger.

    The file is opened in append mode so entries accumulate across runs.
    If it cannot be opened the error goes to the console handler only and
    None is returned; the application keeps running either way.
    """
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        logger.addHandler(stream)

    path = Path(path) if path is not None else log_file_path()
    if _has_file_handler(path):
        return path

    try:
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError:
        logger.exception("Error occurred while setting up log file %s", path)
        return None

    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return path
