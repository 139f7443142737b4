"""Shared pytest fixtures: a scripted camera, a scripted decoder and a Qt app."""

import os

import numpy as np
import pytest

from datamatrix_scanner.decoder import DecodeResult, NotFoundError

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


def make_frame(width=640, height=480, value=128):
    return np.full((height, width, 3), value, dtype=np.uint8)


class FakeCamera:
    """CameraSource that serves a scripted list of frames, then `default`."""

    def __init__(self, frames=(), default=None, sizes=((640, 480), (1280, 720), (1920, 1080)), opened=True):
        self.frames = list(frames)
        self.default = default
        self.sizes = list(sizes)
        self.opened = opened
        self.view_size = None
        self.grabs = 0
        self.close_calls = 0

    def view_sizes(self):
        return list(self.sizes)

    def set_view_size(self, size):
        self.view_size = size

    def open(self):
        return self.opened

    def is_open(self):
        return self.opened

    def get_image(self):
        self.grabs += 1
        if self.frames:
            return self.frames.pop(0)
        return self.default

    def close(self):
        self.close_calls += 1
        self.opened = False


class StubDecoder:
    """Decoder returning scripted answers.

    Each answer is a string (found) or an exception class to raise. The last
    answer repeats once the script runs out.
    """

    def __init__(self, *answers):
        self.answers = list(answers) or [NotFoundError]
        self.calls = []

    def decode(self, tile, hints=None):
        self.calls.append((tile, hints))
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, type) and issubclass(answer, Exception):
            raise answer("scripted miss")
        return DecodeResult(
            text=answer,
            barcode_format="DATA_MATRIX",
            num_bits=len(answer) * 8,
            raw_bytes=answer.encode(),
            metadata={"orientation": 0},
        )


@pytest.fixture
def frame():
    return make_frame()


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtWidgets import QApplication

    app = QApplication.instance() or QApplication([])
    yield app
