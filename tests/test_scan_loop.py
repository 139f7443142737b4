import math

import numpy as np
import pytest

from datamatrix_scanner.config import FRAME_SKIP, ROI_SIZE
from datamatrix_scanner.decoder import ChecksumError, DecodeHint, FormatError, NotFoundError
from datamatrix_scanner.scanner import OutcomeKind, ResultChannel, ScanLoop

from conftest import FakeCamera, StubDecoder, make_frame


def run_steps(loop, count):
    return [loop.step() for _ in range(count)]


def drain(channel):
    return [channel._queue.get_nowait() for _ in range(channel.qsize())]


def test_cold_scan_single_success():
    camera = FakeCamera([make_frame() for _ in range(25)])
    decoder = StubDecoder("ABC")
    loop = ScanLoop(camera, decoder, ResultChannel())

    run_steps(loop, 25)

    snap = loop.snapshot()
    assert drain(loop.channel) == ["ABC"]
    assert snap.decode_attempts == 5
    assert snap.consecutive_failures == 0
    assert snap.interval == 90


def test_pure_failure_backoff():
    camera = FakeCamera([make_frame() for _ in range(60)])
    loop = ScanLoop(camera, StubDecoder(NotFoundError), ResultChannel())

    run_steps(loop, 60)

    snap = loop.snapshot()
    assert snap.decode_attempts == 12
    assert snap.consecutive_failures == 12
    assert snap.interval == min(500, 100 + (12 - 5) * 50) == 450
    assert loop.channel.qsize() == 0


def test_failures_then_success():
    camera = FakeCamera([make_frame() for _ in range(35)])
    decoder = StubDecoder(*([NotFoundError] * 6 + ["X"]))
    loop = ScanLoop(camera, decoder, ResultChannel())

    run_steps(loop, 35)

    snap = loop.snapshot()
    assert drain(loop.channel) == ["X"]
    assert snap.consecutive_failures == 0
    assert snap.interval == 140


def test_null_frames_are_tolerated():
    frames = [None if i % 2 == 0 else make_frame() for i in range(50)]
    camera = FakeCamera(frames)
    decoder = StubDecoder(NotFoundError)
    loop = ScanLoop(camera, decoder, ResultChannel())

    outcomes = run_steps(loop, 50)

    snap = loop.snapshot()
    assert sum(o.kind is OutcomeKind.NO_FRAME for o in outcomes) == 25
    assert snap.frame_counter == 25
    assert snap.decode_attempts == 5
    assert snap.consecutive_failures == 5
    # five misses sit exactly at the threshold, so no backoff yet
    assert snap.interval == 100


def test_undersized_frames_never_reach_decoder():
    camera = FakeCamera([make_frame(200, 200) for _ in range(30)])
    decoder = StubDecoder("never")
    loop = ScanLoop(camera, decoder, ResultChannel())

    outcomes = run_steps(loop, 30)

    snap = loop.snapshot()
    assert decoder.calls == []
    assert snap.decode_attempts == 0
    assert (snap.interval, snap.consecutive_failures) == (100, 0)
    kinds = {o.kind for o in outcomes}
    assert kinds == {OutcomeKind.SKIPPED, OutcomeKind.NO_FRAME}


@pytest.mark.parametrize("n", [1, 4, 5, 6, 13, 25, 41])
def test_frame_skip_gate(n):
    camera = FakeCamera([make_frame() for _ in range(n)])
    decoder = StubDecoder(NotFoundError)
    loop = ScanLoop(camera, decoder, ResultChannel())

    outcomes = run_steps(loop, n)

    decoded_at = [i + 1 for i, o in enumerate(outcomes) if o.kind is OutcomeKind.NOT_FOUND]
    assert len(decoded_at) == n // FRAME_SKIP
    assert all(i % FRAME_SKIP == 0 for i in decoded_at)
    if n >= FRAME_SKIP:
        assert decoded_at[0] == FRAME_SKIP
    assert len(decoded_at) <= math.ceil(n / FRAME_SKIP)


def test_closed_camera_reports_no_camera():
    camera = FakeCamera([make_frame()], opened=False)
    loop = ScanLoop(camera, StubDecoder("A"), ResultChannel())

    outcome = loop.step()

    assert outcome.kind is OutcomeKind.NO_CAMERA
    assert camera.grabs == 0
    assert loop.snapshot().frame_counter == 0


@pytest.mark.parametrize("error", [NotFoundError, ChecksumError, FormatError])
def test_decoder_errors_count_as_not_found(error):
    camera = FakeCamera([make_frame() for _ in range(5)])
    loop = ScanLoop(camera, StubDecoder(error), ResultChannel())

    outcomes = run_steps(loop, 5)

    assert outcomes[-1].kind is OutcomeKind.NOT_FOUND
    assert loop.snapshot().consecutive_failures == 1


def test_decoder_gets_gray_roi_tile_and_try_harder():
    frame = np.zeros((480, 640, 3), dtype=np.uint8)
    frame[240, 320] = (255, 255, 255)
    camera = FakeCamera([frame] * 5)
    decoder = StubDecoder("A")
    loop = ScanLoop(camera, decoder, ResultChannel())

    run_steps(loop, 5)

    assert len(decoder.calls) == 1
    tile, hints = decoder.calls[0]
    assert tile.shape == (ROI_SIZE, ROI_SIZE)
    assert tile.dtype == np.uint8
    assert tile[240 - 90, 320 - 170] == 255
    assert hints == {DecodeHint.TRY_HARDER: True}


def test_found_outcome_carries_metadata():
    camera = FakeCamera([make_frame() for _ in range(5)])
    loop = ScanLoop(camera, StubDecoder("A"), ResultChannel())

    outcome = run_steps(loop, 5)[-1]

    assert outcome.kind is OutcomeKind.FOUND
    assert outcome.text == "A"
    assert outcome.metadata == {"orientation": 0}


def test_every_valid_frame_is_published_for_preview():
    seen = []
    frames = [make_frame(), None, make_frame(200, 200)]
    loop = ScanLoop(FakeCamera(frames), StubDecoder(), ResultChannel(), on_frame=seen.append)

    run_steps(loop, 3)

    assert len(seen) == 2
