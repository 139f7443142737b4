"""Scan control loop.

One iteration: sleep, grab a frame, apply the frame-skip gate, crop the
centered ROI, convert to luminance, decode, then feed the outcome into the
dedup set and the adaptive cadence. Accepted strings leave through a
ResultChannel; nothing else is shared with other threads.
"""

import enum
import logging
import queue
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, FrozenSet, Optional

from datamatrix_scanner.config import (
    BACKOFF_STEP,
    CHANNEL_POLL_S,
    FAILURE_THRESHOLD,
    FRAME_SKIP,
    RECOVERY_STEP,
    ROI_SIZE,
    SCAN_INTERVAL_INITIAL,
    SCAN_INTERVAL_MAX,
    SCAN_INTERVAL_MIN,
)
from datamatrix_scanner.decoder import DecodeError, DecodeHint
from datamatrix_scanner.imaging import FrameTooSmall, crop_roi, to_luminance

logger = logging.getLogger(__name__)


class ScanInterrupted(Exception):
    pass


class OutcomeKind(enum.Enum):
    NO_CAMERA = "no_camera"
    NO_FRAME = "no_frame"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    FOUND = "found"


@dataclass(frozen=True)
class DecodeOutcome:
    kind: OutcomeKind
    text: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    # Set on FOUND outcomes whose text was already surfaced this session
    duplicate: bool = False


@dataclass
class Cadence:
    interval: int = SCAN_INTERVAL_INITIAL
    consecutive_failures: int = 0

    def __post_init__(self):
        self.interval = min(SCAN_INTERVAL_MAX, max(SCAN_INTERVAL_MIN, self.interval))

    def on_failure(self):
        self.consecutive_failures += 1
        if self.consecutive_failures > FAILURE_THRESHOLD:
            self.interval = min(SCAN_INTERVAL_MAX, self.interval + BACKOFF_STEP)

    def on_success(self):
        self.consecutive_failures = 0
        self.interval = max(SCAN_INTERVAL_MIN, self.interval - RECOVERY_STEP)


@dataclass(frozen=True)
class ScanSnapshot:
    interval: int
    consecutive_failures: int
    frame_counter: int
    decode_attempts: int
    seen: FrozenSet[str]


class SessionClock:
    def __init__(self, start: Optional[float] = None):
        self.start = time.monotonic() if start is None else start

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)


class ResultChannel:
    """Unbounded FIFO of accepted strings, worker to UI updater."""

    def __init__(self, poll_s: float = CHANNEL_POLL_S):
        self.poll_s = poll_s
        self._queue: "queue.Queue[str]" = queue.Queue()

    def put(self, text: str) -> None:
        self._queue.put_nowait(text)

    def take(self, stop_event: threading.Event) -> str:
        """Block until a string is available. Raises ScanInterrupted once stop_event is set."""
        while not stop_event.is_set():
            try:
                return self._queue.get(timeout=self.poll_s)
            except queue.Empty:
                continue
        raise ScanInterrupted("Result channel take interrupted")

    def qsize(self) -> int:
        return self._queue.qsize()


class ScanLoop:
    def __init__(
        self,
        camera,
        decoder,
        channel: ResultChannel,
        stop_event: Optional[threading.Event] = None,
        clock: Optional[SessionClock] = None,
        on_frame: Optional[Callable[[Any], None]] = None,
        roi_size: int = ROI_SIZE,
    ):
        self.camera = camera
        self.decoder = decoder
        self.channel = channel
        self.stop_event = stop_event or threading.Event()
        self.clock = clock or SessionClock()
        self.on_frame = on_frame
        self.roi_size = roi_size
        self.hints = {DecodeHint.TRY_HARDER: True}

        # Worker-local state, only published through snapshot()
        self._cadence = Cadence()
        self._seen = set()
        self._frame_counter = 0
        self._decode_attempts = 0

    def snapshot(self) -> ScanSnapshot:
        return ScanSnapshot(
            interval=self._cadence.interval,
            consecutive_failures=self._cadence.consecutive_failures,
            frame_counter=self._frame_counter,
            decode_attempts=self._decode_attempts,
            seen=frozenset(self._seen),
        )

    def sleep(self):
        if self.stop_event.wait(self._cadence.interval / 1000.0):
            raise ScanInterrupted("Scan loop interrupted")

    def run(self):
        """Scan until interrupted. The camera is released on the way out."""
        logger.info("Scan loop started, interval %d ms", self._cadence.interval)
        try:
            while True:
                self.sleep()
                self.step()
        except ScanInterrupted as e:
            logger.info("%s", e)
            self.stop_event.set()
        finally:
            self.camera.close()
            logger.info("Camera released")

    def step(self) -> DecodeOutcome:
        if not self.camera.is_open():
            logger.warning("Webcam is not open.")
            return DecodeOutcome(OutcomeKind.NO_CAMERA)

        frame = self.camera.get_image()
        if frame is None:
            logger.warning("Webcam image is null.")
            return DecodeOutcome(OutcomeKind.NO_FRAME)

        if self.on_frame is not None:
            self.on_frame(frame)

        # Only valid frames advance the counter
        self._frame_counter += 1
        if self._frame_counter % FRAME_SKIP != 0:
            return DecodeOutcome(OutcomeKind.SKIPPED)

        return self.apply(self.decode_frame(frame))

    def decode_frame(self, frame) -> DecodeOutcome:
        try:
            roi = crop_roi(frame, self.roi_size)
        except FrameTooSmall as e:
            logger.warning("%s", e)
            return DecodeOutcome(OutcomeKind.NO_FRAME)

        tile = to_luminance(roi)
        self._decode_attempts += 1
        try:
            result = self.decoder.decode(tile, self.hints)
        except DecodeError:
            return DecodeOutcome(OutcomeKind.NOT_FOUND)

        logger.debug(
            "Decoded %s, %d bits, %d raw bytes, orientation %s",
            result.barcode_format,
            result.num_bits,
            len(result.raw_bytes),
            result.metadata.get("orientation", "n/a"),
        )
        return DecodeOutcome(OutcomeKind.FOUND, text=result.text, metadata=dict(result.metadata))

    def apply(self, outcome: DecodeOutcome) -> DecodeOutcome:
        """Feed an outcome into the dedup set and cadence. Returns the outcome as classified."""
        if outcome.kind is OutcomeKind.NOT_FOUND:
            self._cadence.on_failure()
            if self._cadence.consecutive_failures == FAILURE_THRESHOLD + 1:
                logger.debug("No code for %d attempts, backing off", self._cadence.consecutive_failures)
            return outcome

        if outcome.kind is not OutcomeKind.FOUND:
            return outcome

        if outcome.text in self._seen:
            return replace(outcome, duplicate=True)

        self._seen.add(outcome.text)
        self.channel.put(outcome.text)
        self._cadence.on_success()
        logger.info("Data Matrix scanned: %s (%d ms after start)", outcome.text, self.clock.elapsed_ms())
        if outcome.metadata:
            logger.info("Result metadata: %s", outcome.metadata)
        return outcome


def pump_results(channel: ResultChannel, stop_event: threading.Event, post: Callable[[str], None]):
    """Move accepted strings from the channel to post() in FIFO order until interrupted."""
    try:
        while True:
            post(channel.take(stop_event))
    except ScanInterrupted:
        logger.info("Result updater interrupted")
        stop_event.set()
