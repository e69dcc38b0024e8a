# scheduler.py
"""Fixed-rate frame acquisition on a single background worker."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from blob_tracking.camera import DeviceUnavailable, FrameSource
from blob_tracking.common import CycleOutput, CycleResult
from blob_tracking.config import period_ms

logger = logging.getLogger(__name__)

Tick = Callable[[], CycleResult]
StartHook = Callable[[], None]
OutputCallback = Callable[[CycleOutput], None]


@dataclass(frozen=True)
class AcquisitionHandle:
    """Snapshot of the device / worker pair."""
    source_open: bool
    active: bool
    period_ms: int = 0


def next_deadline(deadline: float, now: float, period: float) -> float:
    """
    Advance ``deadline`` by one period. Slots that already passed are
    skipped rather than run back-to-back.
    """
    deadline += period
    if now > deadline:
        missed = int((now - deadline) // period) + 1
        deadline += missed * period
    return deadline


class AcquisitionScheduler:
    """
    ``start`` opens the frame source and runs ``tick`` once per period;
    ``stop`` is idempotent, waits at most one period for the in-flight tick
    and always closes the source.
    """

    def __init__(
        self,
        source: FrameSource,
        tick: Tick,
        on_output: Optional[OutputCallback] = None,
    ) -> None:
        self.source = source
        self._tick = tick
        self._on_output = on_output
        self._thread: Optional[threading.Thread] = None
        # Worker that outlived the bounded wait in stop(); still inside a tick
        self._draining: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()
        self._lock = threading.Lock()
        self._period_ms = 0

        # Runtime metrics
        self.ticks = 0
        self.failures = 0
        self.skipped_slots = 0

    # ------------------------------------------------------------------ #
    #   P U B L I C   A P I
    # ------------------------------------------------------------------ #
    def start(
        self,
        camera_index: int,
        fps: float,
        on_start: Optional[StartHook] = None,
    ) -> int:
        """
        Returns the scheduling period in milliseconds.

        Raises ``ConfigurationError`` for a non-positive fps (the device is
        not touched) and ``DeviceUnavailable`` if the camera cannot be opened.
        Raises ``RuntimeError`` while a worker is running, or while the one
        abandoned by a timed-out ``stop`` has not finished within one period.
        ``on_start`` runs once the scheduler is known to be idle, before the
        new worker is spawned.
        """
        period = period_ms(fps)
        with self._lock:
            if self._thread is not None:
                raise RuntimeError("acquisition already running")
            if self._draining is threading.current_thread():
                raise RuntimeError("cannot restart from inside a tick")
            if self._draining is not None:
                self._draining.join(timeout=period / 1000.0)
                if self._draining.is_alive():
                    raise RuntimeError("previous frame grabber is still finishing")
                self._draining = None
            if not self.source.open(camera_index):
                raise DeviceUnavailable(f"camera {camera_index} unavailable")
            if on_start is not None:
                on_start()

            logger.info("Current frame grab rate: %s fps", fps)
            logger.info("Calculated frame grab schedule: %d ms", period)
            self._period_ms = period
            self._stop_evt = threading.Event()
            self.ticks = self.failures = self.skipped_slots = 0
            self._thread = threading.Thread(
                target=self._run,
                args=(period / 1000.0, self._stop_evt),
                name="frame-grabber",
                daemon=True,
            )
            self._thread.start()
        return period

    def stop(self) -> None:
        with self._lock:
            thread, self._thread = self._thread, None
            period = self._period_ms
            try:
                if thread is None:
                    return
                logger.info("Stopping acquisition")
                self._stop_evt.set()
                if thread is threading.current_thread():
                    self._draining = thread
                else:
                    thread.join(timeout=period / 1000.0)
                    if thread.is_alive():
                        logger.warning(
                            "Frame grabber did not finish within %d ms, "
                            "releasing the camera anyway", period,
                        )
                        self._draining = thread
            finally:
                self.source.close()

    @property
    def active(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def draining(self) -> bool:
        thread = self._draining
        return thread is not None and thread.is_alive()

    @property
    def handle(self) -> AcquisitionHandle:
        return AcquisitionHandle(
            source_open=self.source.is_opened(),
            active=self.active,
            period_ms=self._period_ms,
        )

    # ------------------------------------------------------------------ #
    #   W O R K E R
    # ------------------------------------------------------------------ #
    def _run(self, period: float, stop_evt: threading.Event) -> None:
        deadline = time.monotonic()
        while not stop_evt.is_set():
            self._run_once()
            now = time.monotonic()
            new_deadline = next_deadline(deadline, now, period)
            self.skipped_slots += int(round((new_deadline - deadline) / period)) - 1
            deadline = new_deadline
            stop_evt.wait(max(0.0, deadline - now))

    def _run_once(self) -> None:
        self.ticks += 1
        try:
            result = self._tick()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Exception during the image elaboration: %s", exc, exc_info=True)
            self.failures += 1
            return

        if result.failed:
            self.failures += 1
            logger.warning("Frame processing failed: %s", result.reason)
            return
        if not result.ok:
            logger.debug("Cycle skipped: %s", result.reason)
            return
        if self._on_output is not None:
            try:
                self._on_output(result.output)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Output delivery failed: %s", exc)
