# sinks.py
"""Consumers of per-cycle output: display handoff, frame files, serial signal."""
from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import cv2
import serial

from blob_tracking.common import CycleOutput, Direction

logger = logging.getLogger(__name__)

Sink = Callable[[CycleOutput], None]


class LatestHandoff:
    """Depth-1 handoff; a new item replaces one the consumer has not taken yet."""

    def __init__(self) -> None:
        self._q: "queue.Queue[CycleOutput]" = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self.dropped = 0

    def offer(self, item: CycleOutput) -> None:
        with self._lock:
            try:
                self._q.get_nowait()
                self.dropped += 1
            except queue.Empty:
                pass
            self._q.put_nowait(item)

    __call__ = offer

    def take(self, timeout: float | None = None) -> Optional[CycleOutput]:
        try:
            return self._q.get(timeout=timeout) if timeout else self._q.get_nowait()
        except queue.Empty:
            return None


class AsyncSink:
    """
    Run a slow sink on its own daemon thread.

    The acquisition worker only offers outputs to a ``LatestHandoff``; the
    consumer thread drains it, so a sink that blocks (disk, serial link) sees
    the newest output and skips whatever arrived while it was busy.
    """

    def __init__(self, sink: Sink, name: str | None = None) -> None:
        self.sink = sink
        self.handoff = LatestHandoff()
        self._stop_evt = threading.Event()
        self.delivered = 0
        self._thread = threading.Thread(
            target=self._consume,
            name=name or f"sink-{type(sink).__name__}",
            daemon=True,
        )
        self._thread.start()

    def __call__(self, out: CycleOutput) -> None:
        self.handoff.offer(out)

    @property
    def dropped(self) -> int:
        return self.handoff.dropped

    def _consume(self) -> None:
        while not self._stop_evt.is_set():
            out = self.handoff.take(timeout=0.1)
            if out is None:
                continue
            try:
                self.sink(out)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Sink %r failed: %s", self.sink, exc)
            else:
                self.delivered += 1

    def close(self, timeout: float = 1.0) -> None:
        """Stop the consumer, then close the wrapped sink if it can be closed."""
        self._stop_evt.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Sink %r did not finish within %.1f s", self.sink, timeout)
        close = getattr(self.sink, "close", None)
        if close is not None:
            close()

    def __repr__(self) -> str:
        return f"<AsyncSink {self.sink!r}>"


class FrameFileSink:
    """Write every annotated frame to ``<directory>/<prefix><n>.<ext>``."""

    def __init__(
        self,
        directory: str | Path,
        prefix: str = "frame-",
        ext: str = "png",
    ) -> None:
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self.ext = ext
        self.frame_number = 1

    def __call__(self, out: CycleOutput) -> None:
        path = self.directory / f"{self.prefix}{self.frame_number}.{self.ext}"
        try:
            ok = cv2.imwrite(str(path), out.frame)
        except cv2.error as exc:
            logger.warning("Failed to render frame %d: %s", self.frame_number, exc)
            return
        if not ok:
            logger.warning("Failed to render frame %d to %s", self.frame_number, path)
            return
        h, w = out.frame.shape[:2]
        logger.debug("Image acquired: %d x %d -> %s", w, h, path)
        self.frame_number += 1


class SerialDirectionSink:
    """
    Publish ``DIR <direction> <present>`` lines to a downstream controller.

    Only changes are sent, plus a keep-alive every ``resend_s`` seconds.
    After a write error the link is closed and re-opened no sooner than
    ``retry_s`` seconds later.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115_200,
        write_timeout: float = 0.05,
        *,
        resend_s: float = 1.0,
        retry_s: float = 5.0,
        eol: str = "\n",
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self.resend_s = resend_s
        self.retry_s = retry_s
        self._eol = eol
        self._ser: Optional[serial.Serial] = None
        self._last_line: Optional[str] = None
        self._last_sent = 0.0
        self._last_error = float("-inf")

    # ---------------- Serial plumbing ----------------
    def open(self) -> None:
        if self._ser and self._ser.is_open:
            return
        self._ser = serial.Serial(
            port=self.port,
            baudrate=self.baudrate,
            timeout=0,
            write_timeout=self.write_timeout,
        )
        logger.info("Direction link open on %s @ %d", self.port, self.baudrate)

    def close(self) -> None:
        if self._ser and self._ser.is_open:
            self._ser.close()
        self._ser = None

    def is_open(self) -> bool:
        return bool(self._ser and self._ser.is_open)

    @staticmethod
    def format_line(direction: Direction, present: bool) -> str:
        return f"DIR {int(direction)} {int(present)}"

    # ------------------ Sink ---------------------
    def __call__(self, out: CycleOutput) -> None:
        line = self.format_line(out.state.direction, out.state.object_present)
        now = time.monotonic()
        if line == self._last_line and now - self._last_sent < self.resend_s:
            return
        if not self.is_open():
            if now - self._last_error < self.retry_s:
                return
            try:
                self.open()
            except serial.SerialException as exc:
                logger.warning("Direction link unavailable: %s", exc)
                self._last_error = now
                return
        try:
            self._ser.write((line + self._eol).encode("ascii"))
        except serial.SerialException as exc:
            logger.warning("Direction link write error: %s", exc)
            self._last_error = now
            self.close()
            return
        self._last_line = line
        self._last_sent = now

    def __enter__(self) -> "SerialDirectionSink":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open() else "closed"
        return f"<SerialDirectionSink port={self.port!r} ({state})>"


class SinkFanout:
    """Deliver each output to several sinks; one failing sink does not starve the rest."""

    def __init__(self, sinks: Iterable[Sink] = ()) -> None:
        self.sinks: List[Sink] = list(sinks)

    def __call__(self, out: CycleOutput) -> None:
        for sink in self.sinks:
            try:
                sink(out)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Sink %r failed: %s", sink, exc)
