import threading
import time

import cv2
import numpy as np
import pytest

GREEN = (0, 255, 0)


def synthetic_frame(rect=(50, 200, 150, 260), color=GREEN, size=(640, 480)):
    """Black frame with one filled rectangle spanning x0..x1, y0..y1 (inclusive)."""
    w, h = size
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    if rect is not None:
        x0, y0, x1, y1 = rect
        cv2.rectangle(frame, (x0, y0), (x1, y1), color, -1)
    return frame


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, frames=None, opened=True, read_delay=0.0):
        self.frames = list(frames) if frames is not None else []
        self.opened = opened
        self.read_delay = read_delay
        self.props = {}
        self.reads = 0
        self.releases = 0

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        defaults = {cv2.CAP_PROP_FRAME_WIDTH: 640, cv2.CAP_PROP_FRAME_HEIGHT: 480,
                    cv2.CAP_PROP_FPS: 30.0}
        return self.props.get(prop, defaults.get(prop, 0))

    def read(self):
        self.reads += 1
        if self.read_delay:
            time.sleep(self.read_delay)
        if not self.frames:
            return False, None
        frame = self.frames[0] if len(self.frames) == 1 else self.frames.pop(0)
        return True, frame.copy()

    def release(self):
        self.releases += 1
        self.opened = False


class CaptureFactory:
    """Records open calls and hands out FakeCapture instances."""

    def __init__(self, frames=None, opened=True):
        self.frames = frames
        self.opened = opened
        self.calls = []
        self.captures = []

    def __call__(self, index, backend):
        self.calls.append((index, backend))
        cap = FakeCapture(self.frames, opened=self.opened)
        self.captures.append(cap)
        return cap


def wait_until(predicate, timeout=2.0, interval=0.005):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def frame():
    return synthetic_frame()


@pytest.fixture
def factory():
    return CaptureFactory(frames=[synthetic_frame()])


@pytest.fixture
def gate():
    evt = threading.Event()
    yield evt
    evt.set()
