import time

import cv2
import pytest
import serial

from blob_tracking import sinks as sinks_mod
from blob_tracking.camera import FrameSource
from blob_tracking.common import CycleOutput, CycleResult, Direction, TrackerState
from blob_tracking.scheduler import AcquisitionScheduler
from blob_tracking.sinks import (
    AsyncSink,
    FrameFileSink,
    LatestHandoff,
    SerialDirectionSink,
    SinkFanout,
)

from conftest import CaptureFactory, synthetic_frame, wait_until


def _out(direction=Direction.LEFT, present=True, index=1):
    return CycleOutput(
        frame=synthetic_frame(),
        status="s",
        state=TrackerState(direction, present, None),
        index=index,
    )


def test_handoff_keeps_only_latest():
    h = LatestHandoff()
    for i in range(1, 4):
        h.offer(_out(index=i))
    assert h.take().index == 3
    assert h.take() is None
    assert h.dropped == 2


def test_handoff_take_times_out():
    assert LatestHandoff().take(timeout=0.01) is None


def test_frame_file_sink_writes_numbered_pngs(tmp_path):
    sink = FrameFileSink(tmp_path / "frames")
    sink(_out())
    sink(_out())
    first = tmp_path / "frames" / "frame-1.png"
    assert first.exists()
    assert (tmp_path / "frames" / "frame-2.png").exists()
    img = cv2.imread(str(first))
    assert img.shape == (480, 640, 3)


def test_frame_file_sink_logs_write_failures(tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(sinks_mod.cv2, "imwrite", lambda *_a: False)
    sink = FrameFileSink(tmp_path)
    sink(_out())
    assert sink.frame_number == 1
    assert "Failed to render frame 1" in caplog.text


class FakeSerial:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.is_open = True
        self.written = []
        self.fail = False
        FakeSerial.instances.append(self)

    def write(self, data):
        if self.fail:
            raise serial.SerialTimeoutException("write timeout")
        self.written.append(data)
        return len(data)

    def close(self):
        self.is_open = False


@pytest.fixture
def fake_serial(monkeypatch):
    FakeSerial.instances = []
    monkeypatch.setattr(sinks_mod.serial, "Serial", FakeSerial)
    return FakeSerial


def test_serial_sink_sends_changes_only(fake_serial):
    sink = SerialDirectionSink("/dev/null", resend_s=60)
    sink(_out(Direction.LEFT))
    sink(_out(Direction.LEFT))
    sink(_out(Direction.RIGHT))
    sink(_out(Direction.CENTERED, present=False))
    assert fake_serial.instances[0].written == [b"DIR -1 1\n", b"DIR 1 1\n", b"DIR 0 0\n"]


def test_serial_sink_recovers_after_write_error(fake_serial):
    sink = SerialDirectionSink("/dev/null", retry_s=0)
    sink(_out(Direction.LEFT))
    fake_serial.instances[0].fail = True
    sink(_out(Direction.RIGHT))
    assert not sink.is_open()
    sink(_out(Direction.RIGHT))
    assert len(fake_serial.instances) == 2
    assert fake_serial.instances[1].written == [b"DIR 1 1\n"]


def test_serial_sink_unavailable_port_is_not_fatal(monkeypatch):
    def refuse(**_kw):
        raise serial.SerialException("no such port")

    monkeypatch.setattr(sinks_mod.serial, "Serial", refuse)
    sink = SerialDirectionSink("/dev/missing")
    sink(_out())
    assert not sink.is_open()


def test_fanout_isolates_failing_sink():
    got = []

    def bad(_out):
        raise RuntimeError("down")

    fan = SinkFanout([bad, got.append])
    fan(_out())
    assert len(got) == 1


class RecordingSink:
    def __init__(self):
        self.indexes = []
        self.closed = False

    def __call__(self, out):
        self.indexes.append(out.index)

    def close(self):
        self.closed = True


def test_async_sink_delivers_and_closes_wrapped_sink():
    inner = RecordingSink()
    sink = AsyncSink(inner)
    sink(_out(index=7))
    assert wait_until(lambda: inner.indexes == [7])
    sink.close()
    assert inner.closed


def test_async_sink_survives_failing_sink(caplog):
    calls = []

    def flaky(out):
        calls.append(out.index)
        if len(calls) == 1:
            raise OSError("disk full")

    sink = AsyncSink(flaky)
    sink(_out(index=1))
    assert wait_until(lambda: len(calls) == 1)
    sink(_out(index=2))
    assert wait_until(lambda: sink.delivered == 1)
    sink.close()
    assert calls == [1, 2]
    assert "disk full" in caplog.text


def test_slow_sink_does_not_slow_the_schedule():
    seen = []

    def slow(out):
        time.sleep(0.2)
        seen.append(out)

    sink = AsyncSink(slow)
    source = FrameSource(capture_factory=CaptureFactory(frames=[synthetic_frame()]))
    sched = AcquisitionScheduler(source, lambda: CycleResult.success(_out()), sink)
    sched.start(0, 100)  # 10 ms period
    time.sleep(0.5)
    sched.stop()
    sink.close()
    assert sched.ticks >= 20
    assert len(seen) < sched.ticks
    assert sink.dropped > 0
