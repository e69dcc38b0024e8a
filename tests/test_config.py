import threading

import pytest

from blob_tracking.common import BoundingRect
from blob_tracking.config import (
    ColorRange,
    ConfigurationError,
    DecisionConfig,
    SharedColorRange,
    period_ms,
)


@pytest.mark.parametrize("fps, expected", [(10, 100), (30, 33), (15, 67), (1, 1000), (0.5, 2000)])
def test_period_from_fps(fps, expected):
    assert period_ms(fps) == expected


@pytest.mark.parametrize("fps", [0, -1, -0.5, None])
def test_non_positive_fps_is_rejected(fps):
    with pytest.raises(ConfigurationError):
        period_ms(fps)


@pytest.mark.parametrize("fps, expected", [(80, 13), (400, 3), (2000, 1)])
def test_period_halves_round_up(fps, expected):
    assert period_ms(fps) == expected


def test_very_high_fps_clamps_to_one_ms():
    assert period_ms(10_000) == 1


def test_default_color_range_is_valid():
    cr = ColorRange().validate()
    assert cr.lower == (33, 9, 146)
    assert cr.upper == (88, 255, 255)


@pytest.mark.parametrize(
    "lower, upper",
    [
        ((50, 0, 0), (40, 255, 255)),   # hue inverted
        ((0, 0, 0), (181, 255, 255)),   # hue above 180
        ((0, -1, 0), (10, 255, 255)),   # negative saturation
        ((0, 0, 0), (10, 255, 256)),    # value above 255
        ((0, 0), (10, 255, 255)),       # wrong arity
    ],
)
def test_invalid_color_ranges(lower, upper):
    with pytest.raises(ConfigurationError):
        ColorRange(lower, upper).validate()


def test_color_range_from_dict_roundtrip_keys():
    cr = ColorRange.from_dict({"hsv_lower": [1, 2, 3], "hsv_upper": [4, 5, 6]})
    assert cr == ColorRange((1, 2, 3), (4, 5, 6))
    assert cr.to_dict() == {"hsv_lower": [1, 2, 3], "hsv_upper": [4, 5, 6]}


def test_color_range_from_values_rejects_garbage():
    with pytest.raises(ConfigurationError):
        ColorRange.from_values(["a", 0, 0], [1, 1, 1])
    with pytest.raises(ConfigurationError):
        ColorRange.from_dict({"hsv_lower": [0, 0, 0]})


def test_describe_lists_all_channels():
    text = ColorRange((1, 2, 3), (4, 5, 6)).describe()
    assert "Hue range: 1-4" in text
    assert "Saturation range: 2-5" in text
    assert "Value range: 3-6" in text


def test_shared_color_range_rejects_invalid_and_keeps_old():
    shared = SharedColorRange()
    before = shared.get()
    with pytest.raises(ConfigurationError):
        shared.set(ColorRange((90, 0, 0), (10, 255, 255)))
    assert shared.get() is before


def test_shared_color_range_snapshots_are_whole_values():
    shared = SharedColorRange(ColorRange((0, 0, 0), (10, 10, 10)))
    a = ColorRange((0, 0, 0), (10, 10, 10))
    b = ColorRange((100, 100, 100), (120, 120, 120))
    stop = threading.Event()

    def writer():
        while not stop.is_set():
            shared.set(a)
            shared.set(b)

    t = threading.Thread(target=writer)
    t.start()
    try:
        for _ in range(2000):
            assert shared.get() in (a, b)
    finally:
        stop.set()
        t.join()


def test_decision_config_validation():
    DecisionConfig().validate()
    with pytest.raises(ConfigurationError):
        DecisionConfig(selection="best").validate()
    with pytest.raises(ConfigurationError):
        DecisionConfig(target_width=0).validate()


@pytest.mark.parametrize(
    "a, b, expected",
    [
        (BoundingRect(0, 0, 10, 10), BoundingRect(5, 5, 10, 10), True),
        (BoundingRect(0, 0, 10, 10), BoundingRect(10, 0, 10, 10), False),  # shared edge
        (BoundingRect(0, 0, 10, 10), BoundingRect(0, 10, 10, 10), False),
        (BoundingRect(0, 0, 100, 100), BoundingRect(40, 40, 5, 5), True),  # contained
        (BoundingRect(0, 0, 10, 10), BoundingRect(20, 20, 5, 5), False),
        (BoundingRect(0, 0, 0, 10), BoundingRect(0, 0, 10, 10), False),    # empty
        (BoundingRect(0, 0, 10, 10), BoundingRect(5, -20, 2, 100), True),  # crossing
    ],
)
def test_rect_intersection_is_symmetric(a, b, expected):
    assert a.intersects(b) is expected
    assert b.intersects(a) is expected


def test_rect_corners():
    r = BoundingRect(3, 4, 10, 20)
    assert r.tl == (3, 4)
    assert r.br == (13, 24)
    assert r.area == 200
