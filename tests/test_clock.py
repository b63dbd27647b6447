import threading
from datetime import datetime

import pytest

from alarms.clock import ClockTicker, add_minutes, minute_key, normalize_hhmm, parse_hhmm
from alarms.errors import ValidationError


@pytest.mark.parametrize(
    "start, minutes, expected",
    [
        ("23:58", 5, "00:03"),
        ("10:02", 5, "10:07"),
        ("10:55", 5, "11:00"),
        ("23:59", 1, "00:00"),
    ],
)
def test_add_minutes_wraps_24h(start, minutes, expected):
    assert add_minutes(start, minutes) == expected


@pytest.mark.parametrize("value", ["", "7", "24:00", "12:60", "ab:cd", "07:00:00"])
def test_parse_rejects_malformed_times(value):
    with pytest.raises(ValidationError):
        parse_hhmm(value)


def test_normalize_pads_single_digit_hour():
    assert normalize_hhmm("7:05") == "07:05"
    assert normalize_hhmm(" 19:30 ") == "19:30"


def test_minute_key_ignores_seconds():
    assert minute_key(datetime(2025, 1, 1, 7, 0, 1)) == minute_key(datetime(2025, 1, 1, 7, 0, 59))
    assert minute_key(datetime(2025, 1, 1, 7, 0)) != minute_key(datetime(2025, 1, 2, 7, 0))


def test_tick_once_passes_clock_time():
    seen = []
    fixed = datetime(2025, 1, 1, 7, 0, 0)
    ticker = ClockTicker(seen.append, clock=lambda: fixed)

    assert ticker.tick_once() == fixed
    assert seen == [fixed]


def test_interval_is_clamped_to_once_per_second():
    assert ClockTicker(lambda now: None, interval=5).interval == 1.0
    assert ClockTicker(lambda now: None, interval=0.01).interval == 0.2


def test_ticker_thread_keeps_running_after_failed_tick():
    calls = []
    done = threading.Event()

    def on_tick(now):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("boom")
        done.set()

    ticker = ClockTicker(on_tick, interval=0.2)
    ticker.start()
    try:
        assert done.wait(3)
    finally:
        ticker.shutdown()
    assert not ticker.running
