from datetime import datetime, timedelta

import pytest

from errors import ValidationError
from telemetry.timerange import resolve_window

NOW = datetime(2024, 5, 1, 12, 0, 0)


@pytest.mark.parametrize("token,delta", [
    ("15m", timedelta(minutes=15)),
    ("1h", timedelta(hours=1)),
    ("6h", timedelta(hours=6)),
    ("24h", timedelta(hours=24)),
    ("7d", timedelta(days=7)),
    ("30d", timedelta(days=30)),
])
def test_range_tokens(token, delta):
    window = resolve_window(token, now=NOW)
    assert window.end == NOW
    assert window.start == NOW - delta
    assert window.label == token


def test_default_range():
    assert resolve_window(now=NOW).label == "24h"
    assert resolve_window(now=NOW, default="1h").start == NOW - timedelta(hours=1)


def test_unknown_token_is_rejected():
    with pytest.raises(ValidationError):
        resolve_window("2w", now=NOW)


def test_explicit_bounds_win_over_token():
    window = resolve_window("1h", start="2024-04-30T00:00:00Z", end="2024-04-30T06:00:00+02:00", now=NOW)
    assert window.start == datetime(2024, 4, 30, 0, 0)
    assert window.end == datetime(2024, 4, 30, 4, 0)
    assert window.label == "custom"
    assert window.minutes == 240


def test_start_without_end_runs_to_now():
    window = resolve_window(start="2024-05-01T11:00:00Z", now=NOW)
    assert window.end == NOW


@pytest.mark.parametrize("start,end", [
    ("yesterday", None),
    ("2024-05-01T00:00:00Z", "not-a-date"),
    ("2024-05-01T10:00:00Z", "2024-05-01T09:00:00Z"),
])
def test_bad_bounds_are_rejected(start, end):
    with pytest.raises(ValidationError):
        resolve_window(start=start, end=end, now=NOW)
