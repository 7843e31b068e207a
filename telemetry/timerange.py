from dataclasses import dataclass
from datetime import datetime, timedelta

from errors import ValidationError
from utils import parse_datetime_safe, utcnow

RANGES = {
    "15m": timedelta(minutes=15),
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
DEFAULT_RANGE = "24h"


@dataclass
class Window:
    start: datetime
    end: datetime
    label: str

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def resolve_window(time_range=None, start=None, end=None, now=None, default=DEFAULT_RANGE) -> Window:
    """Explicit start/end wins over a range token; both are checked before use."""
    now = now or utcnow()
    if start or end:
        start_dt = parse_datetime_safe(start)
        end_dt = parse_datetime_safe(end) if end else now
        if start_dt is None:
            raise ValidationError(f"Invalid start timestamp: {start}")
        if end_dt is None:
            raise ValidationError(f"Invalid end timestamp: {end}")
        if start_dt > end_dt:
            raise ValidationError("start must not be after end")
        return Window(start=start_dt, end=end_dt, label="custom")

    label = time_range or default
    if label not in RANGES:
        raise ValidationError(f"Invalid timeRange: {label} (expected one of {', '.join(RANGES)})")
    return Window(start=now - RANGES[label], end=now, label=label)
