import csv
import io
from datetime import datetime, timezone

BYTES_PER_GB = 1024 * 1024 * 1024


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_z(dt: datetime | None) -> str | None:
    """Return an ISO-8601 string in UTC with trailing 'Z' (or None)."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def parse_datetime_safe(value: str):
    """Parse an ISO timestamp into naive UTC, or None when it does not parse."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_gb(num_bytes, digits=2) -> float:
    return round((num_bytes or 0) / BYTES_PER_GB, digits)


def mean(values) -> float:
    values = [v for v in values if v is not None]
    return sum(values) / len(values) if values else 0


def peak(values) -> float:
    values = [v for v in values if v is not None]
    return max(values) if values else 0


def rows_to_csv(rows, fieldnames) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=fieldnames, extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()
