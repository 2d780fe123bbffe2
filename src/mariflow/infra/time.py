"""Time utilities for consistent timestamp handling."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """Return current UTC timestamp as ISO-8601 string (envelope format)."""
    return utc_now().isoformat().replace("+00:00", "Z")


def to_epoch_ms(value: datetime | None) -> int:
    """Convert an aware datetime to epoch milliseconds (0 for None)."""
    if value is None:
        return 0
    return int(value.timestamp() * 1000)
