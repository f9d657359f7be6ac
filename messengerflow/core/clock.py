"""Time helpers shared by the ingestion core and the agent client."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are assumed to already be UTC (SQLite drops the offset).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_ms(value: int | float) -> datetime:
    """Convert a platform millisecond epoch timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
