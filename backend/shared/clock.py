"""Time helpers. All ledger timestamps are timezone-aware UTC."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    """`ensure_utc` for nullable fields; used by model validators."""
    return None if value is None else ensure_utc(value)
