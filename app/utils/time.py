"""Time utilities (UTC now, UTC calendar day)."""
from __future__ import annotations
from datetime import date, datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def utc_day(value: datetime | None = None) -> date:
    return as_utc(value or utc_now()).date()

__all__ = ["utc_now", "as_utc", "utc_day"]
