"""UTC helpers for tournament timestamps."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def _is_naive(value: datetime) -> bool:
    return value.tzinfo is None or value.utcoffset() is None


def require_utc(value: datetime | None, *, field_name: str = "timestamp") -> datetime | None:
    """Normalize a client-supplied datetime to UTC.

    Naive values are rejected with ``ValueError`` because the scheduling
    client always knows its own offset.
    """

    if value is None:
        return None
    if _is_naive(value):
        raise ValueError(f"{field_name} must include a timezone offset")
    return value.astimezone(timezone.utc)


def coerce_utc(value: datetime | None) -> datetime | None:
    """Normalize a stored datetime to UTC; naive values are taken as UTC."""

    if value is None:
        return None
    if _is_naive(value):
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
