"""Utility helpers for Atsumeru."""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def clean_text(value: str | None) -> str | None:
    """Strip surrounding whitespace, turning blank strings into ``None``."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None
