from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def clean_text(value) -> str | None:
    """Strip strings; empty strings become None."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
