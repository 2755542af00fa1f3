"""Single server-side clock. Every window check reads time through here."""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return dt as a UTC tz-aware datetime. Naive values (SQLite round trips) are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(raw: str) -> datetime:
    """Parse ISO 8601 (trailing Z accepted) into UTC. Raises ValueError on bad input."""
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError('datetime must be a non-empty ISO 8601 string')
    dt = datetime.fromisoformat(raw.strip().replace('Z', '+00:00'))
    return ensure_utc(dt)


def isoformat_z(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace('+00:00', 'Z')

__all__ = ['utcnow', 'ensure_utc', 'parse_iso_datetime', 'isoformat_z']
