"""
UTC helpers.

Everything is stored and compared in UTC. Some drivers (SQLite) hand back
naive datetimes even for timezone-aware columns; `as_utc` normalises both.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
