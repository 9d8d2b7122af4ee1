"""
directorio/utils/timezone.py — UTC timestamps
Firestore hands back timezone-aware datetimes; everything stored is UTC.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import pytz

UTC = pytz.utc


def utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if dt.tzinfo is None:
        dt = UTC.localize(dt)
    return dt.astimezone(UTC)


def epoch_ms(dt: Optional[datetime] = None) -> int:
    """Milliseconds since the epoch, for rate-limit state and file names."""
    dt = ensure_utc(dt or utc_now())
    return int(dt.timestamp() * 1000)


def parse_cursor(value: Any) -> Optional[datetime]:
    """
    Accept an ISO-8601 string or a datetime as a search cursor.
    Returns None for empty input; raises ValueError for garbage.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))
