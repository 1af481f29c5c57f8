"""Shared constants and date helpers."""

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

UNASSIGNED_TEAM = "Unassigned"
UNMATCHED_PROJECT = "Unmatched"

# First day analysed when the database holds no previous run.
DEFAULT_START_DATE = datetime(2025, 11, 1, tzinfo=timezone.utc)
DEFAULT_BASE_BRANCH = "main"


def _normalize_datetime(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_since(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO date or datetime string into an aware UTC datetime.

    Accepts ``2025-11-01``, ``2025-11-01T08:00:00`` and ``...Z`` suffixes.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = datetime.combine(date.fromisoformat(text), time.min)
    return _normalize_datetime(parsed)


def iter_day_windows(start: datetime, end: datetime) -> List[Tuple[datetime, datetime]]:
    """
    Split ``[start, end)`` into consecutive one-day windows.

    The first window begins at ``start`` itself; the last one is clipped
    to ``end``.
    """
    start = _normalize_datetime(start)
    end = _normalize_datetime(end)
    windows = []
    current = start
    while current < end:
        nxt = min(current + timedelta(days=1), end)
        windows.append((current, nxt))
        current = nxt
    return windows
