"""
Timestamp helpers.

All timestamps in memory are timezone-aware UTC datetimes; on disk they are ISO-8601 strings.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an API or on-disk timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings (``Z`` suffix allowed), epoch milliseconds and datetimes.
    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def whole_hours_between(earlier: datetime, later: datetime) -> int:
    """Floor of the hours elapsed from ``earlier`` to ``later``, never negative."""
    seconds = (later - earlier).total_seconds()
    return max(0, int(seconds // 3600))
