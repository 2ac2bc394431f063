"""
Common utility functions used across services, stores and routes.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_ts(value: object) -> Optional[datetime]:
    """Parse an ISO timestamp (with or without Z suffix). Returns None if unparseable."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def iso_format(dt: datetime) -> str:
    """Format datetime as ISO string with Z suffix."""
    return ensure_utc(dt).replace(tzinfo=None).isoformat() + "Z"


def epoch_ms(dt: Optional[datetime] = None) -> int:
    return int((dt or utcnow()).timestamp() * 1000)


def clamp(value: int, low: int, high: int) -> int:
    """Clamp value into [low, high]; high below low collapses to low."""
    return max(low, min(value, max(low, high)))
