"""
Timestamp parsing helpers.

Supabase returns timestamps as ISO strings (often with a trailing 'Z');
in-memory callers pass datetime objects. Everything is normalized to an
aware UTC datetime so ordering and window math never mix naive and aware values.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def parse_datetime(value) -> Optional[datetime]:
    """Parse a datetime value, handling ISO strings with Z timezone.

    Naive datetimes are assumed to be UTC. Returns None for None/empty input.

    Raises:
        ValueError: if a string value is not ISO-8601
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for JSON/Supabase payloads."""
    return value.isoformat() if value else None
