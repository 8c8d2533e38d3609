"""
Tagged state wrapper for optimistic local mutations.

An entry is applied to in-memory plant state before the persistence gateway
confirms it, then reconciled:

    entry = pending(observation)        # shown immediately
    entry = confirm(entry, saved_row)   # replaced by the persisted row
    entry = fail(entry, "timeout")      # flagged, then rolled back by the caller

Entries are plain dicts so they serialize the same way Supabase rows do.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

PENDING = "pending"
CONFIRMED = "confirmed"
FAILED = "failed"

_STATES = (PENDING, CONFIRMED, FAILED)


def _entry(state: str, data: Any, error: Optional[str] = None) -> Dict[str, Any]:
    return {"state": state, "data": data, "error": error}


def pending(data: Any) -> Dict[str, Any]:
    """Wrap data that has been applied locally but not yet persisted."""
    return _entry(PENDING, data)


def confirm(entry: Dict[str, Any], confirmed_data: Any = None) -> Dict[str, Any]:
    """
    Mark an entry as confirmed.

    Args:
        entry: A pending entry
        confirmed_data: The persisted row; replaces the optimistic data when given

    Raises:
        ValueError: if the entry already failed
    """
    if entry.get("state") == FAILED:
        raise ValueError("Cannot confirm an entry that already failed")
    data = confirmed_data if confirmed_data is not None else entry.get("data")
    return _entry(CONFIRMED, data)


def fail(entry: Dict[str, Any], error: str) -> Dict[str, Any]:
    """Mark an entry as failed, keeping its data for display or retry."""
    if entry.get("state") == CONFIRMED:
        raise ValueError("Cannot fail an entry that is already confirmed")
    return _entry(FAILED, entry.get("data"), error)


def is_wrapped(value: Any) -> bool:
    return isinstance(value, dict) and value.get("state") in _STATES and "data" in value


def is_pending(value: Any) -> bool:
    return is_wrapped(value) and value["state"] == PENDING


def is_failed(value: Any) -> bool:
    return is_wrapped(value) and value["state"] == FAILED


def unwrap(value: Any) -> Any:
    """Return the payload of a wrapped entry, or the value itself if unwrapped."""
    return value["data"] if is_wrapped(value) else value


def visible_items(values) -> list:
    """Unwrap a list that may mix wrapped and plain items, dropping failed entries."""
    return [unwrap(v) for v in values or [] if not is_failed(v)]
