"""
Per-user cache of garden-wide aggregates and its invalidator.

Aggregates (garden summary, garden context, suggested questions, plant data)
are derived from a user's plants and observations. Any mutation of those
calls invalidate(user_id) before returning to its caller, which evicts every
aggregate kind for that user at once: an aggregate is either fully fresh or
not cached at all; nothing is patched field by field.

Read-through callers take a generation number before reading the underlying
rows and hand it back to put(). invalidate() bumps the generation, so a value
computed from pre-mutation rows is rejected instead of being cached after the
eviction that should have removed it.
"""

from __future__ import annotations
import logging
import threading
from typing import Any, Dict, Optional

from cachetools import TTLCache
from flask import current_app, has_app_context

from planthealth.config import get_config_value
from planthealth.constants import GARDEN_CACHE_KINDS

logger = logging.getLogger(__name__)

_TTL_CONFIG_KEYS = {
    "garden_summary": "GARDEN_CACHE_TTL_SUMMARY",
    "garden_context": "GARDEN_CACHE_TTL_CONTEXT",
    "suggested_questions": "GARDEN_CACHE_TTL_QUESTIONS",
    "plant_data": "GARDEN_CACHE_TTL_PLANT_DATA",
}

_caches: Dict[str, TTLCache] = {}
_generations: Dict[str, int] = {}
_cache_lock = threading.Lock()


def _log_debug(message: str) -> None:
    if has_app_context():
        current_app.logger.debug(message)
    else:
        logger.debug(message)


def _cache_for(kind: str) -> TTLCache:
    """Lazily build the TTLCache for a kind (caller holds the lock)."""
    if kind not in GARDEN_CACHE_KINDS:
        raise ValueError(f"Unknown garden cache kind: {kind}")
    cache = _caches.get(kind)
    if cache is None:
        cache = TTLCache(
            maxsize=get_config_value("GARDEN_CACHE_MAX_USERS", 1000),
            ttl=get_config_value(_TTL_CONFIG_KEYS[kind], 300),
        )
        _caches[kind] = cache
    return cache


def current_generation(user_id: str) -> int:
    """Generation to pass to put(); take it before reading the source rows."""
    with _cache_lock:
        return _generations.get(user_id, 0)


def get(user_id: str, kind: str) -> Optional[Any]:
    """Return the cached aggregate, or None on a miss or expiry."""
    with _cache_lock:
        value = _cache_for(kind).get(user_id)
    _log_debug(f"[GardenCache] {'HIT' if value is not None else 'MISS'} {kind} for user {user_id}")
    return value


def put(user_id: str, kind: str, value: Any, generation: Optional[int] = None) -> bool:
    """
    Store an aggregate.

    Args:
        user_id: Owner of the aggregate
        kind: One of GARDEN_CACHE_KINDS
        value: The aggregate
        generation: Value of current_generation() taken before the source read

    Returns:
        False if the user was invalidated since `generation` (nothing stored)
    """
    with _cache_lock:
        if generation is not None and _generations.get(user_id, 0) != generation:
            _log_debug(f"[GardenCache] Discarded stale {kind} for user {user_id}")
            return False
        _cache_for(kind)[user_id] = value
    return True


def invalidate(user_id: str) -> int:
    """
    Evict every cached aggregate for a user.

    Idempotent: calling it repeatedly leaves the same evicted state as once.

    Called when:
    - A plant is created, updated or deleted
    - An observation is added
    - A diagnosis is persisted

    Returns:
        Number of entries removed
    """
    removed = 0
    with _cache_lock:
        _generations[user_id] = _generations.get(user_id, 0) + 1
        for kind in GARDEN_CACHE_KINDS:
            cache = _cache_for(kind)
            if cache.pop(user_id, None) is not None:
                removed += 1
    _log_debug(f"[GardenCache] Invalidated {removed} aggregate(s) for user {user_id}")
    return removed


def purge_expired() -> None:
    """Drop expired entries from every kind (run periodically by the scheduler)."""
    with _cache_lock:
        for kind in GARDEN_CACHE_KINDS:
            _cache_for(kind).expire()


def clear_all() -> None:
    """
    Clear the entire garden cache.

    Useful for:
    - Testing
    - Manual cache invalidation after config changes
    """
    with _cache_lock:
        _caches.clear()
        _generations.clear()


def get_cache_stats(user_id: Optional[str] = None) -> Dict[str, Any]:
    """Entry counts per kind, plus the kinds currently cached for `user_id`."""
    with _cache_lock:
        stats = {
            "by_kind": {kind: len(_cache_for(kind)) for kind in GARDEN_CACHE_KINDS},
        }
        if user_id is not None:
            stats["user_kinds"] = [k for k in GARDEN_CACHE_KINDS if user_id in _cache_for(k)]
            stats["generation"] = _generations.get(user_id, 0)
    stats["total_entries"] = sum(stats["by_kind"].values())
    return stats
