"""
Health score normalization.

Single source of truth for turning a health analysis into a numeric score:

- A recognized `overall_health` category maps through HEALTH_SCORE_MAP and
  takes precedence over any confidence value.
- Otherwise a numeric `confidence` is used: values <= 1 are fractions and are
  scaled x100, larger values are taken as-is.
- Nothing usable -> None (callers supply their own default).

normalize_health() never clamps so trend math sees the raw signal; anything
shown to a user goes through clamp_score().
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from planthealth.constants import HEALTH_SCORE_MAP
from planthealth.utils.dates import parse_datetime
from planthealth.utils.optimistic import visible_items


def recognized_category(value: Any) -> Optional[str]:
    """Return the normalized category name if it has a fixed score, else None."""
    if not isinstance(value, str):
        return None
    category = value.strip().lower()
    return category if category in HEALTH_SCORE_MAP else None


def normalize_health(analysis: Optional[Dict[str, Any]]) -> Optional[float]:
    """
    Convert a health analysis into a numeric score.

    Args:
        analysis: Health analysis dict (overall_health, confidence, ...) or None

    Returns:
        Score (unclamped) or None when no score can be derived

    Examples:
        >>> normalize_health({"overall_health": "good", "confidence": 12})
        80
        >>> normalize_health({"overall_health": "unknown", "confidence": 0.5})
        50.0
    """
    if not analysis:
        return None

    category = recognized_category(analysis.get("overall_health"))
    if category:
        return HEALTH_SCORE_MAP[category]

    confidence = analysis.get("confidence")
    # bool is an int subclass; a True/False confidence is not a measurement
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        return confidence * 100 if confidence <= 1 else confidence

    return None


def clamp_score(score: Optional[float]) -> Optional[float]:
    """Clamp a score into [0, 100] for display."""
    if score is None:
        return None
    return max(0.0, min(100.0, float(score)))


def observation_score(observation: Dict[str, Any]) -> Optional[float]:
    return normalize_health(observation.get("health_analysis"))


def sort_observations(observations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Return observations in ascending timestamp order.

    Stable: observations sharing a timestamp keep their original relative order.
    Optimistic wrappers are unwrapped and failed entries dropped. Rows without
    a timestamp cannot be placed in time and are skipped.
    """
    items = [obs for obs in visible_items(observations) if parse_datetime(obs.get("timestamp")) is not None]
    return sorted(items, key=lambda obs: parse_datetime(obs.get("timestamp")))


def latest_observation(observations: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Most recent observation by timestamp (last in list order on ties)."""
    ordered = sort_observations(observations)
    return ordered[-1] if ordered else None


def effective_health_score(plant: Dict[str, Any]) -> Optional[float]:
    """
    Health score to show for a plant, clamped for display.

    Recomputes from the most recent observation's analysis instead of trusting
    the cached `health_score` scalar, which may lag after a partially failed
    write. Falls back to the stored scalar when the latest observation has no
    derivable score.
    """
    latest = latest_observation(plant.get("observations") or [])
    score = observation_score(latest) if latest else None
    if score is None:
        score = plant.get("health_score")
    return clamp_score(score)
