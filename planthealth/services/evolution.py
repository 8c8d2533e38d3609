"""
Plant evolution tracking.

Groups a plant's observations into consecutive time periods and classifies how
health moves between them. Periods are a read-time projection of the plant's
current observation list: recomputed on every request, never cached or stored.

Bucketing:
- Observations are sorted by timestamp (stable).
- A period is anchored at its first observation; later observations join it
  while they fall within EVOLUTION_PERIOD_DAYS of that anchor.
- The first observation past the window closes the period and anchors the next.
- A period's average uses only observations with a derivable score (0 when
  none have one); photo_count still counts every observation.

Trends:
- Per period: the first period is always "stable"; later periods are
  "improving" when their average is strictly above the previous period's,
  otherwise "declining" (equal averages included).
- Overall: last vs. first period average with a +/- OVERALL_TREND_DEADBAND
  dead-band.
"""

from __future__ import annotations
from datetime import timedelta
from typing import Any, Dict, List, Optional

from planthealth.config import get_config_value
from planthealth.constants import TREND_DECLINING, TREND_IMPROVING, TREND_STABLE
from planthealth.utils.dates import parse_datetime
from . import scoring


def _close_period(index: int, observations: List[Dict[str, Any]], previous: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    scores = [s for s in (scoring.observation_score(obs) for obs in observations) if s is not None]
    average = sum(scores) / len(scores) if scores else 0

    if previous is None:
        trend = TREND_STABLE
    elif average > previous["average_score"]:
        trend = TREND_IMPROVING
    else:
        trend = TREND_DECLINING

    return {
        "id": f"period-{index}",
        "start_date": parse_datetime(observations[0].get("timestamp")),
        "end_date": parse_datetime(observations[-1].get("timestamp")),
        "observations": list(observations),
        "average_score": average,
        "trend": trend,
        "photo_count": len(observations),
        "scored_count": len(scores),
    }


def bucket_observations(
    observations: List[Dict[str, Any]],
    period_days: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Partition observations into non-overlapping evolution periods.

    Args:
        observations: Plant observations (dicts with timestamp, health_analysis, ...)
        period_days: Window length; defaults to EVOLUTION_PERIOD_DAYS

    Returns:
        Periods ordered by start_date. Every input observation appears in
        exactly one period. Empty input -> [].
    """
    ordered = scoring.sort_observations(observations)
    if not ordered:
        return []

    if period_days is None:
        period_days = get_config_value("EVOLUTION_PERIOD_DAYS", 30)
    window = timedelta(days=period_days)

    periods: List[Dict[str, Any]] = []
    period_start = parse_datetime(ordered[0].get("timestamp"))
    current: List[Dict[str, Any]] = []

    for obs in ordered:
        taken_at = parse_datetime(obs.get("timestamp"))
        if taken_at - period_start <= window:
            current.append(obs)
            continue

        periods.append(_close_period(len(periods), current, periods[-1] if periods else None))
        period_start = taken_at
        current = [obs]

    periods.append(_close_period(len(periods), current, periods[-1] if periods else None))
    return periods


def overall_trend(periods: List[Dict[str, Any]], deadband: Optional[float] = None) -> Optional[str]:
    """
    Compare the last period's average against the first.

    Returns None when there are fewer than two periods (nothing to compare).
    """
    if len(periods) < 2:
        return None

    if deadband is None:
        deadband = get_config_value("OVERALL_TREND_DEADBAND", 5)

    diff = periods[-1]["average_score"] - periods[0]["average_score"]
    if diff > deadband:
        return TREND_IMPROVING
    if diff < -deadband:
        return TREND_DECLINING
    return TREND_STABLE


def score_history(observations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Chronological (timestamp, score) points for charting; unscored photos are skipped."""
    history = []
    for obs in scoring.sort_observations(observations):
        score = scoring.observation_score(obs)
        if score is None:
            continue
        history.append({
            "observation_id": obs.get("id"),
            "timestamp": parse_datetime(obs.get("timestamp")),
            "score": scoring.clamp_score(score),
            "image_url": obs.get("image_url"),
        })
    return history


def serialize_period(period: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-friendly period: observation ids instead of full rows, display-clamped average."""
    return {
        "id": period["id"],
        "start_date": period["start_date"].isoformat(),
        "end_date": period["end_date"].isoformat(),
        "observation_ids": [obs.get("id") for obs in period["observations"]],
        "average_score": scoring.clamp_score(period["average_score"]),
        "trend": period["trend"],
        "photo_count": period["photo_count"],
        "scored_count": period["scored_count"],
    }


def build_evolution(plant: Dict[str, Any]) -> Dict[str, Any]:
    """
    Full evolution view for one plant.

    Returns:
        {
            "plant_id": str,
            "periods": [serialized period, ...],
            "overall_trend": "improving|declining|stable" | None,
            "score_history": [{"observation_id", "timestamp", "score", "image_url"}, ...],
            "current_score": float | None
        }
    """
    observations = plant.get("observations") or []
    periods = bucket_observations(observations)

    history = [
        {**point, "timestamp": point["timestamp"].isoformat()}
        for point in score_history(observations)
    ]

    return {
        "plant_id": plant.get("id"),
        "periods": [serialize_period(p) for p in periods],
        "overall_trend": overall_trend(periods),
        "score_history": history,
        "current_score": scoring.effective_health_score(plant),
    }
