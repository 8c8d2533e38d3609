"""
Garden-wide aggregates for a user.

- Summary: total plants, average health, urgent actions, healthy plants
- Context: compact per-plant lines for AI prompts
- Suggested questions: rule-based prompts for the garden assistant

All three are cached per user in garden_cache and recomputed after any
mutation evicts them. Scores always come from scoring.effective_health_score.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional

from planthealth.config import get_config_value
from planthealth.constants import TREND_DECLINING
from . import evolution, garden_cache, scoring, supabase_client


def _latest_analysis(plant: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    latest = scoring.latest_observation(plant.get("observations") or [])
    return latest.get("health_analysis") if latest else None


def _has_high_severity_issue(plant: Dict[str, Any]) -> bool:
    analysis = _latest_analysis(plant) or {}
    return any(
        isinstance(issue, dict) and issue.get("severity") == "high"
        for issue in analysis.get("issues") or []
    )


def compute_garden_summary(plants: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Summarize a garden.

    Returns:
        {
            "total_plants": int,
            "average_health": float,    # plants without a score count as 0
            "urgent_actions": int,      # needs attention or high-severity issue
            "healthy_plants": int,      # score > HEALTHY_SCORE_THRESHOLD
            "needs_attention": int,     # score < ATTENTION_SCORE_THRESHOLD
        }
    """
    healthy_threshold = get_config_value("HEALTHY_SCORE_THRESHOLD", 80)
    attention_threshold = get_config_value("ATTENTION_SCORE_THRESHOLD", 60)

    scores = [scoring.effective_health_score(p) or 0.0 for p in plants]
    total = len(plants)

    needs_attention = [s < attention_threshold for s in scores]
    urgent = sum(
        1 for plant, attention in zip(plants, needs_attention)
        if attention or _has_high_severity_issue(plant)
    )

    return {
        "total_plants": total,
        "average_health": round(sum(scores) / total, 1) if total else 0.0,
        "urgent_actions": urgent,
        "healthy_plants": sum(1 for s in scores if s > healthy_threshold),
        "needs_attention": sum(needs_attention),
    }


def build_garden_context(plants: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Compact per-plant summaries (name, species, location, health, trend) for AI prompts."""
    context = []
    for plant in plants:
        periods = evolution.bucket_observations(plant.get("observations") or [])
        context.append({
            "plant_id": plant.get("id"),
            "name": plant.get("name"),
            "species": plant.get("species"),
            "location": plant.get("location"),
            "health": scoring.effective_health_score(plant),
            "trend": evolution.overall_trend(periods),
            "photo_count": sum(p["photo_count"] for p in periods),
        })
    return context


def suggested_questions(summary: Dict[str, Any], context: List[Dict[str, Any]], limit: int = 4) -> List[str]:
    """Rule-based questions for the garden assistant, most pressing first."""
    if not summary.get("total_plants"):
        return ["Which plants are easy to start with?"]

    questions = []
    attention_threshold = get_config_value("ATTENTION_SCORE_THRESHOLD", 60)

    struggling = sorted(
        (c for c in context if c.get("health") is not None and c["health"] < attention_threshold),
        key=lambda c: c["health"],
    )
    for item in struggling[:2]:
        questions.append(f"What can I do to help my {item.get('name') or 'plant'} recover?")

    declining = [c for c in context if c.get("trend") == TREND_DECLINING and c not in struggling]
    if declining:
        questions.append(f"Why is my {declining[0].get('name') or 'plant'} getting worse?")

    unphotographed = [c for c in context if not c.get("photo_count")]
    if unphotographed:
        questions.append("How often should I photograph my plants to track their health?")

    if summary.get("healthy_plants") == summary.get("total_plants"):
        questions.append("How can I keep my garden this healthy through the next season?")

    questions.append("Which of my plants needs attention first?")
    return questions[:limit]


def _load_plants(user_id: str) -> List[Dict[str, Any]]:
    return supabase_client.get_user_plants_with_observations(user_id)


def _read_through(user_id: str, kind: str, compute) -> Any:
    cached = garden_cache.get(user_id, kind)
    if cached is not None:
        return cached

    generation = garden_cache.current_generation(user_id)
    value = compute()
    garden_cache.put(user_id, kind, value, generation=generation)
    return value


def get_plant_data(user_id: str) -> List[Dict[str, Any]]:
    """User's plants with observations, cached briefly."""
    return _read_through(user_id, "plant_data", lambda: _load_plants(user_id))


def get_garden_summary(user_id: str) -> Dict[str, Any]:
    return _read_through(user_id, "garden_summary", lambda: compute_garden_summary(get_plant_data(user_id)))


def get_garden_context(user_id: str) -> List[Dict[str, Any]]:
    return _read_through(user_id, "garden_context", lambda: build_garden_context(get_plant_data(user_id)))


def get_suggested_questions(user_id: str) -> List[str]:
    return _read_through(
        user_id,
        "suggested_questions",
        lambda: suggested_questions(get_garden_summary(user_id), get_garden_context(user_id)),
    )
