"""
Shared constants used across the application.

This module contains constants that need to be consistent across
different parts of the application (scoring, evolution, analysis, API).
"""

# Categorical health -> numeric score. Every component derives scores from
# this table through services.scoring; never inline a copy of it.
HEALTH_SCORE_MAP = {
    "excellent": 95,
    "good": 80,
    "fair": 60,
    "poor": 30,
    "critical": 20,
}

# "unknown" is accepted from the analysis provider but has no fixed score
HEALTH_CATEGORIES = tuple(HEALTH_SCORE_MAP) + ("unknown",)

# Trend labels (per-period and overall)
TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"

# Evolution defaults (overridable via config)
EVOLUTION_PERIOD_DAYS = 30
OVERALL_TREND_DEADBAND = 5

# Garden summary thresholds
HEALTHY_SCORE_THRESHOLD = 80
ATTENTION_SCORE_THRESHOLD = 60

# Health analysis vocabulary (as requested from the analysis provider)
ISSUE_TYPES = ("overwatering", "underwatering", "pest", "disease", "nutrient", "light", "other")
ISSUE_SEVERITIES = ("low", "medium", "high")
GROWTH_STAGES = ("seedling", "juvenile", "mature", "flowering", "dormant")

# Aggregate kinds held per user in the garden cache
GARDEN_CACHE_KINDS = ("garden_summary", "garden_context", "suggested_questions", "plant_data")
