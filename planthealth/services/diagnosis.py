"""
Health diagnosis updates (fresh analysis first, last known diagnosis as fallback).

update_diagnosis() runs these steps strictly in order:

1. Pick the plant's most recent observation.
2. Probe that the photo is reachable.
3. Ask the analysis service for a fresh assessment.
4. Require a recognized overall_health in the result.
5. Normalize the score, write the analysis onto the observation, then write
   the plant's health_score, then invalidate the owner's garden aggregates.

Any failure in steps 2-4 switches to the fallback: if the observation already
carries an analysis with a recognized overall_health, that analysis is
returned as-is with no writes (and so no invalidation). Otherwise the caller
gets DiagnosisUnavailable.

There is no per-plant lock: two concurrent updates for the same plant both
write, and the last health_score write wins.
"""

from __future__ import annotations
import logging
from typing import Any, Dict

import requests
from flask import current_app, has_app_context

from planthealth.utils.errors import (
    AnalysisServiceError,
    DiagnosisError,
    DiagnosisUnavailable,
    ImageProbeFailed,
    ImageUnreachable,
    IncompleteAnalysis,
    NoObservations,
    PersistenceFailure,
)
from planthealth.utils.image_probe import is_image_reachable
from planthealth.utils.sanitize import mask_image_url
from . import analysis, garden_cache, scoring, supabase_client

logger = logging.getLogger(__name__)

SOURCE_ANALYSIS = "analysis"
SOURCE_FALLBACK = "fallback"


def _logger():
    return current_app.logger if has_app_context() else logger


def _log_failure(stage: str, plant_id, observation_id, error: Exception) -> None:
    _logger().warning(
        f"[Diagnosis] stage={stage} plant={plant_id} observation={observation_id} "
        f"error={type(error).__name__}: {error}"
    )


def _request_analysis(plant: Dict[str, Any], observation: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Steps 2-4. Raises a DiagnosisError subclass on any failure."""
    plant_id = plant.get("id")
    observation_id = observation.get("id")
    image_url = observation.get("image_url")

    try:
        reachable = is_image_reachable(image_url)
    except requests.RequestException as e:
        raise ImageProbeFailed(
            f"Image probe failed: {type(e).__name__}",
            plant_id=plant_id,
            observation_id=observation_id,
        ) from e
    if not reachable:
        raise ImageUnreachable(
            f"Image not reachable: {mask_image_url(image_url)}",
            plant_id=plant_id,
            observation_id=observation_id,
        )

    metadata = {
        "plant_id": plant_id,
        "name": plant.get("name"),
        "species": plant.get("species"),
        "user_id": user_id,
    }
    try:
        result = analysis.analyze_plant_image(image_url, metadata)
    except AnalysisServiceError as e:
        e.observation_id = observation_id
        raise
    except Exception as e:
        # The analysis service is untrusted; anything it throws is a service failure
        raise AnalysisServiceError(
            f"Analysis service error: {type(e).__name__}",
            plant_id=plant_id,
            observation_id=observation_id,
        ) from e

    if not isinstance(result, dict) or not scoring.recognized_category(result.get("overall_health")):
        raise IncompleteAnalysis(
            "Analysis returned no recognized overall_health",
            plant_id=plant_id,
            observation_id=observation_id,
        )
    return result


def _fallback(plant: Dict[str, Any], observation: Dict[str, Any], cause: DiagnosisError) -> Dict[str, Any]:
    """Step 6/7: reuse the observation's existing analysis or fail terminally."""
    prior = observation.get("health_analysis")
    if prior and scoring.recognized_category(prior.get("overall_health")):
        _logger().info(
            f"[Diagnosis] Using last known analysis for plant={plant.get('id')} "
            f"observation={observation.get('id')} after {cause.stage} failure"
        )
        return {
            "health_score": scoring.normalize_health(prior),
            "health_analysis": prior,
            "updated_observation": observation,
            "source": SOURCE_FALLBACK,
        }

    _logger().error(
        f"[Diagnosis] No diagnosis available for plant={plant.get('id')} "
        f"observation={observation.get('id')} stage={cause.stage}"
    )
    raise DiagnosisUnavailable(cause, plant_id=plant.get("id"), observation_id=observation.get("id"))


def _persist(plant: Dict[str, Any], observation: Dict[str, Any], result: Dict[str, Any], score, user_id: str) -> None:
    """Write analysis, then score. A failed score write does not undo the analysis write."""
    plant_id = plant.get("id")
    observation_id = observation.get("id")

    ok, error = supabase_client.update_observation_analysis(observation_id, user_id, result)
    if not ok:
        failure = PersistenceFailure(
            f"Saving analysis failed: {error}",
            analysis_saved=False,
            plant_id=plant_id,
            observation_id=observation_id,
            stage="persist_analysis",
        )
        _log_failure(failure.stage, plant_id, observation_id, failure)
        raise failure

    ok, error = supabase_client.update_plant_health_score(plant_id, user_id, score)
    if not ok:
        # Observation already carries the new analysis; readers recompute the
        # score from it (scoring.effective_health_score), so evict aggregates too.
        garden_cache.invalidate(user_id)
        failure = PersistenceFailure(
            f"Saving health score failed: {error}",
            analysis_saved=True,
            plant_id=plant_id,
            observation_id=observation_id,
            stage="persist_score",
        )
        _log_failure(failure.stage, plant_id, observation_id, failure)
        raise failure


def update_diagnosis(plant: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """
    Refresh a plant's health diagnosis from its most recent photo.

    Args:
        plant: Plant dict with "id", "name", "species" and an "observations" list
        user_id: Owner of the plant (authorizes the analysis and the writes)

    Returns:
        {
            "health_score": float,
            "health_analysis": dict,
            "updated_observation": dict,   # unchanged on fallback
            "source": "analysis" | "fallback"
        }

    Raises:
        NoObservations: plant has no photos (no I/O is attempted)
        DiagnosisUnavailable: fresh analysis failed and no prior analysis exists
        PersistenceFailure: a gateway write failed (see analysis_saved)
    """
    plant_id = plant.get("id")
    latest = scoring.latest_observation(plant.get("observations") or [])
    if latest is None:
        raise NoObservations(plant_id=plant_id)

    observation_id = latest.get("id")
    _logger().info(f"[Diagnosis] Starting update for plant={plant_id} observation={observation_id}")

    try:
        result = _request_analysis(plant, latest, user_id)
    except DiagnosisError as e:
        _log_failure(e.stage, plant_id, observation_id, e)
        return _fallback(plant, latest, e)

    score = scoring.normalize_health(result)
    _persist(plant, latest, result, score, user_id)

    updated_observation = {**latest, "health_analysis": result}
    garden_cache.invalidate(user_id)

    _logger().info(
        f"[Diagnosis] Updated plant={plant_id} observation={observation_id} "
        f"overall_health={result['overall_health']} score={score}"
    )
    return {
        "health_score": score,
        "health_analysis": result,
        "updated_observation": updated_observation,
        "source": SOURCE_ANALYSIS,
    }


def apply_diagnosis(plant: Dict[str, Any], diagnosis: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of `plant` reflecting a diagnosis result.

    Replaces the updated observation in the list and sets health_score, so the
    caller's in-memory view matches what was persisted.
    """
    updated = diagnosis["updated_observation"]
    observations = [
        updated if obs.get("id") == updated.get("id") else obs
        for obs in plant.get("observations") or []
    ]
    return {**plant, "observations": observations, "health_score": diagnosis["health_score"]}
