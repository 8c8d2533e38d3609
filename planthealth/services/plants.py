"""
Plant lifecycle operations.

Create, update and delete plants and append photo observations. Every
successful mutation evicts the owner's garden aggregates before returning.

add_observation() also keeps a caller's in-memory plant view in step with the
write: the new observation is shown immediately as a pending entry, replaced
by the confirmed row on success, and rolled back on failure.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Tuple

from planthealth.utils import optimistic
from planthealth.utils.dates import parse_datetime, to_iso, utc_now
from planthealth.utils.errors import log_info, log_warning
from planthealth.utils.validation import validate_image_url, validate_plant_fields
from . import garden_cache, scoring, supabase_client


def create_plant(user_id: str, plant_data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Create a plant.

    Returns:
        (plant, error_message)
    """
    fields, error = validate_plant_fields(plant_data, require_name=True)
    if error:
        return None, error

    plant, error = supabase_client.insert_plant(user_id, fields)
    if error:
        return None, error

    garden_cache.invalidate(user_id)
    log_info("Plant created", user_id=user_id, plant_id=plant.get("id"))
    return plant, None


def update_plant(plant_id: str, user_id: str, plant_data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Update a plant's descriptive fields (name, species, location).

    health_score is derived from observations and cannot be written here.

    Returns:
        (plant, error_message)
    """
    fields, error = validate_plant_fields(plant_data, require_name=False)
    if error:
        return None, error

    plant, error = supabase_client.patch_plant(plant_id, user_id, fields)
    if error:
        return None, error

    garden_cache.invalidate(user_id)
    return plant, None


def delete_plant(plant_id: str, user_id: str) -> Tuple[bool, Optional[str]]:
    """
    Delete a plant and its observations.

    Returns:
        (success, error_message)
    """
    ok, error = supabase_client.remove_plant(plant_id, user_id)
    if not ok:
        return False, error

    garden_cache.invalidate(user_id)
    log_info("Plant deleted", user_id=user_id, plant_id=plant_id)
    return True, None


def build_observation(observation_data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Validate client input and build the row to insert. Returns (observation, error_message)."""
    if not isinstance(observation_data, dict):
        return None, "Invalid request body"

    image_url, error = validate_image_url(observation_data.get("image_url"))
    if error:
        return None, error

    try:
        taken_at = parse_datetime(observation_data.get("timestamp")) or utc_now()
    except ValueError:
        return None, "Invalid timestamp. Use ISO-8601 format."

    analysis = observation_data.get("health_analysis")
    if analysis is not None and not isinstance(analysis, dict):
        return None, "health_analysis must be an object"

    return {
        "image_url": image_url,
        "timestamp": to_iso(taken_at),
        "health_analysis": analysis,
        "is_primary": bool(observation_data.get("is_primary", False)),
    }, None


def add_observation(
    plant: Dict[str, Any],
    user_id: str,
    observation_data: Dict[str, Any],
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Append a photo observation to a plant.

    `plant["observations"]` is updated in place: a pending entry is appended
    right away, then replaced by the persisted row or removed on failure.

    If the new observation carries an analysis and is now the plant's most
    recent one, the plant's health_score is recomputed from it.

    Args:
        plant: Plant dict (at least "id"; "observations" is created if missing)
        user_id: Owner of the plant
        observation_data: {"image_url", "timestamp"?, "health_analysis"?, "is_primary"?}

    Returns:
        (observation_row, error_message)
    """
    observation, error = build_observation(observation_data)
    if error:
        return None, error

    plant_id = plant.get("id")
    observations = plant.setdefault("observations", [])
    entry = optimistic.pending(observation)
    observations.append(entry)

    row, error = supabase_client.insert_observation(plant_id, user_id, observation)
    if error:
        failed = optimistic.fail(entry, error)
        observations.remove(entry)
        log_warning("Observation rolled back", plant_id=plant_id, error=failed["error"])
        return None, error

    confirmed = optimistic.confirm(entry, row)
    observations[observations.index(entry)] = optimistic.unwrap(confirmed)

    # Cache must be dropped even if the score write below fails
    garden_cache.invalidate(user_id)

    if row.get("health_analysis") and scoring.latest_observation(observations) is row:
        score = scoring.observation_score(row)
        if score is not None:
            ok, score_error = supabase_client.update_plant_health_score(plant_id, user_id, score)
            if ok:
                plant["health_score"] = score
            else:
                log_warning("Health score lagging after observation", plant_id=plant_id, error=score_error)

    return row, None
