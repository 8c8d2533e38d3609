"""
Defines JSON endpoints used by the front end.

Endpoints:
- /health: Liveness probe
- /plants: Create a plant
- /plants/<id>: Update or delete a plant
- /plants/<id>/observations: Add a photo observation
- /plants/<id>/evolution: Evolution periods, overall trend and score history
- /plants/<id>/diagnosis: Refresh the health diagnosis from the latest photo
- /garden/summary: Garden summary plus suggested questions
"""

from flask import Blueprint, request, jsonify, current_app
from ..utils.auth import require_auth, get_current_user_id
from ..utils.errors import (
    sanitize_error,
    user_facing_error,
    GENERIC_MESSAGES,
    DiagnosisUnavailable,
    NoObservations,
    PersistenceFailure,
)
from ..utils.validation import is_valid_uuid, validate_plant_fields
from ..services import diagnosis, evolution, garden, plants, scoring, supabase_client
from ..extensions import limiter


api_bp = Blueprint("api", __name__)


def _diagnosis_rate_limit() -> str:
    return current_app.config.get("RATELIMIT_DIAGNOSIS", "10 per minute")


def _not_found():
    return jsonify({"success": False, "error": GENERIC_MESSAGES["not_found"]}), 404


def _load_plant(plant_id: str, user_id: str):
    """Owned plant with observations, or None for bad ids and other users' plants."""
    if not is_valid_uuid(plant_id):
        return None
    return supabase_client.get_plant_with_observations(plant_id, user_id)


@api_bp.before_request
def _enforce_ajax_for_mutations():
    """Enforce X-Requested-With header on all state-changing API requests.

    Custom headers cannot be set by cross-origin requests without CORS, so
    requiring one protects every POST/PATCH/DELETE endpoint on this blueprint.
    """
    if request.method in ("POST", "PUT", "DELETE", "PATCH"):
        if request.headers.get("X-Requested-With") != "XMLHttpRequest":
            return jsonify({
                "success": False,
                "error": "Invalid request. Please refresh the page and try again."
            }), 403


@api_bp.route("/health")
def health():
    return jsonify({"success": True, "status": "ok"})


@api_bp.route("/plants", methods=["POST"])
@require_auth
def create_plant():
    """
    Create a plant.

    Request body (JSON):
        {"name": "...", "species": "...", "location": "..."}

    Returns:
        201: {"success": true, "plant": {...}}
        400: validation error
        500: database error
    """
    user_id = get_current_user_id()
    data = request.get_json(silent=True)

    _, error = validate_plant_fields(data, require_name=True)
    if error:
        return jsonify({"success": False, "error": error}), 400

    plant, error = plants.create_plant(user_id, data)
    if error:
        current_app.logger.error(f"Plant creation failed: {error}")
        return jsonify({"success": False, "error": GENERIC_MESSAGES["database"]}), 500

    return jsonify({"success": True, "plant": plant}), 201


@api_bp.route("/plants/<plant_id>", methods=["PATCH"])
@require_auth
def update_plant(plant_id: str):
    """Update name, species or location. health_score is not writable."""
    user_id = get_current_user_id()
    if not is_valid_uuid(plant_id):
        return _not_found()

    data = request.get_json(silent=True)
    _, error = validate_plant_fields(data, require_name=False)
    if error:
        return jsonify({"success": False, "error": error}), 400

    plant, error = plants.update_plant(plant_id, user_id, data)
    if error:
        if "not found" in error.lower():
            return _not_found()
        if "no fields" in error.lower():
            return jsonify({"success": False, "error": "Nothing to update."}), 400
        current_app.logger.error(f"Plant update failed: {error}")
        return jsonify({"success": False, "error": GENERIC_MESSAGES["database"]}), 500

    return jsonify({"success": True, "plant": plant})


@api_bp.route("/plants/<plant_id>", methods=["DELETE"])
@require_auth
def delete_plant(plant_id: str):
    user_id = get_current_user_id()
    if not is_valid_uuid(plant_id):
        return _not_found()

    ok, error = plants.delete_plant(plant_id, user_id)
    if not ok:
        if error and "not found" in error.lower():
            return _not_found()
        current_app.logger.error(f"Plant deletion failed: {error}")
        return jsonify({"success": False, "error": GENERIC_MESSAGES["database"]}), 500

    return jsonify({"success": True})


@api_bp.route("/plants/<plant_id>/observations", methods=["POST"])
@require_auth
def add_observation(plant_id: str):
    """
    Add a photo observation.

    Request body (JSON):
        {
            "image_url": "https://...",
            "timestamp": "ISO-8601" (optional, defaults to now),
            "health_analysis": {...} (optional),
            "is_primary": bool (optional)
        }

    Returns:
        201: {"success": true, "observation": {...}, "health_score": float | null}
        400: validation error
        404: plant not found
        500: database error
    """
    user_id = get_current_user_id()
    data = request.get_json(silent=True)

    _, error = plants.build_observation(data)
    if error:
        return jsonify({"success": False, "error": error}), 400

    plant = _load_plant(plant_id, user_id)
    if not plant:
        return _not_found()

    observation, error = plants.add_observation(plant, user_id, data)
    if error:
        current_app.logger.error(f"Observation insert failed for plant {plant_id}: {error}")
        return jsonify({"success": False, "error": GENERIC_MESSAGES["database"]}), 500

    return jsonify({
        "success": True,
        "observation": observation,
        "health_score": scoring.effective_health_score(plant),
    }), 201


@api_bp.route("/plants/<plant_id>/evolution", methods=["GET"])
@require_auth
def plant_evolution(plant_id: str):
    """
    Evolution view for one plant.

    Returns:
        200: {"success": true, "evolution": {"periods", "overall_trend", "score_history", ...}}
        404: plant not found
    """
    user_id = get_current_user_id()
    plant = _load_plant(plant_id, user_id)
    if not plant:
        return _not_found()

    try:
        return jsonify({"success": True, "evolution": evolution.build_evolution(plant)})
    except ValueError as e:
        sanitized_msg = sanitize_error(e, "validation", f"Evolution failed for plant {plant_id}")
        return jsonify({"success": False, "error": sanitized_msg}), 422


@api_bp.route("/plants/<plant_id>/diagnosis", methods=["POST"])
@require_auth
@limiter.limit(_diagnosis_rate_limit)
def update_diagnosis(plant_id: str):
    """
    Refresh the plant's health diagnosis from its most recent photo.

    Returns:
        200: {"success": true, "source": "analysis" | "fallback", "health_score", "health_analysis", "observation", "plant"}
        404: plant not found
        422: plant has no photos (kind "no_data")
        502: analysis obtained but could not be saved
        503: no fresh analysis and no earlier one to fall back on
        429: Rate limit exceeded
    """
    user_id = get_current_user_id()
    plant = _load_plant(plant_id, user_id)
    if not plant:
        return _not_found()

    try:
        result = diagnosis.update_diagnosis(plant, user_id)
    except NoObservations as e:
        return jsonify({"success": False, **user_facing_error(e)}), 422
    except DiagnosisUnavailable as e:
        return jsonify({"success": False, **user_facing_error(e)}), 503
    except PersistenceFailure as e:
        return jsonify({
            "success": False,
            **user_facing_error(e),
            "analysis_saved": e.analysis_saved,
        }), 502

    return jsonify({
        "success": True,
        "source": result["source"],
        "health_score": result["health_score"],
        "health_analysis": result["health_analysis"],
        "observation": result["updated_observation"],
        "plant": diagnosis.apply_diagnosis(plant, result),
    })


@api_bp.route("/garden/summary", methods=["GET"])
@require_auth
def garden_summary():
    """
    Garden-wide summary and suggested questions for the assistant.

    Example response:
        {
            "success": true,
            "summary": {"total_plants": 3, "average_health": 71.7, ...},
            "suggested_questions": ["...", ...]
        }
    """
    user_id = get_current_user_id()

    try:
        summary = garden.get_garden_summary(user_id)
        questions = garden.get_suggested_questions(user_id)
    except Exception as e:
        sanitized_msg = sanitize_error(e, "database", "Failed to build garden summary")
        return jsonify({"success": False, "error": sanitized_msg}), 500

    return jsonify({"success": True, "summary": summary, "suggested_questions": questions})
