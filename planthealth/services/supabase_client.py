"""
Supabase client initialization and persistence gateway.

Provides centralized access to Supabase for:
- Access token verification (auth itself is handled by Supabase)
- Plants and their photo observations
- Diagnosis writes (observation analysis, then plant health score)

Gateway functions never raise: reads return None/[] on failure and writes
return (data, error_message) tuples, so callers decide how to surface errors.
Cache invalidation is the caller's job (see services.plants / services.diagnosis).
"""

from __future__ import annotations
from typing import Optional, Dict, Any, List, Tuple
import logging
from flask import current_app, has_app_context
from supabase import create_client, Client

logger = logging.getLogger(__name__)

PLANTS_TABLE = "plants"
OBSERVATIONS_TABLE = "plant_observations"

# Columns a client may write on a plant row
PLANT_WRITABLE_FIELDS = ("name", "species", "location")


def _safe_log_error(message: str) -> None:
    """Log via the Flask app logger when available, module logger otherwise."""
    if has_app_context():
        current_app.logger.error(message)
    else:
        logger.error(message)


def _safe_log_info(message: str) -> None:
    if has_app_context():
        current_app.logger.info(message)
    else:
        logger.info(message)


# Global client instances (initialized once per app)
_supabase_client: Optional[Client] = None  # User client (anon key)
_supabase_admin: Optional[Client] = None   # Admin client (service role key)


def init_supabase(app) -> None:
    """
    Initialize Supabase clients with app config.
    Creates two clients:
    - Regular client with anon key (token verification)
    - Admin client with service role key (ownership-scoped table access)

    Call this from the Flask app factory.
    """
    global _supabase_client, _supabase_admin

    url = app.config.get("SUPABASE_URL", "")
    anon_key = app.config.get("SUPABASE_ANON_KEY", "")
    service_key = app.config.get("SUPABASE_SERVICE_ROLE_KEY", "")

    if not url or not anon_key:
        app.logger.warning("Supabase URL or ANON_KEY not configured. Supabase features will be disabled.")
        _supabase_client = None
        _supabase_admin = None
        return

    try:
        _supabase_client = create_client(url, anon_key)
        app.logger.info("Supabase client initialized successfully")

        if service_key:
            _supabase_admin = create_client(url, service_key)
            app.logger.info("Supabase admin client initialized successfully")
        else:
            app.logger.warning("SUPABASE_SERVICE_ROLE_KEY not configured. Falling back to anon client for data access.")

    except Exception as e:
        app.logger.error(f"Failed to initialize Supabase client: {e}")
        _supabase_client = None
        _supabase_admin = None


def _data_client() -> Optional[Client]:
    return _supabase_admin or _supabase_client


def is_configured() -> bool:
    """Check if Supabase is properly configured."""
    return _supabase_client is not None


# ============================================================================
# Auth
# ============================================================================

def verify_access_token(access_token: str) -> Optional[Dict[str, Any]]:
    """
    Verify a Supabase JWT and return the user it belongs to.

    Returns:
        {"id": ..., "email": ...} or None if the token is invalid/expired
    """
    if not _supabase_client or not access_token:
        return None

    try:
        response = _supabase_client.auth.get_user(access_token)
        user = getattr(response, "user", None)
        if not user:
            return None
        return {"id": user.id, "email": getattr(user, "email", None)}
    except Exception as e:
        # Never log the token itself
        _safe_log_info(f"Access token rejected: {type(e).__name__}")
        return None


# ============================================================================
# Plants & observations (reads)
# ============================================================================

def _attach_observations(plants: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Normalize the embedded observation list name Supabase returns."""
    for plant in plants:
        plant["observations"] = plant.pop(OBSERVATIONS_TABLE, None) or []
    return plants


def get_plant_with_observations(plant_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """
    Get a single plant with all of its observations, verifying ownership.

    Args:
        plant_id: Plant UUID
        user_id: User UUID (for ownership verification)

    Returns:
        Plant dict with an "observations" list, or None if not found / error
    """
    client = _data_client()
    if not client:
        return None

    try:
        response = (client
                   .table(PLANTS_TABLE)
                   .select(f"*, {OBSERVATIONS_TABLE}(*)")
                   .eq("id", plant_id)
                   .eq("user_id", user_id)
                   .limit(1)
                   .execute())
        rows = _attach_observations(response.data or [])
        return rows[0] if rows else None
    except Exception as e:
        _safe_log_error(f"Error getting plant {plant_id}: {e}")
        return None


def get_user_plants_with_observations(user_id: str) -> List[Dict[str, Any]]:
    """
    Get all of a user's plants with their observations in a single query
    (avoids N+1 queries when building garden aggregates).

    Returns:
        List of plant dicts, empty list if error
    """
    client = _data_client()
    if not client:
        return []

    try:
        response = (client
                   .table(PLANTS_TABLE)
                   .select(f"*, {OBSERVATIONS_TABLE}(*)")
                   .eq("user_id", user_id)
                   .order("created_at", desc=True)
                   .execute())
        return _attach_observations(response.data or [])
    except Exception as e:
        _safe_log_error(f"Error getting plants for user {user_id}: {e}")
        return []


def get_all_plants_with_observations() -> List[Dict[str, Any]]:
    """All plants across users (admin client only; used by maintenance CLI)."""
    if not _supabase_admin:
        return []

    try:
        response = (_supabase_admin
                   .table(PLANTS_TABLE)
                   .select(f"*, {OBSERVATIONS_TABLE}(*)")
                   .execute())
        return _attach_observations(response.data or [])
    except Exception as e:
        _safe_log_error(f"Error getting all plants: {e}")
        return []


# ============================================================================
# Plants & observations (writes)
# ============================================================================

def insert_plant(user_id: str, plant_data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Create a new plant for the user.

    Returns:
        (plant_row, error_message)
    """
    client = _data_client()
    if not client:
        return None, "Database not configured"

    data = {k: plant_data[k] for k in PLANT_WRITABLE_FIELDS if k in plant_data}
    data["user_id"] = user_id

    try:
        response = client.table(PLANTS_TABLE).insert(data).execute()
        if response.data:
            plant = response.data[0]
            plant.setdefault("observations", [])
            return plant, None
        return None, "Failed to create plant"
    except Exception as e:
        return None, f"Error creating plant: {e}"


def patch_plant(plant_id: str, user_id: str, plant_data: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Update whitelisted plant fields (with ownership verification).

    Returns:
        (updated_plant_row, error_message)
    """
    client = _data_client()
    if not client:
        return None, "Database not configured"

    data = {k: plant_data[k] for k in PLANT_WRITABLE_FIELDS if k in plant_data}
    if not data:
        return None, "No fields to update"

    try:
        response = (client
                   .table(PLANTS_TABLE)
                   .update(data)
                   .eq("id", plant_id)
                   .eq("user_id", user_id)  # Ownership check
                   .execute())
        if response.data:
            return response.data[0], None
        return None, "Plant not found or unauthorized"
    except Exception as e:
        return None, f"Error updating plant: {e}"


def remove_plant(plant_id: str, user_id: str) -> Tuple[bool, Optional[str]]:
    """
    Delete a plant (observations cascade in the database).

    Returns:
        (success, error_message)
    """
    client = _data_client()
    if not client:
        return False, "Database not configured"

    try:
        response = (client
                   .table(PLANTS_TABLE)
                   .delete()
                   .eq("id", plant_id)
                   .eq("user_id", user_id)  # Ownership check
                   .execute())
        if response.data:
            return True, None
        return False, "Plant not found or unauthorized"
    except Exception as e:
        return False, f"Error deleting plant: {e}"


def insert_observation(
    plant_id: str,
    user_id: str,
    observation: Dict[str, Any],
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Append a photo observation to a plant.

    Args:
        observation: {"image_url", "timestamp" (ISO string), "health_analysis"?, "is_primary"?}

    Returns:
        (observation_row, error_message)
    """
    client = _data_client()
    if not client:
        return None, "Database not configured"

    data = {
        "plant_id": plant_id,
        "user_id": user_id,
        "image_url": observation.get("image_url"),
        "timestamp": observation.get("timestamp"),
        "health_analysis": observation.get("health_analysis"),
        "is_primary": bool(observation.get("is_primary", False)),
    }

    try:
        response = client.table(OBSERVATIONS_TABLE).insert(data).execute()
        if response.data:
            return response.data[0], None
        return None, "Failed to add observation"
    except Exception as e:
        return None, f"Error adding observation: {e}"


def update_observation_analysis(
    observation_id: str,
    user_id: str,
    analysis: Dict[str, Any],
) -> Tuple[bool, Optional[str]]:
    """
    Attach or replace the health analysis of an observation.

    The analysis is the only mutable field of a persisted observation.

    Returns:
        (success, error_message)
    """
    client = _data_client()
    if not client:
        return False, "Database not configured"

    try:
        response = (client
                   .table(OBSERVATIONS_TABLE)
                   .update({"health_analysis": analysis})
                   .eq("id", observation_id)
                   .eq("user_id", user_id)
                   .execute())
        if response.data:
            return True, None
        return False, "Observation not found or unauthorized"
    except Exception as e:
        return False, f"Error updating observation analysis: {e}"


def update_plant_health_score(plant_id: str, user_id: str, score: float) -> Tuple[bool, Optional[str]]:
    """
    Store the plant's cached health score.

    Returns:
        (success, error_message)
    """
    client = _data_client()
    if not client:
        return False, "Database not configured"

    try:
        response = (client
                   .table(PLANTS_TABLE)
                   .update({"health_score": score})
                   .eq("id", plant_id)
                   .eq("user_id", user_id)
                   .execute())
        if response.data:
            return True, None
        return False, "Plant not found or unauthorized"
    except Exception as e:
        return False, f"Error updating plant health score: {e}"
