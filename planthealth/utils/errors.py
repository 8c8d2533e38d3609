"""
Error taxonomy and helpers for user-facing messages and logging.

Provides consistent error handling across the application:
- Diagnosis exceptions carrying plant id, observation id and failure stage
- Mapping of those exceptions to messages that tell the caller whether a
  retry makes sense ("network") or there is simply nothing to show ("no_data")
- Sanitizing of unexpected errors so internals never reach end users
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

# User-friendly generic error messages
GENERIC_MESSAGES = {
    "database": "We're experiencing technical difficulties. Please try again.",
    "validation": "The information provided is invalid. Please check and try again.",
    "permission": "You don't have permission to perform this action.",
    "not_found": "The requested item was not found.",
    "network": "Network error occurred. Please check your connection and try again.",
}

KIND_NETWORK = "network"
KIND_NO_DATA = "no_data"


class DiagnosisError(Exception):
    """Base class for diagnosis failures."""

    stage = "diagnosis"
    kind = KIND_NETWORK
    user_message = "We couldn't update the health diagnosis. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        plant_id: Optional[str] = None,
        observation_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message or self.user_message)
        self.plant_id = plant_id
        self.observation_id = observation_id
        if stage:
            self.stage = stage


class NoObservations(DiagnosisError):
    stage = "precondition"
    kind = KIND_NO_DATA
    user_message = "This plant has no photos to analyze yet. Take a photo first."


class ImageUnreachable(DiagnosisError):
    stage = "probe"
    kind = KIND_NO_DATA
    user_message = "The plant's latest photo is not available. Try taking a new photo."


class ImageProbeFailed(DiagnosisError):
    """The reachability check itself could not complete (offline, DNS, timeout)."""

    stage = "probe"
    user_message = "We couldn't reach the plant's photo. Check your connection and try again."


class IncompleteAnalysis(DiagnosisError):
    stage = "validation"
    user_message = "The analysis did not return a valid health assessment."


class AnalysisServiceError(DiagnosisError):
    """Transport or provider failure while calling the analysis service."""

    stage = "analysis"
    user_message = "The health analysis service is unavailable right now."


class DiagnosisUnavailable(DiagnosisError):
    """Terminal: the fresh analysis failed and no earlier analysis can stand in."""

    def __init__(self, cause: DiagnosisError, plant_id: Optional[str] = None, observation_id: Optional[str] = None):
        super().__init__(
            f"No diagnosis available: {cause}",
            plant_id=plant_id,
            observation_id=observation_id,
            stage=cause.stage,
        )
        self.cause = cause
        self.kind = cause.kind
        self.user_message = cause.user_message


class PersistenceFailure(DiagnosisError):
    """A gateway write failed. analysis_saved tells whether the observation write landed."""

    stage = "persist"
    user_message = "We couldn't save the new diagnosis. Please try again."

    def __init__(self, message: str, analysis_saved: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.analysis_saved = analysis_saved


def user_facing_error(error: Exception) -> Dict[str, Any]:
    """
    Build the payload shown to the user for a diagnosis failure.

    Returns:
        {"error": message, "kind": "network" | "no_data", "retryable": bool}

    Examples:
        >>> user_facing_error(NoObservations(plant_id="p1"))["kind"]
        'no_data'
    """
    if isinstance(error, DiagnosisError):
        return {
            "error": error.user_message,
            "kind": error.kind,
            "retryable": error.kind == KIND_NETWORK,
        }
    return {"error": GENERIC_MESSAGES["database"], "kind": KIND_NETWORK, "retryable": True}


def _logger():
    return current_app.logger if has_app_context() else logger


def sanitize_error(
    error: Exception,
    error_type: str = "database",
    log_prefix: str = ""
) -> str:
    """
    Sanitize error message for user display and log full details.

    Security: Prevents exposing internal error messages, stack traces, or
    database schema information to end users. Full details are logged for debugging.

    Args:
        error: The exception that occurred
        error_type: Type of error (database, validation, permission, not_found, network)
        log_prefix: Optional prefix for log message context

    Returns:
        User-friendly error message
    """
    error_message = str(error)
    log_message = f"{log_prefix}: {error_message}" if log_prefix else error_message

    if error_type in ["validation", "not_found"]:
        # Expected errors (user mistakes)
        _logger().info(f"Expected error - {log_message}")
    else:
        _logger().error(f"Unexpected error - {log_message}", exc_info=True)

    return GENERIC_MESSAGES.get(error_type, GENERIC_MESSAGES["database"])


def log_warning(message: str, **context) -> None:
    """
    Log a warning with optional context.

    Examples:
        >>> log_warning("Diagnosis fell back", plant_id="123", stage="analysis")
    """
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | Context: {context_str}"

    _logger().warning(message)


def log_info(message: str, **context) -> None:
    """Log an info message with optional context."""
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        message = f"{message} | Context: {context_str}"

    _logger().info(message)
