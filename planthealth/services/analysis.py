"""
Plant health analysis (vision model via LiteLLM).

Sends the observation photo to a vision-capable model and returns a health
analysis dict:

    {
        "overall_health": "excellent|good|fair|poor|critical|unknown" | None,
        "confidence": 0-100,
        "issues": [{"type", "severity", "description", "treatment"}, ...],
        "recommendations": [str, ...],
        "moisture_level": 0-100,
        "growth_stage": "seedling|juvenile|mature|flowering|dormant",
    }

The service is treated as unreliable: every provider, transport or parsing
failure is raised as AnalysisServiceError and no retries happen here.
`overall_health` is passed through as returned so the caller can reject an
incomplete assessment; optional fields get safe defaults.
"""

from __future__ import annotations
import json
import os
from typing import Any, Dict, Optional

from flask import current_app, has_app_context

from planthealth.config import get_config_value
from planthealth.constants import GROWTH_STAGES, HEALTH_CATEGORIES, ISSUE_SEVERITIES, ISSUE_TYPES
from planthealth.utils.errors import AnalysisServiceError
from planthealth.utils.sanitize import mask_image_url

# Cache for LiteLLM Router to avoid recreating on every request
_ROUTER_CACHE: Optional[object] = None

DEFAULT_RECOMMENDATIONS = [
    "Keep watering consistent with the plant's needs.",
    "Make sure the plant gets an appropriate amount of light.",
    "Check regularly for pests or signs of disease.",
]

HEALTH_DIAGNOSIS_PROMPT = (
    "You are an expert botanist analyzing a plant's health from a photo. "
    "Focus on the plant's current health: visible signs of stress, disease, pests, "
    "watering problems or nutrient deficiencies.\n\n"
    "Rate overall_health as:\n"
    "- excellent: vibrant, healthy leaves, good color, no visible issues\n"
    "- good: healthy with minor imperfections\n"
    "- fair: some signs of stress but recoverable\n"
    "- poor: significant issues requiring attention\n"
    "- critical: severe damage, the plant may not survive without immediate action\n\n"
    "Respond ONLY with valid JSON in this exact format:\n"
    "{\n"
    '  "overall_health": "excellent|good|fair|poor|critical",\n'
    '  "issues": [{"type": "overwatering|underwatering|pest|disease|nutrient|light|other", '
    '"severity": "low|medium|high", "description": "...", "treatment": "..."}],\n'
    '  "recommendations": ["..."],\n'
    '  "moisture_level": 0-100,\n'
    '  "growth_stage": "seedling|juvenile|mature|flowering|dormant",\n'
    '  "confidence": 0-100\n'
    "}"
)


def _clear_router_cache():
    """Clear the router cache. Used for testing and when API keys change."""
    global _ROUTER_CACHE
    _ROUTER_CACHE = None


def _api_key(name: str) -> Optional[str]:
    key = os.getenv(name)
    if not key and has_app_context():
        key = current_app.config.get(name)
    return key or None


def _get_litellm_router():
    """
    Returns a LiteLLM Router configured with an OpenAI vision model (primary)
    and Gemini (fallback), or (None, error) if neither API key is available.

    Retries are disabled: a failed analysis falls back to the last known
    diagnosis instead of being retried here.
    """
    global _ROUTER_CACHE

    if _ROUTER_CACHE is not None:
        return _ROUTER_CACHE, None

    openai_key = _api_key("OPENAI_API_KEY")
    gemini_key = _api_key("GEMINI_API_KEY")

    if not openai_key and not gemini_key:
        return None, "Neither OPENAI_API_KEY nor GEMINI_API_KEY configured"

    try:
        from litellm import Router

        model_list = []
        fallbacks = None

        if openai_key:
            model_list.append({
                "model_name": "primary-vision",
                "litellm_params": {
                    "model": get_config_value("ANALYSIS_MODEL_PRIMARY", "gpt-4o"),
                    "api_key": openai_key,
                    "temperature": 0.3,  # Consistent ratings across photos
                    "max_tokens": 1500,
                }
            })

        if gemini_key:
            model_list.append({
                "model_name": "fallback-vision",
                "litellm_params": {
                    "model": get_config_value("ANALYSIS_MODEL_FALLBACK", "gemini/gemini-flash-latest"),
                    "api_key": gemini_key,
                    "temperature": 0.3,
                    "max_tokens": 1500,
                }
            })

        # Provider fallback chain: OpenAI -> Gemini
        if openai_key and gemini_key:
            fallbacks = [{"primary-vision": ["fallback-vision"]}]

        router = Router(
            model_list=model_list,
            fallbacks=fallbacks,
            num_retries=0,
            timeout=get_config_value("ANALYSIS_TIMEOUT_SECONDS", 25),
        )

        _ROUTER_CACHE = router
        return router, None
    except Exception as e:
        return None, f"LiteLLM Router initialization error: {e}"


def _strip_code_fence(text: str) -> str:
    """Sometimes the model wraps JSON in markdown code blocks."""
    if not text.startswith("```"):
        return text
    json_lines = []
    in_code_block = False
    for line in text.split("\n"):
        if line.startswith("```"):
            in_code_block = not in_code_block
            continue
        if in_code_block:
            json_lines.append(line)
    return "\n".join(json_lines)


def _clean_issue(issue: Any) -> Optional[Dict[str, str]]:
    if not isinstance(issue, dict):
        return None
    description = str(issue.get("description") or "").strip()
    if not description:
        return None
    issue_type = issue.get("type") if issue.get("type") in ISSUE_TYPES else "other"
    severity = issue.get("severity") if issue.get("severity") in ISSUE_SEVERITIES else "medium"
    return {
        "type": issue_type,
        "severity": severity,
        "description": description,
        "treatment": str(issue.get("treatment") or "").strip(),
    }


def _bounded_number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0.0, min(100.0, float(value)))


def sanitize_analysis(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply safety defaults to a raw model response.

    `overall_health` is lower-cased and kept only if it is a known category;
    a missing or unknown value becomes None. Everything else falls back to a
    safe default rather than failing.
    """
    overall = raw.get("overall_health", raw.get("overallHealth"))
    overall = overall.strip().lower() if isinstance(overall, str) else None
    if overall not in HEALTH_CATEGORIES:
        overall = None

    issues = raw.get("issues")
    cleaned_issues = [i for i in (_clean_issue(x) for x in issues) if i] if isinstance(issues, list) else []

    recommendations = raw.get("recommendations")
    if isinstance(recommendations, list):
        recommendations = [str(r).strip() for r in recommendations if str(r).strip()]
    else:
        recommendations = list(DEFAULT_RECOMMENDATIONS)

    growth_stage = raw.get("growth_stage", raw.get("growthStage"))
    if growth_stage not in GROWTH_STAGES:
        growth_stage = "mature"

    return {
        "overall_health": overall,
        "confidence": _bounded_number(raw.get("confidence"), 70.0),
        "issues": cleaned_issues,
        "recommendations": recommendations,
        "moisture_level": _bounded_number(raw.get("moisture_level", raw.get("moistureLevel")), 50.0),
        "growth_stage": growth_stage,
    }


def analyze_plant_image(image_url: str, plant_metadata: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyze a plant photo.

    Args:
        image_url: URL of the photo to analyze
        plant_metadata: {"plant_id", "name", "species", "user_id"}; user_id is
                        forwarded to the provider as the end-user identifier

    Returns:
        Sanitized health analysis dict (overall_health may be None)

    Raises:
        AnalysisServiceError: provider not configured, call failed, or the
                              response was not parseable JSON
    """
    plant_id = plant_metadata.get("plant_id")
    router, err = _get_litellm_router()
    if not router:
        raise AnalysisServiceError(err, plant_id=plant_id)

    subject = plant_metadata.get("species") or plant_metadata.get("name") or "plant"
    model_to_use = "primary-vision" if _api_key("OPENAI_API_KEY") else "fallback-vision"

    try:
        resp = router.completion(
            model=model_to_use,
            messages=[
                {"role": "system", "content": HEALTH_DIAGNOSIS_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": f"Analyze the health of this {subject}. Provide a detailed health assessment."},
                        {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                    ],
                },
            ],
            user=plant_metadata.get("user_id"),
        )
        response_text = (resp.choices[0].message.content or "").strip()
    except Exception as e:
        raise AnalysisServiceError(
            f"Analysis call failed for {mask_image_url(image_url)}: {type(e).__name__}",
            plant_id=plant_id,
        ) from e

    if not response_text:
        raise AnalysisServiceError("Empty response from analysis provider", plant_id=plant_id)

    try:
        raw = json.loads(_strip_code_fence(response_text))
    except json.JSONDecodeError as e:
        raise AnalysisServiceError("Analysis response was not valid JSON", plant_id=plant_id) from e

    if not isinstance(raw, dict):
        raise AnalysisServiceError("Analysis response was not a JSON object", plant_id=plant_id)

    return sanitize_analysis(raw)
