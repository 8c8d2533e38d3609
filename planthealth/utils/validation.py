"""
Input validation and normalization.

Trims and bounds field lengths, filters suspicious characters while allowing
natural punctuation, and checks identifiers and image URLs before they reach
the persistence layer.
"""

from __future__ import annotations
import re
from typing import Any, Dict, Tuple
from urllib.parse import urlsplit

# Allowlist regex: we REMOVE anything NOT in this set.
# Includes letters/numbers/space and common lightweight punctuation used in names.
_SAFE_CHARS_PATTERN = re.compile(r"[^a-zA-Z0-9\s\-\.,'()/&]+")

# UUID validation pattern (RFC 4122 compliant)
_UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)

MAX_NAME_LEN = 80
MAX_SPECIES_LEN = 120
MAX_LOCATION_LEN = 80
MAX_URL_LEN = 2048


def _soft_sanitize(text: str, max_len: int) -> str:
    """
    Normalizes names/locations:
    - strip whitespace
    - bound length
    - remove dangerous HTML event handlers and keywords
    - remove disallowed characters via allowlist
    - collapse double spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]

    dangerous_keywords = [
        'onerror', 'onload', 'onclick', 'onmouseover', 'onfocus',
        'javascript:', 'data:', 'vbscript:'
    ]
    for keyword in dangerous_keywords:
        t = re.sub(keyword, '', t, flags=re.IGNORECASE)

    t = _SAFE_CHARS_PATTERN.sub("", t)
    t = re.sub(r"\s{2,}", " ", t)
    return t.strip()


def validate_plant_fields(data: Dict[str, Any], require_name: bool = True) -> Tuple[Dict[str, Any], str | None]:
    """
    Validates plant fields and returns (payload, error_message).

    Only name, species and location are accepted; anything else is ignored.
    """
    if not isinstance(data, dict):
        return {}, "Invalid request body"

    limits = {"name": MAX_NAME_LEN, "species": MAX_SPECIES_LEN, "location": MAX_LOCATION_LEN}
    payload = {}
    for field, max_len in limits.items():
        if field in data:
            payload[field] = _soft_sanitize(str(data.get(field) or ""), max_len) or None

    if require_name and not payload.get("name"):
        return {}, "Plant name is required."
    if not require_name and "name" in payload and not payload["name"]:
        return {}, "Plant name cannot be empty."
    return payload, None


def validate_image_url(value: Any) -> Tuple[str | None, str | None]:
    """Accept only absolute http(s) URLs within a sane length."""
    if not isinstance(value, str) or not value.strip():
        return None, "image_url is required."
    url = value.strip()
    if len(url) > MAX_URL_LEN:
        return None, "image_url is too long."
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None, "image_url must be an http(s) URL."
    return url, None


def is_valid_uuid(value: str | None) -> bool:
    """
    Check if a string is a valid UUID (RFC 4122 format).

    Example:
        >>> is_valid_uuid("550e8400-e29b-41d4-a716-446655440000")
        True
        >>> is_valid_uuid("invalid")
        False
    """
    if not value or not isinstance(value, str):
        return False
    return bool(_UUID_PATTERN.match(value))
