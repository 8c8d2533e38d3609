"""
Data sanitization helpers for privacy-safe logging.

Functions here strip or mask secrets so they can be safely written to logs
without exposing signed URLs or tokens.
"""

from __future__ import annotations
from urllib.parse import urlsplit


def mask_image_url(url: str) -> str:
    """Mask an image URL for safe logging (e.g., 'https://host/.../photo.jpg').

    Drops the query string and fragment (signed-URL tokens live there) and
    collapses the middle of the path so operators can still correlate entries.
    """
    if not url:
        return "***"
    try:
        parts = urlsplit(url)
    except ValueError:
        return "***"
    if not parts.scheme or not parts.netloc:
        return "***"
    filename = parts.path.rsplit("/", 1)[-1] if parts.path else ""
    return f"{parts.scheme}://{parts.netloc}/.../{filename}" if filename else f"{parts.scheme}://{parts.netloc}/"
