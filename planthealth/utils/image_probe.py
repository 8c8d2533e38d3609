"""
Image reachability probe.

Fast pre-flight before spending an analysis call: a HEAD request against the
observation's image URL. Only answers "is it there"; never downloads the body.
"""

from __future__ import annotations
import logging

import requests
from flask import current_app, has_app_context

from planthealth.config import get_config_value
from .sanitize import mask_image_url

logger = logging.getLogger(__name__)


def _log_warning(message: str) -> None:
    if has_app_context():
        current_app.logger.warning(message)
    else:
        logger.warning(message)


def is_image_reachable(image_url: str, timeout: int | None = None) -> bool:
    """
    Check whether an image URL currently resolves.

    Args:
        image_url: Public or signed storage URL
        timeout: Seconds before giving up (defaults to IMAGE_PROBE_TIMEOUT_SECONDS)

    Returns:
        True on a 2xx/3xx response, False on any other status

    Raises:
        requests.RequestException: the request itself failed (offline, DNS, timeout),
            so nothing is known about the image
    """
    if not image_url or not image_url.startswith(("http://", "https://")):
        return False

    if timeout is None:
        timeout = get_config_value("IMAGE_PROBE_TIMEOUT_SECONDS", 5)

    try:
        response = requests.head(image_url, timeout=timeout, allow_redirects=True)
    except requests.RequestException as e:
        _log_warning(f"[ImageProbe] HEAD failed for {mask_image_url(image_url)}: {type(e).__name__}")
        raise

    if not response.ok:
        _log_warning(f"[ImageProbe] {mask_image_url(image_url)} returned {response.status_code}")
        return False
    return True
