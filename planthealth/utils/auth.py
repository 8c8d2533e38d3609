"""
Authentication utilities and decorators for route protection.

Provides:
- @require_auth: Decorator to require an authenticated user (401 JSON otherwise)
- get_current_user / get_current_user_id: request-scoped user lookup

The API is stateless: clients send the Supabase access token as
`Authorization: Bearer <token>` and it is verified once per request.
"""

from __future__ import annotations
from functools import wraps
from typing import Optional, Dict, Any
from flask import request, jsonify, g
from planthealth.services import supabase_client


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user() -> Optional[Dict[str, Any]]:
    """
    Get the user for the current request.

    Returns:
        User dict with id and email, or None if the token is missing or invalid
    """
    # Check if user already loaded in request context
    if hasattr(g, "user"):
        return g.user

    token = _bearer_token()
    g.user = supabase_client.verify_access_token(token) if token else None
    return g.user


def get_current_user_id() -> Optional[str]:
    """
    Get current user's ID.

    Returns:
        User UUID or None if not authenticated
    """
    user = get_current_user()
    return user.get("id") if user else None


def is_authenticated() -> bool:
    """Check if the current request is authenticated."""
    return get_current_user() is not None


def require_auth(f):
    """
    Decorator to require authentication for a route.

    Usage:
        @api_bp.route("/garden/summary")
        @require_auth
        def garden_summary():
            user_id = get_current_user_id()
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return jsonify({"success": False, "error": "Authentication required."}), 401

        return f(*args, **kwargs)

    return decorated_function
