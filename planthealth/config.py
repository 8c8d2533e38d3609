"""
Centralized configuration for all environments.

Select a config by setting:
  APP_CONFIG=planthealth.config.DevConfig      # local dev
  APP_CONFIG=planthealth.config.ProdConfig     # production (default if unset)
  APP_CONFIG=planthealth.config.TestConfig     # pytest

Notes:
- SECRET_KEY is read from FLASK_SECRET_KEY
- Rate limiting uses Flask-Limiter v3 keys (RATELIMIT_*).
- Services read tunables through get_config_value() so they also work
  outside an application context (plain unit tests, scripts).
"""

from __future__ import annotations
import os
import secrets
from typing import Any

from flask import current_app, has_app_context

from planthealth import constants


class BaseConfig:
    # Secrets & basics: generate a random key if env var is missing so dev/test
    # never runs with an empty string (production enforces a real key at startup)
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    # Third-party keys
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

    # Supabase (Database + Auth + Storage)
    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Flask-Limiter v3
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "60 per minute; 2000 per day")
    RATELIMIT_DIAGNOSIS = os.getenv("RATELIMIT_DIAGNOSIS", "10 per minute; 200 per day")

    # Health analysis (vision model)
    ANALYSIS_MODEL_PRIMARY = os.getenv("ANALYSIS_MODEL_PRIMARY", "gpt-4o")
    ANALYSIS_MODEL_FALLBACK = os.getenv("ANALYSIS_MODEL_FALLBACK", "gemini/gemini-flash-latest")
    ANALYSIS_TIMEOUT_SECONDS = int(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "25"))
    IMAGE_PROBE_TIMEOUT_SECONDS = int(os.getenv("IMAGE_PROBE_TIMEOUT_SECONDS", "5"))

    # Evolution tracking
    EVOLUTION_PERIOD_DAYS = constants.EVOLUTION_PERIOD_DAYS
    OVERALL_TREND_DEADBAND = constants.OVERALL_TREND_DEADBAND

    # Garden summary thresholds
    HEALTHY_SCORE_THRESHOLD = constants.HEALTHY_SCORE_THRESHOLD
    ATTENTION_SCORE_THRESHOLD = constants.ATTENTION_SCORE_THRESHOLD

    # Garden aggregate cache (seconds)
    GARDEN_CACHE_TTL_SUMMARY = 180
    GARDEN_CACHE_TTL_CONTEXT = 300
    GARDEN_CACHE_TTL_QUESTIONS = 600
    GARDEN_CACHE_TTL_PLANT_DATA = 120
    GARDEN_CACHE_MAX_USERS = 1000
    CACHE_CLEANUP_INTERVAL_MINUTES = 5

    # File uploads / payloads
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # JSON only; photos live in storage

    PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")


class ProdConfig(BaseConfig):
    """Production settings (selected by default if APP_CONFIG is unset)."""
    pass


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    ENV = "development"
    DEBUG = True
    PREFERRED_URL_SCHEME = "http"
    RATELIMIT_DIAGNOSIS = "100 per minute"


class TestConfig(BaseConfig):
    """CI/pytest settings."""
    TESTING = True
    DEBUG = True
    # Usually disable the limiter in tests to avoid flakiness
    RATELIMIT_ENABLED = False
    SUPABASE_URL = ""
    SUPABASE_ANON_KEY = ""
    OPENAI_API_KEY = ""
    GEMINI_API_KEY = ""


def get_config_value(key: str, default: Any = None) -> Any:
    """Read a config value from the active app, falling back to BaseConfig."""
    if has_app_context():
        return current_app.config.get(key, getattr(BaseConfig, key, default))
    return getattr(BaseConfig, key, default)
