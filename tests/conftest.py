"""
Shared test fixtures for the planthealth test suite.

Provides:
- Flask app and client built by create_app() with TestConfig
- Authenticated request headers (token verification is stubbed)
- Plant / observation factories
- Automatic reset of the garden cache and the LiteLLM router cache

Usage:
    def test_example(client, auth_headers, make_plant):
        plant = make_plant(observations=[])
        ...
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from planthealth import create_app
from planthealth.services import analysis, garden_cache, supabase_client

logging.getLogger("planthealth").setLevel(logging.WARNING)

USER_ID = "user-1"
PLANT_ID = "11111111-2222-4333-8444-555555555555"
BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_caches():
    garden_cache.clear_all()
    analysis._clear_router_cache()
    yield
    garden_cache.clear_all()
    analysis._clear_router_cache()


# ========================== App Fixtures ===================================


@pytest.fixture()
def app(monkeypatch):
    monkeypatch.setenv("APP_CONFIG", "planthealth.config.TestConfig")
    flask_app = create_app()
    yield flask_app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers(monkeypatch):
    """Headers for an authenticated, same-origin JSON request as USER_ID."""
    def fake_verify(token):
        return {"id": USER_ID, "email": "gardener@example.com"} if token == "valid-token" else None

    monkeypatch.setattr(supabase_client, "verify_access_token", fake_verify)
    return {
        "Authorization": "Bearer valid-token",
        "X-Requested-With": "XMLHttpRequest",
    }


# ========================== Factories ======================================


def observation(
    obs_id: str,
    days: float = 0,
    overall_health: str | None = None,
    confidence: Any = None,
    issues: list | None = None,
    image_url: str | None = None,
) -> dict:
    """Observation taken `days` after BASE_TIME, with an analysis when any field is given."""
    analysis_data = None
    if overall_health is not None or confidence is not None or issues is not None:
        analysis_data = {"overall_health": overall_health, "confidence": confidence, "issues": issues or []}
    return {
        "id": obs_id,
        "timestamp": (BASE_TIME + timedelta(days=days)).isoformat(),
        "image_url": image_url or f"https://storage.example.com/plants/{obs_id}.jpg",
        "health_analysis": analysis_data,
        "is_primary": False,
    }


@pytest.fixture()
def make_observation():
    return observation


@pytest.fixture()
def make_plant():
    def _make(plant_id: str = PLANT_ID, observations: list | None = None, **fields) -> dict:
        plant = {
            "id": plant_id,
            "user_id": USER_ID,
            "name": "Monstera",
            "species": "Monstera deliciosa",
            "location": "Living room",
            "health_score": None,
            "observations": observations if observations is not None else [],
        }
        plant.update(fields)
        return plant

    return _make
