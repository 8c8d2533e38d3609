"""Tests for the diagnosis update flow: fresh analysis, fallback and persistence."""

from types import SimpleNamespace
from unittest.mock import Mock

import pytest
import requests

from planthealth.services import diagnosis, garden_cache
from planthealth.utils import image_probe
from planthealth.utils.errors import (
    DiagnosisUnavailable,
    ImageProbeFailed,
    ImageUnreachable,
    KIND_NETWORK,
    KIND_NO_DATA,
    NoObservations,
    PersistenceFailure,
    user_facing_error,
)

USER_ID = "user-1"


def _analysis(overall_health="good", **extra):
    result = {
        "overall_health": overall_health,
        "confidence": 88.0,
        "issues": [],
        "recommendations": ["Water weekly."],
        "moisture_level": 50.0,
        "growth_stage": "mature",
    }
    result.update(extra)
    return result


@pytest.fixture()
def calls():
    return []


@pytest.fixture()
def collaborators(monkeypatch, calls):
    """Stub probe, analysis capability and gateway writes; record call order."""
    probe = Mock(side_effect=lambda url: calls.append("probe") or True)
    analyze = Mock(side_effect=lambda url, meta: calls.append("analyze") or _analysis())
    save_analysis = Mock(side_effect=lambda *a: calls.append("save_analysis") or (True, None))
    save_score = Mock(side_effect=lambda *a: calls.append("save_score") or (True, None))

    monkeypatch.setattr(diagnosis, "is_image_reachable", probe)
    monkeypatch.setattr(diagnosis.analysis, "analyze_plant_image", analyze)
    monkeypatch.setattr(diagnosis.supabase_client, "update_observation_analysis", save_analysis)
    monkeypatch.setattr(diagnosis.supabase_client, "update_plant_health_score", save_score)

    return {"probe": probe, "analyze": analyze, "save_analysis": save_analysis, "save_score": save_score}


@pytest.fixture()
def cached_summary():
    garden_cache.put(USER_ID, "garden_summary", {"total_plants": 1})
    garden_cache.put(USER_ID, "suggested_questions", ["How is my plant?"])


class TestPrecondition:
    def test_no_observations_raises_without_io(self, make_plant, collaborators, calls):
        with pytest.raises(NoObservations) as exc_info:
            diagnosis.update_diagnosis(make_plant(observations=[]), USER_ID)

        assert calls == []
        assert user_facing_error(exc_info.value)["kind"] == KIND_NO_DATA
        assert user_facing_error(exc_info.value)["retryable"] is False

    def test_missing_observation_list(self, make_plant, collaborators, calls):
        plant = make_plant()
        plant.pop("observations")
        with pytest.raises(NoObservations):
            diagnosis.update_diagnosis(plant, USER_ID)
        assert calls == []


class TestPrimaryPath:
    def test_fresh_analysis_is_persisted_in_order(self, make_plant, make_observation, collaborators, calls, cached_summary):
        plant = make_plant(observations=[make_observation("only", overall_health="poor")])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        assert calls == ["probe", "analyze", "save_analysis", "save_score"]
        assert result["source"] == diagnosis.SOURCE_ANALYSIS
        assert result["health_score"] == 80
        assert result["health_analysis"]["overall_health"] == "good"
        assert result["updated_observation"]["id"] == "only"
        assert result["updated_observation"]["health_analysis"] == result["health_analysis"]
        collaborators["save_analysis"].assert_called_once_with("only", USER_ID, result["health_analysis"])
        collaborators["save_score"].assert_called_once_with(plant["id"], USER_ID, 80)

    def test_aggregates_are_evicted(self, make_plant, make_observation, collaborators, cached_summary):
        plant = make_plant(observations=[make_observation("only")])

        diagnosis.update_diagnosis(plant, USER_ID)

        assert garden_cache.get(USER_ID, "garden_summary") is None
        assert garden_cache.get(USER_ID, "suggested_questions") is None

    def test_most_recent_observation_is_analyzed(self, make_plant, make_observation, collaborators):
        newest = make_observation("newest", days=9)
        plant = make_plant(observations=[newest, make_observation("older", days=2)])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        collaborators["probe"].assert_called_once_with(newest["image_url"])
        assert collaborators["analyze"].call_args[0][0] == newest["image_url"]
        assert result["updated_observation"]["id"] == "newest"

    def test_plant_metadata_is_forwarded(self, make_plant, make_observation, collaborators):
        plant = make_plant(observations=[make_observation("only")])

        diagnosis.update_diagnosis(plant, USER_ID)

        metadata = collaborators["analyze"].call_args[0][1]
        assert metadata == {
            "plant_id": plant["id"],
            "name": "Monstera",
            "species": "Monstera deliciosa",
            "user_id": USER_ID,
        }

    def test_category_beats_confidence(self, make_plant, make_observation, collaborators):
        collaborators["analyze"].side_effect = lambda url, meta: _analysis("good", confidence=12)
        plant = make_plant(observations=[make_observation("only")])

        assert diagnosis.update_diagnosis(plant, USER_ID)["health_score"] == 80

    def test_input_plant_is_not_mutated(self, make_plant, make_observation, collaborators):
        original = make_observation("only", overall_health="poor")
        plant = make_plant(observations=[original])

        diagnosis.update_diagnosis(plant, USER_ID)

        assert original["health_analysis"]["overall_health"] == "poor"


class TestFallback:
    def test_unreachable_image_uses_last_known_analysis(self, make_plant, make_observation, collaborators, calls, cached_summary):
        collaborators["probe"].side_effect = lambda url: calls.append("probe") or False
        latest = make_observation("latest", days=5, overall_health="fair")
        plant = make_plant(observations=[make_observation("old", overall_health="excellent"), latest])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        assert calls == ["probe"]
        assert result["source"] == diagnosis.SOURCE_FALLBACK
        assert result["health_score"] == 60
        assert result["health_analysis"] is latest["health_analysis"]
        assert result["updated_observation"] is latest
        # Nothing written, so nothing evicted
        assert garden_cache.get(USER_ID, "garden_summary") == {"total_plants": 1}

    def test_analysis_error_uses_last_known_analysis(self, make_plant, make_observation, collaborators, calls):
        collaborators["analyze"].side_effect = TimeoutError("provider timed out")
        plant = make_plant(observations=[make_observation("latest", overall_health="critical")])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        assert result["source"] == diagnosis.SOURCE_FALLBACK
        assert result["health_score"] == 20
        collaborators["save_analysis"].assert_not_called()
        collaborators["save_score"].assert_not_called()

    @pytest.mark.parametrize("overall_health", [None, "unknown", "wilting"])
    def test_incomplete_analysis_uses_last_known_analysis(self, make_plant, make_observation, collaborators, overall_health):
        collaborators["analyze"].side_effect = lambda url, meta: _analysis(overall_health)
        plant = make_plant(observations=[make_observation("latest", overall_health="good")])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        assert result["source"] == diagnosis.SOURCE_FALLBACK
        assert result["health_score"] == 80

    def test_empty_analysis_result_is_incomplete(self, make_plant, make_observation, collaborators):
        collaborators["analyze"].side_effect = lambda url, meta: None
        plant = make_plant(observations=[make_observation("latest", overall_health="good")])

    @pytest.mark.parametrize("returned", [["good"], "good", 80])
    def test_non_dict_analysis_result_is_incomplete(self, make_plant, make_observation, collaborators, returned):
        collaborators["analyze"].side_effect = lambda url, meta: returned
        plant = make_plant(observations=[make_observation("latest", overall_health="good")])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        assert result["source"] == diagnosis.SOURCE_FALLBACK
        assert result["health_score"] == 80
        collaborators["save_analysis"].assert_not_called()

    def test_reachability_transport_error_uses_last_known_analysis(self, make_plant, make_observation, collaborators, calls):
        collaborators["probe"].side_effect = requests.ConnectionError("offline")
        plant = make_plant(observations=[make_observation("latest", overall_health="fair")])

        result = diagnosis.update_diagnosis(plant, USER_ID)

        assert result["source"] == diagnosis.SOURCE_FALLBACK
        assert result["health_score"] == 60
        collaborators["analyze"].assert_not_called()

        assert diagnosis.update_diagnosis(plant, USER_ID)["source"] == diagnosis.SOURCE_FALLBACK

    def test_unavailable_without_prior_analysis(self, make_plant, make_observation, collaborators):
        collaborators["probe"].side_effect = lambda url: False
        plant = make_plant(observations=[make_observation("latest")])

        with pytest.raises(DiagnosisUnavailable) as exc_info:
            diagnosis.update_diagnosis(plant, USER_ID)

        error = exc_info.value
        assert isinstance(error.cause, ImageUnreachable)
        assert error.stage == "probe"
        assert error.plant_id == plant["id"]
        assert error.observation_id == "latest"
        assert user_facing_error(error)["kind"] == KIND_NO_DATA

    def test_unavailable_after_service_error_is_retryable(self, make_plant, make_observation, collaborators):
        collaborators["analyze"].side_effect = ConnectionError("offline")
        plant = make_plant(observations=[make_observation("latest")])

        with pytest.raises(DiagnosisUnavailable) as exc_info:
            diagnosis.update_diagnosis(plant, USER_ID)

        payload = user_facing_error(exc_info.value)
        assert payload["kind"] == KIND_NETWORK
        assert payload["retryable"] is True

    def test_offline_reachability_check_is_retryable(self, make_plant, make_observation, collaborators, monkeypatch):
        # Real reachability check, with the HEAD request failing at the transport level
        monkeypatch.setattr(diagnosis, "is_image_reachable", image_probe.is_image_reachable)
        monkeypatch.setattr(image_probe.requests, "head", Mock(side_effect=requests.ConnectionError("offline")))
        plant = make_plant(observations=[make_observation("latest")])

        with pytest.raises(DiagnosisUnavailable) as exc_info:
            diagnosis.update_diagnosis(plant, USER_ID)

        assert isinstance(exc_info.value.cause, ImageProbeFailed)
        assert exc_info.value.stage == "probe"
        payload = user_facing_error(exc_info.value)
        assert payload["kind"] == KIND_NETWORK
        assert payload["retryable"] is True

    def test_missing_photo_is_not_retryable(self, make_plant, make_observation, collaborators, monkeypatch):
        monkeypatch.setattr(diagnosis, "is_image_reachable", image_probe.is_image_reachable)
        monkeypatch.setattr(image_probe.requests, "head", Mock(return_value=SimpleNamespace(ok=False, status_code=404)))
        plant = make_plant(observations=[make_observation("latest")])

        with pytest.raises(DiagnosisUnavailable) as exc_info:
            diagnosis.update_diagnosis(plant, USER_ID)

        assert user_facing_error(exc_info.value) == {
            "error": ImageUnreachable.user_message,
            "kind": KIND_NO_DATA,
            "retryable": False,
        }

    def test_prior_analysis_without_category_does_not_count(self, make_plant, make_observation, collaborators):
        collaborators["probe"].side_effect = lambda url: False
        plant = make_plant(observations=[make_observation("latest", overall_health="unknown", confidence=0.7)])

        with pytest.raises(DiagnosisUnavailable):
            diagnosis.update_diagnosis(plant, USER_ID)

    def test_only_latest_observation_is_considered_for_fallback(self, make_plant, make_observation, collaborators):
        collaborators["probe"].side_effect = lambda url: False
        plant = make_plant(observations=[
            make_observation("old", days=0, overall_health="good"),
            make_observation("latest", days=3),
        ])

        with pytest.raises(DiagnosisUnavailable):
            diagnosis.update_diagnosis(plant, USER_ID)


class TestPersistenceFailures:
    def test_analysis_write_failure(self, make_plant, make_observation, collaborators, calls, cached_summary):
        collaborators["save_analysis"].side_effect = lambda *a: calls.append("save_analysis") or (False, "timeout")
        plant = make_plant(observations=[make_observation("only")])

        with pytest.raises(PersistenceFailure) as exc_info:
            diagnosis.update_diagnosis(plant, USER_ID)

        assert exc_info.value.analysis_saved is False
        assert exc_info.value.stage == "persist_analysis"
        assert "save_score" not in calls
        assert garden_cache.get(USER_ID, "garden_summary") == {"total_plants": 1}

    def test_score_write_failure_keeps_saved_analysis(self, make_plant, make_observation, collaborators, cached_summary):
        collaborators["save_score"].side_effect = lambda *a: (False, "Plant not found or unauthorized")
        plant = make_plant(observations=[make_observation("only")])

        with pytest.raises(PersistenceFailure) as exc_info:
            diagnosis.update_diagnosis(plant, USER_ID)

        assert exc_info.value.analysis_saved is True
        assert exc_info.value.stage == "persist_score"
        assert user_facing_error(exc_info.value)["kind"] == KIND_NETWORK
        collaborators["save_analysis"].assert_called_once()
        # The observation now carries the new analysis; aggregates must not keep the old view
        assert garden_cache.get(USER_ID, "garden_summary") is None


def test_apply_diagnosis_returns_updated_copy(make_plant, make_observation, collaborators):
    plant = make_plant(health_score=30, observations=[
        make_observation("old", days=0),
        make_observation("latest", days=4, overall_health="poor"),
    ])

    result = diagnosis.update_diagnosis(plant, USER_ID)
    updated = diagnosis.apply_diagnosis(plant, result)

    assert updated["health_score"] == 80
    assert updated["observations"][1]["health_analysis"]["overall_health"] == "good"
    assert updated["observations"][0] is plant["observations"][0]
    assert plant["health_score"] == 30
