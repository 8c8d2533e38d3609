"""Tests for evolution bucketing and trend classification."""

import random
from datetime import timedelta

import pytest

from planthealth.constants import TREND_DECLINING, TREND_IMPROVING, TREND_STABLE
from planthealth.services import evolution
from planthealth.utils.dates import parse_datetime


def _ids(period):
    return [obs["id"] for obs in period["observations"]]


class TestBucketObservations:
    def test_empty_input(self):
        assert evolution.bucket_observations([]) == []

    def test_single_observation(self, make_observation):
        periods = evolution.bucket_observations([make_observation("a", overall_health="good")])

        assert len(periods) == 1
        assert periods[0]["trend"] == TREND_STABLE
        assert periods[0]["average_score"] == 80
        assert periods[0]["start_date"] == periods[0]["end_date"]
        assert evolution.overall_trend(periods) is None

    def test_window_boundary_is_inclusive(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("start", days=0),
            make_observation("day-30", days=30),
        ])
        assert len(periods) == 1
        assert _ids(periods[0]) == ["start", "day-30"]

    def test_just_past_window_opens_new_period(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("start", days=0),
            make_observation("late", days=30 + 1 / 86400),
        ])
        assert [_ids(p) for p in periods] == [["start"], ["late"]]

    def test_periods_are_anchored_at_their_first_observation(self, make_observation):
        observations = [
            make_observation("d0", days=0),
            make_observation("d20", days=20),
            make_observation("d40", days=40),
            make_observation("d55", days=55),  # 15 days after d40 anchors period 2
            make_observation("d75", days=75),  # 35 days after d40
        ]
        periods = evolution.bucket_observations(observations)

        assert [_ids(p) for p in periods] == [["d0", "d20"], ["d40", "d55"], ["d75"]]
        assert [p["id"] for p in periods] == ["period-0", "period-1", "period-2"]

    def test_unsorted_input_is_partitioned_in_time_order(self, make_observation):
        observations = [
            make_observation("c", days=65),
            make_observation("a", days=0),
            make_observation("b", days=10),
        ]
        periods = evolution.bucket_observations(observations)

        flattened = [obs["id"] for p in periods for obs in p["observations"]]
        assert flattened == ["a", "b", "c"]
        assert sum(p["photo_count"] for p in periods) == len(observations)
        for earlier, later in zip(periods, periods[1:]):
            assert earlier["end_date"] < later["start_date"]

    def test_average_uses_only_scored_observations(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("good", days=0, overall_health="good"),
            make_observation("unscored", days=1),
            make_observation("fair", days=2, overall_health="fair"),
        ])

        assert periods[0]["average_score"] == 70
        assert periods[0]["photo_count"] == 3
        assert periods[0]["scored_count"] == 2

    def test_period_without_scores_averages_zero(self, make_observation):
        periods = evolution.bucket_observations([make_observation("a"), make_observation("b", days=1)])
        assert periods[0]["average_score"] == 0

    def test_custom_period_length(self, make_observation):
        observations = [make_observation(str(d), days=d) for d in (0, 5, 8, 20)]
        periods = evolution.bucket_observations(observations, period_days=7)
        assert [_ids(p) for p in periods] == [["0", "5"], ["8"], ["20"]]

    def test_period_length_from_app_config(self, app, make_observation):
        app.config["EVOLUTION_PERIOD_DAYS"] = 7
        with app.app_context():
            periods = evolution.bucket_observations([
                make_observation("a", days=0),
                make_observation("b", days=10),
            ])
        assert len(periods) == 2


class TestPartition:
    """Every observation lands in exactly one period, in time order, with no overlap."""

    @pytest.mark.parametrize("seed", range(25))
    def test_random_observation_lists(self, make_observation, seed):
        rng = random.Random(seed)
        # Whole-day offsets produce duplicate timestamps and exact 30-day hits
        day_choices = [0, 0, 15, 30, 30, 31, 60, 61, 90] + [rng.uniform(0, 120) for _ in range(5)]
        observations = [
            make_observation(
                f"obs-{i}",
                days=rng.choice(day_choices),
                overall_health=rng.choice([None, "excellent", "good", "fair", "poor", "critical", "unknown"]),
            )
            for i in range(rng.randint(0, 30))
        ]

        periods = evolution.bucket_observations(observations)

        expected = sorted(observations, key=lambda obs: parse_datetime(obs["timestamp"]))
        assert [obs["id"] for p in periods for obs in p["observations"]] == [obs["id"] for obs in expected]
        assert sum(p["photo_count"] for p in periods) == len(observations)
        for period in periods:
            assert period["end_date"] - period["start_date"] <= timedelta(days=30)
        for earlier, later in zip(periods, periods[1:]):
            assert earlier["end_date"] < later["start_date"]
            assert later["start_date"] - earlier["start_date"] > timedelta(days=30)


class TestScenarios:
    def test_three_photos_within_twenty_days(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("a", days=0, confidence=60),
            make_observation("b", days=10, confidence=70),
            make_observation("c", days=20, confidence=80),
        ])

        assert len(periods) == 1
        assert periods[0]["average_score"] == 70
        assert periods[0]["trend"] == TREND_STABLE

    def test_good_then_poor_six_weeks_later(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("a", days=0, overall_health="good"),
            make_observation("b", days=45, overall_health="poor"),
        ])

        assert [_ids(p) for p in periods] == [["a"], ["b"]]
        assert periods[1]["trend"] == TREND_DECLINING


class TestPeriodTrends:
    def test_first_period_is_stable_then_compared_to_previous(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("p0", days=0, overall_health="fair"),       # 60
            make_observation("p1", days=40, overall_health="good"),      # 80
            make_observation("p2", days=80, overall_health="poor"),      # 30
        ])
        assert [p["trend"] for p in periods] == [TREND_STABLE, TREND_IMPROVING, TREND_DECLINING]

    def test_equal_average_is_declining(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("p0", days=0, overall_health="good"),
            make_observation("p1", days=40, overall_health="good"),
        ])
        assert periods[1]["trend"] == TREND_DECLINING


class TestOverallTrend:
    @pytest.mark.parametrize("last_score,expected", [
        (65, TREND_STABLE),      # +5 sits on the dead-band edge
        (66, TREND_IMPROVING),
        (55, TREND_STABLE),
        (54, TREND_DECLINING),
    ])
    def test_dead_band(self, make_observation, last_score, expected):
        periods = evolution.bucket_observations([
            make_observation("first", days=0, confidence=60),
            make_observation("last", days=45, confidence=last_score),
        ])
        assert evolution.overall_trend(periods) == expected

    def test_compares_last_against_first_only(self, make_observation):
        periods = evolution.bucket_observations([
            make_observation("p0", days=0, overall_health="fair"),
            make_observation("p1", days=40, overall_health="critical"),
            make_observation("p2", days=80, overall_health="excellent"),
        ])
        assert evolution.overall_trend(periods) == TREND_IMPROVING

    def test_fewer_than_two_periods(self):
        assert evolution.overall_trend([]) is None


def test_score_history_skips_unscored(make_observation):
    history = evolution.score_history([
        make_observation("b", days=3, overall_health="poor"),
        make_observation("skip", days=2),
        make_observation("a", days=1, confidence=0.9),
    ])
    assert [point["observation_id"] for point in history] == ["a", "b"]
    assert history[0]["score"] == pytest.approx(90.0)
    assert history[0]["timestamp"] < history[1]["timestamp"]


class TestBuildEvolution:
    def test_serialized_view(self, make_plant, make_observation):
        plant = make_plant(observations=[
            make_observation("a", days=0, overall_health="fair"),
            make_observation("b", days=45, overall_health="excellent"),
        ])

        view = evolution.build_evolution(plant)

        assert view["plant_id"] == plant["id"]
        assert view["overall_trend"] == TREND_IMPROVING
        assert view["current_score"] == 95.0
        assert [p["observation_ids"] for p in view["periods"]] == [["a"], ["b"]]
        assert isinstance(view["periods"][0]["start_date"], str)
        assert isinstance(view["score_history"][0]["timestamp"], str)

    def test_displayed_average_is_clamped(self, make_plant, make_observation):
        plant = make_plant(observations=[make_observation("a", confidence=140)])
        view = evolution.build_evolution(plant)
        assert view["periods"][0]["average_score"] == 100.0

    def test_projection_follows_current_observation_list(self, make_plant, make_observation):
        plant = make_plant(observations=[make_observation("a", days=0, overall_health="good")])
        assert len(evolution.build_evolution(plant)["periods"]) == 1

        plant["observations"].append(make_observation("b", days=40, overall_health="poor"))
        view = evolution.build_evolution(plant)

        assert len(view["periods"]) == 2
        assert view["overall_trend"] == TREND_DECLINING

    def test_undated_observation_is_left_out(self, make_plant, make_observation):
        undated = {**make_observation("undated", overall_health="critical"), "timestamp": None}
        plant = make_plant(observations=[make_observation("a", days=0, overall_health="good"), undated])

        view = evolution.build_evolution(plant)

        assert [p["observation_ids"] for p in view["periods"]] == [["a"]]
        assert [point["observation_id"] for point in view["score_history"]] == ["a"]
