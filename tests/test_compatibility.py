"""Tests for app/services/compatibility.py

Run with:  pytest tests/test_compatibility.py -v
"""

from types import SimpleNamespace

from app.services.compatibility import (
    check_compatibility,
    compute_match_score,
    estimate_detour,
    explain_ranking,
    size_is_compatible,
)
from app.services.pricing import PricingInput, compute_dynamic_price

HOUR = 60 * 60 * 1000


# ── Helpers ────────────────────────────────────────────────────────────────────

def _trip(**kwargs):
    defaults = dict(
        origin_lat=48.80,
        origin_lng=2.35,
        destination_lat=48.85,
        destination_lng=2.50,
        window_start_ts=0,
        window_end_ts=4 * HOUR,
        available_space="medium",
        max_weight_kg=20,
        max_volume_dm3=60,
        max_detour_minutes=20,
    )
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _parcel(**kwargs):
    defaults = dict(
        origin_lat=48.81,
        origin_lng=2.40,
        destination_lat=48.84,
        destination_lng=2.48,
        preferred_window_start_ts=HOUR,
        preferred_window_end_ts=3 * HOUR,
        size="small",
        weight_kg=2,
        volume_dm3=8,
    )
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


# ── Filter chain ───────────────────────────────────────────────────────────────

class TestCheckCompatibility:
    def test_parcel_along_the_route_is_compatible(self):
        result = check_compatibility(_trip(), _parcel())

        assert result["compatible"] is True
        assert result["reason"] is None
        assert 0 < result["detour_minutes"] <= 5
        assert result["detour_distance_km"] > 0

    def test_window_checked_first(self):
        result = check_compatibility(
            _trip(),
            _parcel(preferred_window_start_ts=5 * HOUR, preferred_window_end_ts=6 * HOUR, size="large"),
        )
        assert result == {"compatible": False, "reason": "window", "detour_distance_km": None, "detour_minutes": None}

    def test_size(self):
        assert check_compatibility(_trip(available_space="small"), _parcel(size="medium"))["reason"] == "size"

    def test_weight(self):
        assert check_compatibility(_trip(max_weight_kg=1), _parcel())["reason"] == "weight"

    def test_volume(self):
        assert check_compatibility(_trip(max_volume_dm3=4), _parcel())["reason"] == "volume"

    def test_detour_over_limit_plus_grace(self):
        far = _parcel(origin_lat=48.60, origin_lng=2.10)
        result = check_compatibility(_trip(max_detour_minutes=5), far)

        assert result["reason"] == "detour"
        assert result["detour_minutes"] > 10

    def test_backwards_parcel_rejected_on_direction(self):
        backwards = _parcel(origin_lat=48.84, origin_lng=2.48, destination_lat=48.81, destination_lng=2.40)
        assert check_compatibility(_trip(), backwards)["reason"] == "direction"


def test_size_ranks():
    assert size_is_compatible("large", "small")
    assert size_is_compatible("medium", "medium")
    assert not size_is_compatible("small", "large")
    assert not size_is_compatible("huge", "small")


def test_estimate_detour_is_zero_on_the_line():
    on_line = _parcel(origin_lat=48.80, origin_lng=2.35, destination_lat=48.85, destination_lng=2.50)
    assert estimate_detour(_trip(), on_line) == (0, 0)


# ── Score ──────────────────────────────────────────────────────────────────────

class TestMatchScore:
    def test_perfect_fit(self):
        score = compute_match_score(
            detour_minutes=0, driver_detour_limit=20, window_overlap_minutes=240, base_route_minutes=90
        )
        assert score == 100

    def test_worst_fit_with_unknown_route(self):
        score = compute_match_score(
            detour_minutes=40, driver_detour_limit=20, window_overlap_minutes=0, base_route_minutes=None
        )
        assert score == 8

    def test_zero_limit_counts_as_full_detour(self):
        score = compute_match_score(
            detour_minutes=0, driver_detour_limit=0, window_overlap_minutes=120, base_route_minutes=90
        )
        assert score == 45

    def test_exact_half_rounds_up_into_the_next_band(self):
        # 44 + 22.5 + 18 = 84.5
        score = compute_match_score(
            detour_minutes=10, driver_detour_limit=50, window_overlap_minutes=108, base_route_minutes=90
        )
        assert score == 85

    def test_always_integer_in_range(self):
        for detour in (0, 3, 17, 90):
            for overlap in (0, 45, 500):
                score = compute_match_score(
                    detour_minutes=detour,
                    driver_detour_limit=15,
                    window_overlap_minutes=overlap,
                    base_route_minutes=60,
                )
                assert isinstance(score, int)
                assert 0 <= score <= 100


def test_explain_ranking_tiers():
    pricing = compute_dynamic_price(PricingInput(base_distance_km=8, weight_kg=2, volume_dm3=8, detour_minutes=12))

    assert explain_ranking(90, pricing) == "Excellent fit, low detour, estimated price 14.18 EUR"
    assert explain_ranking(70, pricing) == "Good fit, estimated price 14.18 EUR"
    assert explain_ranking(69, pricing) == "Compatible but suboptimal, estimated price 14.18 EUR"
