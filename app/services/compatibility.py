"""Trip/parcel compatibility filter and 0-100 fitness score.

A trip can host a parcel when all of these hold:

  1. window     the trip window and the parcel preferred window overlap
  2. size       trip space rank >= parcel size rank (small < medium < large)
  3. weight     trip.max_weight_kg >= parcel.weight_kg
  4. volume     trip.max_volume_dm3 >= parcel.volume_dm3
  5. detour     estimated detour <= trip.max_detour_minutes + grace
  6. direction  drop-off progress along the trip corridor is not materially
                before the pickup progress

Filter failures are normal outcomes, not errors: the first failed criterion
is returned as ``reason`` so callers can log why a pair was skipped.

Score weights: detour 0.55, window overlap 0.25 (saturates at 120 min),
pace 0.20 (detour relative to the base route; neutral 40 if unknown).
"""

from __future__ import annotations

from typing import Any

from app.core.config import settings
from app.services.geo import (
    LatLng,
    point_to_segment_distance_km,
    round_half_up,
    segment_progress,
    window_overlap_minutes,
    windows_overlap,
)
from app.services.pricing import PricingBreakdown


SIZE_RANK: dict[str, int] = {"small": 1, "medium": 2, "large": 3}

OVERLAP_SATURATION_MINUTES = 120
NEUTRAL_PACE_SCORE = 40.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def trip_origin(trip: Any) -> LatLng:
    return LatLng(trip.origin_lat, trip.origin_lng)


def trip_destination(trip: Any) -> LatLng:
    return LatLng(trip.destination_lat, trip.destination_lng)


def parcel_pickup(parcel: Any) -> LatLng:
    return LatLng(parcel.origin_lat, parcel.origin_lng)


def parcel_drop(parcel: Any) -> LatLng:
    return LatLng(parcel.destination_lat, parcel.destination_lng)


def size_is_compatible(trip_space: str, parcel_size: str) -> bool:
    trip_rank = SIZE_RANK.get((trip_space or "").lower())
    parcel_rank = SIZE_RANK.get((parcel_size or "").lower())
    if trip_rank is None or parcel_rank is None:
        return False
    return trip_rank >= parcel_rank


def estimate_detour(trip: Any, parcel: Any) -> tuple[float, int]:
    """Return ``(detour_distance_km, detour_minutes)`` for carrying parcel on trip."""
    start, end = trip_origin(trip), trip_destination(trip)
    pickup_to_route = point_to_segment_distance_km(parcel_pickup(parcel), start, end)
    drop_to_route = point_to_segment_distance_km(parcel_drop(parcel), start, end)

    detour_km = (pickup_to_route + drop_to_route) * settings.MATCH_ROAD_FACTOR
    detour_minutes = detour_km / settings.MATCH_AVG_SPEED_KMH * 60
    return round(detour_km, 2), round_half_up(detour_minutes)


def check_compatibility(trip: Any, parcel: Any) -> dict[str, Any]:
    """Run the filter chain for one pair.

    Returns a dict with keys:
      compatible          bool
      reason              str | None  – first failed criterion
      detour_distance_km  float | None
      detour_minutes      int | None
    """
    result: dict[str, Any] = {
        "compatible": False,
        "reason": None,
        "detour_distance_km": None,
        "detour_minutes": None,
    }

    if not windows_overlap(
        trip.window_start_ts,
        trip.window_end_ts,
        parcel.preferred_window_start_ts,
        parcel.preferred_window_end_ts,
    ):
        result["reason"] = "window"
        return result

    if not size_is_compatible(trip.available_space, parcel.size):
        result["reason"] = "size"
        return result

    if trip.max_weight_kg < parcel.weight_kg:
        result["reason"] = "weight"
        return result

    if trip.max_volume_dm3 < parcel.volume_dm3:
        result["reason"] = "volume"
        return result

    detour_km, detour_minutes = estimate_detour(trip, parcel)
    result["detour_distance_km"] = detour_km
    result["detour_minutes"] = detour_minutes
    if detour_minutes > trip.max_detour_minutes + settings.MATCH_DETOUR_GRACE_MINUTES:
        result["reason"] = "detour"
        return result

    start, end = trip_origin(trip), trip_destination(trip)
    pickup_t = segment_progress(parcel_pickup(parcel), start, end)
    drop_t = segment_progress(parcel_drop(parcel), start, end)
    if drop_t < pickup_t - settings.MATCH_DIRECTION_TOLERANCE:
        result["reason"] = "direction"
        return result

    result["compatible"] = True
    return result


def overlap_minutes(trip: Any, parcel: Any) -> float:
    return window_overlap_minutes(
        trip.window_start_ts,
        trip.window_end_ts,
        parcel.preferred_window_start_ts,
        parcel.preferred_window_end_ts,
    )


def compute_match_score(
    *,
    detour_minutes: int,
    driver_detour_limit: int,
    window_overlap_minutes: float,
    base_route_minutes: float | None,
) -> int:
    detour_ratio = detour_minutes / driver_detour_limit if driver_detour_limit > 0 else 1.0
    detour_score = 100 * (1 - _clamp(detour_ratio, 0, 1))

    overlap_score = 100 * _clamp(window_overlap_minutes / OVERLAP_SATURATION_MINUTES, 0, 1)

    if base_route_minutes and base_route_minutes > 0:
        pace_score = 100 * (1 - _clamp(detour_minutes / (base_route_minutes + detour_minutes), 0, 1))
    else:
        pace_score = NEUTRAL_PACE_SCORE

    score = round_half_up(detour_score * 0.55 + overlap_score * 0.25 + pace_score * 0.20)
    return int(_clamp(score, 0, 100))


def explain_ranking(score: int, pricing: PricingBreakdown) -> str:
    price = f"{pricing.total_amount} {pricing.currency}"
    if score >= 85:
        return f"Excellent fit, low detour, estimated price {price}"
    if score >= 70:
        return f"Good fit, estimated price {price}"
    return f"Compatible but suboptimal, estimated price {price}"
