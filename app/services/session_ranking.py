"""Corridor ranking for "drive now" trip sessions.

Unlike batch matching, a live session only knows where the traveler is going,
so each open parcel is scored on how far its pickup sits from the corridor and
how far its drop-off sits from the session destination.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from app.core.config import settings
from app.services.geo import (
    LatLng,
    distance_km,
    distance_meters,
    point_to_segment_distance_km,
    round_half_up,
)

DEVIATION_CHOICES = (5, 10, 20, 30)

PICKUP_ROAD_FACTOR = 1.35
DROP_ROAD_FACTOR = 0.75
SESSION_AVG_SPEED_KMH = 42.0


@dataclass(frozen=True)
class SessionCandidate:
    parcel_id: int
    pickup_label: str
    drop_label: str
    pickup: LatLng
    drop: LatLng


@dataclass(frozen=True)
class RankedParcel:
    parcel_id: int
    pickup_label: str
    drop_label: str
    pickup: LatLng
    drop: LatLng
    score: int
    estimated_detour_minutes: int
    pickup_distance_to_corridor_km: float
    drop_distance_to_destination_km: float


@dataclass(frozen=True)
class LocationPoint:
    lat: float
    lng: float
    timestamp: int


def estimate_session_detour_minutes(pickup_distance_km: float, drop_distance_km: float) -> int:
    detour_km = pickup_distance_km * PICKUP_ROAD_FACTOR + drop_distance_km * DROP_ROAD_FACTOR
    return round_half_up(detour_km / SESSION_AVG_SPEED_KMH * 60)


def score_session_candidate(
    *,
    origin: LatLng,
    destination: LatLng,
    deviation_max_minutes: int,
    candidate: SessionCandidate,
) -> RankedParcel | None:
    pickup_km = point_to_segment_distance_km(candidate.pickup, origin, destination)
    drop_km = distance_km(candidate.drop, destination)
    detour_minutes = estimate_session_detour_minutes(pickup_km, drop_km)

    if detour_minutes > deviation_max_minutes:
        return None

    raw = pickup_km * 0.45 + drop_km * 0.35 + detour_minutes * 0.20
    score = max(0, round_half_up(100 - raw * 10))

    return RankedParcel(
        parcel_id=candidate.parcel_id,
        pickup_label=candidate.pickup_label,
        drop_label=candidate.drop_label,
        pickup=candidate.pickup,
        drop=candidate.drop,
        score=score,
        estimated_detour_minutes=detour_minutes,
        pickup_distance_to_corridor_km=round(pickup_km, 2),
        drop_distance_to_destination_km=round(drop_km, 2),
    )


def rank_session_candidates(
    *,
    origin: LatLng,
    destination: LatLng,
    deviation_max_minutes: int,
    candidates: Iterable[SessionCandidate],
    limit: int | None = None,
) -> list[RankedParcel]:
    scored = []
    for candidate in candidates:
        ranked = score_session_candidate(
            origin=origin,
            destination=destination,
            deviation_max_minutes=deviation_max_minutes,
            candidate=candidate,
        )
        if ranked is not None:
            scored.append(ranked)

    scored.sort(key=lambda item: (-item.score, item.estimated_detour_minutes))
    if limit and limit > 0:
        return scored[:limit]
    return scored


def should_push_location_update(previous: LocationPoint | None, new: LocationPoint) -> bool:
    """Throttle for location pushes: every 20 s or 120 m, whichever comes first."""
    if previous is None:
        return True

    elapsed_ms = new.timestamp - previous.timestamp
    if elapsed_ms >= settings.SESSION_PUSH_MIN_INTERVAL_SECONDS * 1000:
        return True

    moved = distance_meters(LatLng(previous.lat, previous.lng), LatLng(new.lat, new.lng))
    return moved >= settings.SESSION_PUSH_MIN_DISTANCE_METERS
