"""Geometry helpers shared by batch matching, live sessions and escalation waves.

Distances are great-circle (haversine) kilometres. Corridor projection is done
in plain (lng, lat) space, which is good enough at city/region scale and keeps
the detour heuristics cheap.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


def distance_km(a: LatLng, b: LatLng) -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    # min() guards asin against float drift just above 1.0 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def distance_meters(a: LatLng, b: LatLng) -> float:
    return distance_km(a, b) * 1000.0


def segment_progress(point: LatLng, start: LatLng, end: LatLng) -> float:
    """Projection parameter of ``point`` on ``[start, end]``, clamped to [0, 1]."""
    dx = end.lng - start.lng
    dy = end.lat - start.lat
    if dx == 0 and dy == 0:
        return 0.0

    t = ((point.lng - start.lng) * dx + (point.lat - start.lat) * dy) / (dx * dx + dy * dy)
    return max(0.0, min(1.0, t))


def point_to_segment_distance_km(point: LatLng, start: LatLng, end: LatLng) -> float:
    if start.lat == end.lat and start.lng == end.lng:
        return distance_km(point, start)

    t = segment_progress(point, start, end)
    projected = LatLng(
        lat=start.lat + t * (end.lat - start.lat),
        lng=start.lng + t * (end.lng - start.lng),
    )
    return distance_km(point, projected)


def round_half_up(value: float) -> int:
    """Nearest integer, exact halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def windows_overlap(left_start: int, left_end: int, right_start: int, right_end: int) -> bool:
    return left_start <= right_end and right_start <= left_end


def window_overlap_minutes(left_start: int, left_end: int, right_start: int, right_end: int) -> float:
    overlap_ms = min(left_end, right_end) - max(left_start, right_start)
    return max(0.0, overlap_ms / 60000)
