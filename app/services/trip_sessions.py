"""Live trip sessions ("drive now").

A traveler declares a corridor and a deviation budget, then streams location
updates. Every accepted update re-ranks the open parcel pool from scratch;
nothing is cached except the match count used to decide whether the traveler
should be told that more parcels are now available on the route.

Rules enforced here:
  - one ACTIVE session per user; starting a new one stops the others
  - only the session owner may push, list or stop (NotAuthorizedError)
  - stale updates (older timestamp than the stored one) are ignored
  - updates within 20 s and 120 m of the last accepted one are throttled
  - "N parcels on your route" fires only when opportunities are enabled, the
    count grew and the 10 minute cooldown has elapsed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidInputError, NotAuthorizedError, NotFoundError
from app.models.parcel import OPEN_STATUS, Parcel
from app.models.trip_session import TripSession
from app.services.geo import LatLng
from app.services.notifications import create_notification
from app.services.presence import touch_presence
from app.services.session_ranking import (
    DEVIATION_CHOICES,
    LocationPoint,
    RankedParcel,
    SessionCandidate,
    rank_session_candidates,
    should_push_location_update,
)
from app.utils.clock import MINUTE_MS, now_ms

logger = logging.getLogger(__name__)

ACTIVE = "ACTIVE"
STOPPED = "STOPPED"


@dataclass(frozen=True)
class SessionPlace:
    label: str
    lat: float
    lng: float
    city: str | None = None


def _validate_coordinates(lat: float, lng: float, field: str) -> None:
    if lat is None or lng is None:
        raise InvalidInputError(f"{field}_missing_coordinates")
    if not -90 <= lat <= 90:
        raise InvalidInputError(f"{field}_latitude_out_of_range")
    if not -180 <= lng <= 180:
        raise InvalidInputError(f"{field}_longitude_out_of_range")


def _owned_session(db: Session, session_id: int, user_id: str) -> TripSession:
    session = db.query(TripSession).filter(TripSession.id == session_id).first()
    if not session:
        raise NotFoundError("trip_session_not_found")
    if session.user_id != user_id:
        raise NotAuthorizedError("trip_session_not_owned")
    return session


def _open_parcels(db: Session) -> list[Parcel]:
    return (
        db.query(Parcel)
        .filter(Parcel.status == OPEN_STATUS)
        .order_by(Parcel.preferred_window_start_ts.asc(), Parcel.id.asc())
        .all()
    )


def rank_for_session(db: Session, session: TripSession, limit: int | None) -> list[RankedParcel]:
    candidates = [
        SessionCandidate(
            parcel_id=parcel.id,
            pickup_label=parcel.origin_label,
            drop_label=parcel.destination_label,
            pickup=LatLng(parcel.origin_lat, parcel.origin_lng),
            drop=LatLng(parcel.destination_lat, parcel.destination_lng),
        )
        for parcel in _open_parcels(db)
    ]
    return rank_session_candidates(
        origin=LatLng(session.origin_lat, session.origin_lng),
        destination=LatLng(session.destination_lat, session.destination_lng),
        deviation_max_minutes=session.deviation_max_minutes,
        candidates=candidates,
        limit=limit,
    )


def get_active_session(db: Session, user_id: str) -> TripSession | None:
    return (
        db.query(TripSession)
        .filter(TripSession.user_id == user_id, TripSession.status == ACTIVE)
        .order_by(TripSession.started_at.desc(), TripSession.id.desc())
        .first()
    )


def start_trip_session(
    db: Session,
    *,
    user_id: str,
    origin: SessionPlace,
    destination: SessionPlace,
    deviation_max_minutes: int,
    opportunities_enabled: bool,
    now: int | None = None,
) -> dict[str, int]:
    if not user_id:
        raise InvalidInputError("user_id_required")
    _validate_coordinates(origin.lat, origin.lng, "origin")
    _validate_coordinates(destination.lat, destination.lng, "destination")
    if deviation_max_minutes not in DEVIATION_CHOICES:
        raise InvalidInputError("deviation_not_allowed")

    now = now if now is not None else now_ms()
    active_sessions = (
        db.query(TripSession)
        .filter(TripSession.user_id == user_id, TripSession.status == ACTIVE)
        .all()
    )
    for previous in active_sessions:
        previous.status = STOPPED
        previous.ended_at = now
        previous.updated_at = now

    session = TripSession(
        user_id=user_id,
        origin_label=origin.label,
        origin_city=origin.city,
        origin_lat=origin.lat,
        origin_lng=origin.lng,
        destination_label=destination.label,
        destination_city=destination.city,
        destination_lat=destination.lat,
        destination_lng=destination.lng,
        deviation_max_minutes=deviation_max_minutes,
        opportunities_enabled=opportunities_enabled,
        status=ACTIVE,
        matches_count_cache=0,
        started_at=now,
        updated_at=now,
    )
    db.add(session)
    touch_presence(db, user_id, is_online=True, now=now)
    db.commit()

    logger.info(
        "trip_session: started id=%s user=%s deviation=%s stopped_previous=%s",
        session.id, user_id, deviation_max_minutes, len(active_sessions),
    )
    return {"trip_session_id": session.id}


def push_session_location(
    db: Session,
    session_id: int,
    *,
    user_id: str,
    location: LocationPoint,
    now: int | None = None,
) -> dict[str, Any]:
    _validate_coordinates(location.lat, location.lng, "location")
    if location.timestamp is None or location.timestamp < 0:
        raise InvalidInputError("location_timestamp_invalid")

    session = _owned_session(db, session_id, user_id)
    cached = {
        "matches_count": session.matches_count_cache,
        "previous_matches_count": session.matches_count_cache,
        "should_notify": False,
        "destination_label": session.destination_label,
        "accepted": False,
    }
    if session.status != ACTIVE:
        return cached

    previous = None
    if session.last_location_ts is not None:
        previous = LocationPoint(session.last_lat, session.last_lng, session.last_location_ts)
        if location.timestamp < previous.timestamp:
            logger.debug("trip_session: stale location for id=%s ignored", session_id)
            return cached
    if not should_push_location_update(previous, location):
        return cached

    now = now if now is not None else now_ms()
    matches = rank_for_session(db, session, settings.SESSION_RANK_LIMIT)
    new_count = len(matches)
    old_count = session.matches_count_cache or 0

    cooldown_ms = settings.SESSION_NOTIFY_COOLDOWN_MINUTES * MINUTE_MS
    cooldown_elapsed = session.last_notified_at is None or now - session.last_notified_at >= cooldown_ms
    should_notify = bool(session.opportunities_enabled) and new_count > old_count and cooldown_elapsed

    session.last_lat = location.lat
    session.last_lng = location.lng
    session.last_location_ts = location.timestamp
    session.matches_count_cache = new_count
    if should_notify:
        session.last_notified_at = now
    session.updated_at = now

    touch_presence(db, user_id, is_online=True, location=LatLng(location.lat, location.lng), now=now)

    if should_notify:
        create_notification(
            db,
            recipient_id=session.user_id,
            notif_type="trip_session_matches",
            title=f"{new_count} parcels available on your route",
            message=f"Towards {session.destination_city or session.destination_label}",
            created_at=now,
        )

    db.commit()
    return {
        "matches_count": new_count,
        "previous_matches_count": old_count,
        "should_notify": should_notify,
        "destination_label": session.destination_label,
        "accepted": True,
    }


def list_session_matches(
    db: Session,
    session_id: int,
    *,
    user_id: str,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    session = db.query(TripSession).filter(TripSession.id == session_id).first()
    if not session:
        return []
    if session.user_id != user_id:
        raise NotAuthorizedError("trip_session_not_owned")

    if limit and limit > 0:
        limit = min(limit, settings.SESSION_LIST_MAX_LIMIT)
    else:
        limit = settings.SESSION_RANK_LIMIT

    ranked = rank_for_session(db, session, limit)
    parcel_ids = [entry.parcel_id for entry in ranked]
    parcels = {
        parcel.id: parcel
        for parcel in db.query(Parcel).filter(Parcel.id.in_(parcel_ids)).all()
    } if parcel_ids else {}

    results = []
    for entry in ranked:
        parcel = parcels.get(entry.parcel_id)
        if parcel is None:
            continue
        results.append({
            "parcel_id": entry.parcel_id,
            "pickup_label": entry.pickup_label,
            "drop_label": entry.drop_label,
            "score": entry.score,
            "estimated_detour_minutes": entry.estimated_detour_minutes,
            "pickup_distance_to_corridor_km": entry.pickup_distance_to_corridor_km,
            "drop_distance_to_destination_km": entry.drop_distance_to_destination_km,
            "size": parcel.size,
            "description": parcel.description,
            "urgency_level": parcel.urgency_level,
            "weight_kg": parcel.weight_kg,
        })
    return results


def stop_trip_session(db: Session, session_id: int, *, user_id: str, now: int | None = None) -> dict[str, bool]:
    session = _owned_session(db, session_id, user_id)
    if session.status != ACTIVE:
        return {"success": True}

    now = now if now is not None else now_ms()
    session.status = STOPPED
    session.ended_at = now
    session.updated_at = now
    touch_presence(db, user_id, is_online=False, now=now)
    db.commit()

    logger.info("trip_session: stopped id=%s user=%s", session_id, user_id)
    return {"success": True}


def serialize_session(session: TripSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "user_id": session.user_id,
        "origin": {
            "label": session.origin_label,
            "city": session.origin_city,
            "lat": session.origin_lat,
            "lng": session.origin_lng,
        },
        "destination": {
            "label": session.destination_label,
            "city": session.destination_city,
            "lat": session.destination_lat,
            "lng": session.destination_lng,
        },
        "deviation_max_minutes": session.deviation_max_minutes,
        "opportunities_enabled": session.opportunities_enabled,
        "status": session.status,
        "last_location": (
            {"lat": session.last_lat, "lng": session.last_lng, "timestamp": session.last_location_ts}
            if session.last_location_ts is not None
            else None
        ),
        "matches_count_cache": session.matches_count_cache,
        "last_notified_at": session.last_notified_at,
        "started_at": session.started_at,
        "ended_at": session.ended_at,
    }
