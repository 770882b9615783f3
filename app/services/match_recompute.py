"""Batch match recomputation for one trip or one parcel.

Each pass owns the whole candidate set of its subject entity:

  1. lock the subject row (serialises two passes for the same entity)
  2. no-op unless the subject is published
  3. delete every match row of the subject
  4. insert a fresh ``candidate`` row for each compatible counterpart
  5. parcel passes notify trip owners that are matched for the first time

A parcel pass and a trip pass can both insert the same (trip, parcel) pair.
The loser hits the unique key, rolls back and runs its pass once more.

Match identities do not survive a pass; the same inputs always produce the
same set of (trip, parcel, score, price) rows.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import InvalidInputError, NotAuthorizedError, NotFoundError
from app.models.match import Match
from app.models.parcel import OPEN_STATUS, Parcel
from app.models.trip import Trip
from app.services.compatibility import (
    check_compatibility,
    compute_match_score,
    explain_ranking,
    overlap_minutes,
)
from app.services.notifications import create_notification
from app.services.pricing import PricingInput, compute_dynamic_price
from app.utils.clock import HOUR_MS, now_ms

logger = logging.getLogger(__name__)

MAX_DETOUR_LIMIT_MINUTES = 180


def _build_match(trip: Trip, parcel: Parcel, now: int) -> Match | None:
    check = check_compatibility(trip, parcel)
    if not check["compatible"]:
        logger.debug(
            "match_recompute: skip trip=%s parcel=%s reason=%s",
            trip.id, parcel.id, check["reason"],
        )
        return None

    detour_minutes = check["detour_minutes"]
    pricing = compute_dynamic_price(
        PricingInput(
            base_distance_km=check["detour_distance_km"],
            weight_kg=parcel.weight_kg,
            volume_dm3=parcel.volume_dm3,
            detour_minutes=detour_minutes,
            urgency_level=parcel.urgency_level,
            fragile=bool(parcel.fragile),
            insurance_value=parcel.insurance_value,
        )
    )

    score = compute_match_score(
        detour_minutes=detour_minutes,
        driver_detour_limit=trip.max_detour_minutes,
        window_overlap_minutes=overlap_minutes(trip, parcel),
        base_route_minutes=trip.route_duration_minutes or settings.MATCH_DEFAULT_ROUTE_MINUTES,
    )

    return Match(
        trip_id=trip.id,
        parcel_id=parcel.id,
        status="candidate",
        score=score,
        detour_minutes=detour_minutes,
        detour_distance_km=check["detour_distance_km"],
        route_distance_km=trip.route_distance_km or 0,
        route_duration_minutes=trip.route_duration_minutes or 0,
        total_amount=pricing.total_amount,
        pricing_estimate=pricing.to_dict(),
        ranking_reason=explain_ranking(score, pricing),
        expires_at=now + settings.MATCH_TTL_HOURS * HOUR_MS,
        created_at=now,
        updated_at=now,
    )


def _delete_matches(db: Session, existing: list[Match]) -> None:
    for match in existing:
        db.delete(match)
    db.flush()


def _run_pass(pass_fn, db: Session, subject: str, subject_id: int, now: int) -> dict[str, int]:
    try:
        return pass_fn(db, subject_id, now)
    except IntegrityError:
        db.rollback()
        logger.warning(
            "match_recompute: %s=%s collided with a concurrent pass, retrying",
            subject, subject_id,
        )
        return pass_fn(db, subject_id, now)


def recompute_matches_for_parcel(db: Session, parcel_id: int, *, now: int | None = None) -> dict[str, int]:
    now = now if now is not None else now_ms()
    return _run_pass(_recompute_parcel, db, "parcel", parcel_id, now)


def _recompute_parcel(db: Session, parcel_id: int, now: int) -> dict[str, int]:
    parcel = db.query(Parcel).filter(Parcel.id == parcel_id).with_for_update().first()
    if not parcel or parcel.status != OPEN_STATUS:
        db.rollback()
        return {"count": 0}

    trips = (
        db.query(Trip)
        .filter(Trip.status == OPEN_STATUS)
        .order_by(Trip.window_start_ts.asc(), Trip.id.asc())
        .all()
    )

    existing = db.query(Match).filter(Match.parcel_id == parcel.id).all()
    previous_trip_ids = {match.trip_id for match in existing}
    _delete_matches(db, existing)

    created: list[tuple[Trip, Match]] = []
    for trip in trips:
        match = _build_match(trip, parcel, now)
        if match is None:
            continue
        db.add(match)
        created.append((trip, match))
    db.flush()

    notified = 0
    for trip, match in created:
        if trip.id in previous_trip_ids or trip.owner_id == parcel.owner_id:
            continue
        create_notification(
            db,
            recipient_id=trip.owner_id,
            actor_id=parcel.owner_id,
            notif_type="new_match_for_trip",
            title="New parcel for your trip",
            message=f"{parcel.origin_label} -> {parcel.destination_label} · {match.ranking_reason}",
            trip_id=trip.id,
            parcel_id=parcel.id,
            match_id=match.id,
            created_at=now,
        )
        notified += 1

    db.commit()
    logger.info(
        "match_recompute: parcel=%s candidates=%s matches=%s new_trip_notifications=%s",
        parcel_id, len(trips), len(created), notified,
    )
    return {"count": len(created)}


def recompute_matches_for_trip(db: Session, trip_id: int, *, now: int | None = None) -> dict[str, int]:
    now = now if now is not None else now_ms()
    return _run_pass(_recompute_trip, db, "trip", trip_id, now)


def _recompute_trip(db: Session, trip_id: int, now: int) -> dict[str, int]:
    trip = db.query(Trip).filter(Trip.id == trip_id).with_for_update().first()
    if not trip or trip.status != OPEN_STATUS:
        db.rollback()
        return {"count": 0}

    parcels = (
        db.query(Parcel)
        .filter(Parcel.status == OPEN_STATUS)
        .order_by(Parcel.preferred_window_start_ts.asc(), Parcel.id.asc())
        .all()
    )

    _delete_matches(db, db.query(Match).filter(Match.trip_id == trip.id).all())

    count = 0
    for parcel in parcels:
        match = _build_match(trip, parcel, now)
        if match is None:
            continue
        db.add(match)
        count += 1

    db.commit()
    logger.info(
        "match_recompute: trip=%s candidates=%s matches=%s",
        trip_id, len(parcels), count,
    )
    return {"count": count}


def list_matches(
    db: Session,
    *,
    parcel_id: int | None = None,
    trip_id: int | None = None,
) -> list[Match]:
    if (parcel_id is None) == (trip_id is None):
        raise InvalidInputError("exactly_one_subject_required")

    query = db.query(Match)
    if parcel_id is not None:
        query = query.filter(Match.parcel_id == parcel_id)
    else:
        query = query.filter(Match.trip_id == trip_id)

    return query.order_by(Match.score.desc(), Match.detour_minutes.asc(), Match.id.asc()).all()


def serialize_match(match: Match) -> dict[str, Any]:
    return {
        "id": match.id,
        "trip_id": match.trip_id,
        "parcel_id": match.parcel_id,
        "status": match.status,
        "score": match.score,
        "detour_minutes": match.detour_minutes,
        "detour_distance_km": match.detour_distance_km,
        "route_distance_km": match.route_distance_km,
        "route_duration_minutes": match.route_duration_minutes,
        "pricing_estimate": match.pricing_estimate,
        "ranking_reason": match.ranking_reason,
        "expires_at": match.expires_at,
        "created_at": match.created_at,
        "updated_at": match.updated_at,
    }


def update_trip_detour_limit(
    db: Session,
    trip_id: int,
    *,
    user_id: str,
    max_detour_minutes: int,
    now: int | None = None,
) -> dict[str, int]:
    """Change a trip's detour budget and rebuild its candidate set."""
    if max_detour_minutes < 0 or max_detour_minutes > MAX_DETOUR_LIMIT_MINUTES:
        raise InvalidInputError("max_detour_minutes_out_of_range")

    trip = db.query(Trip).filter(Trip.id == trip_id).first()
    if not trip:
        raise NotFoundError("trip_not_found")
    if trip.owner_id != user_id:
        raise NotAuthorizedError("trip_not_owned")

    now = now if now is not None else now_ms()
    trip.max_detour_minutes = max_detour_minutes
    trip.updated_at = now
    db.commit()

    result = recompute_matches_for_trip(db, trip_id, now=now)
    return {"max_detour_minutes": max_detour_minutes, "count": result["count"]}
