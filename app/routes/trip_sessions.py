import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies.auth import require_user_id
from app.services.session_ranking import LocationPoint
from app.services.trip_sessions import (
    SessionPlace,
    get_active_session,
    list_session_matches,
    push_session_location,
    serialize_session,
    start_trip_session,
    stop_trip_session,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trip-sessions", tags=["trip-sessions"])


class PlaceIn(BaseModel):
    label: str = Field(min_length=1)
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    city: str | None = None

    def to_place(self) -> SessionPlace:
        return SessionPlace(label=self.label, lat=self.lat, lng=self.lng, city=self.city)


class StartSessionIn(BaseModel):
    origin: PlaceIn
    destination: PlaceIn
    deviation_max_minutes: int
    opportunities_enabled: bool = True


class LocationIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    timestamp: int = Field(ge=0)


@router.post("")
def start_session(
    payload: StartSessionIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    return start_trip_session(
        db,
        user_id=user_id,
        origin=payload.origin.to_place(),
        destination=payload.destination.to_place(),
        deviation_max_minutes=payload.deviation_max_minutes,
        opportunities_enabled=payload.opportunities_enabled,
    )


@router.get("/active")
def active_session(
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    session = get_active_session(db, user_id)
    return {"session": serialize_session(session) if session else None}


@router.post("/{session_id}/location")
def push_location(
    session_id: int,
    payload: LocationIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    return push_session_location(
        db,
        session_id,
        user_id=user_id,
        location=LocationPoint(lat=payload.lat, lng=payload.lng, timestamp=payload.timestamp),
    )


@router.get("/{session_id}/matches")
def session_matches(
    session_id: int,
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    matches = list_session_matches(db, session_id, user_id=user_id, limit=limit)
    return {"trip_session_id": session_id, "matches": matches}


@router.post("/{session_id}/stop")
def stop_session(
    session_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    return stop_trip_session(db, session_id, user_id=user_id)
