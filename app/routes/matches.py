import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies.auth import require_user_id
from app.services.match_recompute import (
    list_matches,
    recompute_matches_for_parcel,
    recompute_matches_for_trip,
    serialize_match,
    update_trip_detour_limit,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["matches"])


class DetourLimitIn(BaseModel):
    max_detour_minutes: int = Field(ge=0, le=180)


@router.post("/parcels/{parcel_id}/matches/recompute")
def recompute_parcel_matches(
    parcel_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    logger.debug("matches: recompute parcel=%s requested by user=%s", parcel_id, user_id)
    return recompute_matches_for_parcel(db, parcel_id)


@router.post("/trips/{trip_id}/matches/recompute")
def recompute_trip_matches(
    trip_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    logger.debug("matches: recompute trip=%s requested by user=%s", trip_id, user_id)
    return recompute_matches_for_trip(db, trip_id)


@router.get("/parcels/{parcel_id}/matches")
def get_parcel_matches(
    parcel_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    matches = list_matches(db, parcel_id=parcel_id)
    return {"parcel_id": parcel_id, "matches": [serialize_match(m) for m in matches]}


@router.get("/trips/{trip_id}/matches")
def get_trip_matches(
    trip_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    matches = list_matches(db, trip_id=trip_id)
    return {"trip_id": trip_id, "matches": [serialize_match(m) for m in matches]}


@router.patch("/trips/{trip_id}/detour-limit")
def patch_trip_detour_limit(
    trip_id: int,
    payload: DetourLimitIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    return update_trip_detour_limit(
        db,
        trip_id,
        user_id=user_id,
        max_detour_minutes=payload.max_detour_minutes,
    )
