"""Parcel lifecycle hooks called by the listing service on publish and close."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies.auth import require_user_id
from app.services.escalation import on_parcel_closed, on_parcel_created

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/parcels", tags=["parcels"])


@router.post("/{parcel_id}/created")
def parcel_created(
    parcel_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    return on_parcel_created(db, parcel_id)


@router.post("/{parcel_id}/closed")
def parcel_closed(
    parcel_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(require_user_id),
) -> dict:
    return on_parcel_closed(db, parcel_id)
