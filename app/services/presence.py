import logging

from sqlalchemy.orm import Session

from app.models.user import User
from app.services.geo import LatLng
from app.utils.clock import now_ms

logger = logging.getLogger(__name__)


def touch_presence(
    db: Session,
    user_id: str,
    *,
    is_online: bool | None = None,
    location: LatLng | None = None,
    now: int | None = None,
) -> bool:
    """Bump last_active_at and optionally the online flag / last known location.

    Presence is one row per user, last writer wins. Unknown users are left
    alone (the identity collaborator owns row creation). Returns True when a
    row was updated. The caller owns the commit.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.debug("presence: unknown user=%s, skipping", user_id)
        return False

    now = now if now is not None else now_ms()
    if is_online is not None:
        user.is_online = is_online
    user.last_active_at = now
    if location is not None:
        user.last_lat = location.lat
        user.last_lng = location.lng
        user.last_location_at = now
    return True
