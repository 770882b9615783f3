import logging

from sqlalchemy.orm import Session

from app.models.notification import Notification
from app.utils.clock import now_ms

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    recipient_id: str,
    notif_type: str,
    title: str,
    message: str,
    actor_id: str | None = None,
    trip_id: int | None = None,
    parcel_id: int | None = None,
    match_id: int | None = None,
    created_at: int | None = None,
) -> Notification:
    """Insert an in-app notification row. The caller owns the commit."""
    notification = Notification(
        recipient_id=recipient_id,
        actor_id=actor_id,
        notif_type=notif_type,
        title=title,
        message=message,
        trip_id=trip_id,
        parcel_id=parcel_id,
        match_id=match_id,
        created_at=created_at if created_at is not None else now_ms(),
    )
    db.add(notification)
    db.flush()
    logger.debug(
        "notification: type=%s recipient=%s parcel=%s trip=%s",
        notif_type, recipient_id, parcel_id, trip_id,
    )
    return notification
