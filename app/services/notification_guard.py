"""notification_guard.py

Single entry point for deciding whether a carrier may be pushed about a new
parcel, and for claiming the (parcel, carrier) slot in the notification_logs
ledger idempotently.

Rules enforced here (in order):
  1. The parcel owner is never notified about their own parcel.
  2. Presence: carrier must be online, active within the last 24 h and have a
     last known location.
  3. Radius: distance from the parcel pickup to the carrier must be within
     min(wave radius, carrier radius preference).
  4. Deduplication: no ledger row may exist for (parcel, carrier).
  5. Hourly cap: fewer than max_push_per_hour ledger rows in the rolling hour.
  6. Minimum price: when set, the parcel must carry a proposed price >= it.
  7. Urgent only: when set, normal-urgency parcels are skipped.

Rule 4 is only a cheap pre-check. The real guarantee is the unique
(parcel_id, recipient_id) key: claim_notification_slot() inserts with
ON CONFLICT DO NOTHING, so two concurrent waves can never both own a slot.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, text
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.escalation import NotificationLog
from app.services.geo import LatLng, distance_km
from app.utils.clock import HOUR_MS

if TYPE_CHECKING:
    from app.models.parcel import Parcel
    from app.models.user import User

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 5
DEFAULT_MAX_PUSH_PER_HOUR = 5
MAX_ERROR_LENGTH = 180


# ── Preferences ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CarrierNotificationSettings:
    notify_radius_km: int
    min_price: Decimal | None
    urgent_only: bool
    max_push_per_hour: int


def _finite(value: Any) -> bool:
    if value is None:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def normalize_notification_settings(
    *,
    notify_radius_km: Any = None,
    min_price: Any = None,
    urgent_only: Any = False,
    max_push_per_hour: Any = None,
) -> CarrierNotificationSettings:
    """Clamp user-provided preferences: radius 1-30 km, hourly cap 1-20, min price >= 0."""
    radius = (
        max(1, min(30, int(round(float(notify_radius_km)))))
        if _finite(notify_radius_km)
        else DEFAULT_RADIUS_KM
    )
    price = max(Decimal("0"), Decimal(str(min_price))) if _finite(min_price) else None
    cap = (
        max(1, min(20, int(round(float(max_push_per_hour)))))
        if _finite(max_push_per_hour)
        else DEFAULT_MAX_PUSH_PER_HOUR
    )
    return CarrierNotificationSettings(
        notify_radius_km=radius,
        min_price=price,
        urgent_only=bool(urgent_only),
        max_push_per_hour=cap,
    )


def settings_for_user(user: "User") -> CarrierNotificationSettings:
    return normalize_notification_settings(
        notify_radius_km=user.notify_radius_km,
        min_price=user.notify_min_price,
        urgent_only=user.notify_urgent_only,
        max_push_per_hour=user.max_push_per_hour,
    )


def can_send_push_in_current_hour(*, sent_in_last_hour: int, max_push_per_hour: int) -> bool:
    return sent_in_last_hour < max(1, max_push_per_hour)


# ── Ledger reads ──────────────────────────────────────────────────────────────

def already_notified(db: Session, parcel_id: int, recipient_id: str) -> bool:
    row = (
        db.query(NotificationLog.id)
        .filter(NotificationLog.parcel_id == parcel_id, NotificationLog.recipient_id == recipient_id)
        .first()
    )
    return row is not None


def pushes_sent_last_hour(db: Session, recipient_id: str, now: int) -> int:
    count = (
        db.query(func.count(NotificationLog.id))
        .filter(
            NotificationLog.recipient_id == recipient_id,
            NotificationLog.sent_at >= now - HOUR_MS,
        )
        .scalar()
    )
    return int(count or 0)


# ── Main guard ────────────────────────────────────────────────────────────────

def carrier_skip_reason(
    db: Session,
    carrier: "User",
    parcel: "Parcel",
    *,
    radius_km: float,
    now: int,
) -> str | None:
    """Return None if the carrier should be pushed, else the first failing rule."""
    if carrier.id == parcel.owner_id:
        return "owner"

    active_window_ms = settings.ESCALATION_ACTIVE_WINDOW_HOURS * HOUR_MS
    if not carrier.is_online:
        return "offline"
    if not carrier.last_active_at or carrier.last_active_at < now - active_window_ms:
        return "inactive"
    if carrier.last_lat is None or carrier.last_lng is None:
        return "no_location"

    prefs = settings_for_user(carrier)
    effective_radius = min(radius_km, prefs.notify_radius_km)
    distance = distance_km(
        LatLng(parcel.origin_lat, parcel.origin_lng),
        LatLng(carrier.last_lat, carrier.last_lng),
    )
    if distance > effective_radius:
        return "out_of_radius"

    if already_notified(db, parcel.id, carrier.id):
        return "already_notified"

    sent = pushes_sent_last_hour(db, carrier.id, now)
    if not can_send_push_in_current_hour(sent_in_last_hour=sent, max_push_per_hour=prefs.max_push_per_hour):
        logger.debug("notif_guard: hourly cap reached for carrier=%s", carrier.id)
        return "hourly_cap"

    if prefs.min_price is not None:
        if parcel.proposed_price is None or Decimal(str(parcel.proposed_price)) < prefs.min_price:
            return "below_min_price"

    if prefs.urgent_only and parcel.urgency_level == "normal":
        return "not_urgent"

    return None


# ── Ledger writes ─────────────────────────────────────────────────────────────

def claim_notification_slot(
    db: Session,
    *,
    parcel_id: int,
    recipient_id: str,
    stage: int,
    radius_km: float,
    now: int,
) -> int | None:
    """Insert the (parcel, recipient) ledger row in ``claimed`` state.

    Returns the new row id, or None if another wave already owns the slot.
    """
    inserted = db.execute(
        text("""
            INSERT INTO notification_logs
                (parcel_id, recipient_id, stage, radius_km, sent_at, delivery_status)
            VALUES
                (:parcel_id, :recipient_id, :stage, :radius_km, :sent_at, 'claimed')
            ON CONFLICT (parcel_id, recipient_id) DO NOTHING
            RETURNING id
        """),
        {
            "parcel_id": parcel_id,
            "recipient_id": recipient_id,
            "stage": stage,
            "radius_km": radius_km,
            "sent_at": now,
        },
    ).first()
    return int(inserted.id) if inserted else None


def finalize_notification_slot(
    db: Session,
    log_id: int,
    *,
    provider_response: str | None = None,
    error: str | None = None,
) -> None:
    db.execute(
        text("""
            UPDATE notification_logs
            SET delivery_status   = :delivery_status,
                provider_response = :provider_response,
                error             = :error
            WHERE id = :id
        """),
        {
            "id": log_id,
            "delivery_status": "failed" if error is not None else "sent",
            "provider_response": provider_response,
            "error": error[:MAX_ERROR_LENGTH] if error is not None else None,
        },
    )
