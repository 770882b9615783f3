"""Staged notification campaign for newly published parcels.

Flow per parcel:
  1. on_parcel_created: stage 1 runs synchronously (5 km), then three rows are
     written to ``escalations``: stage 2 (+5 min, 7 km), stage 3 (+10 min,
     12 km) and stage 4 (+15 min, low-interest tip to the parcel owner).
  2. run_due_escalations (worker): picks pending rows whose due_at has passed.
  3. run_escalation: conditional UPDATE pending -> running is the claim. A lost
     claim means another worker (or a cancel) got there first and the wave is
     skipped. A closed parcel turns the row into ``cancelled``.
  4. on_parcel_closed: every still-pending row becomes ``cancelled``.

Rows stuck in ``running`` longer than the lease (worker crash) are put back to
``pending``. Re-running a wave is safe because each (parcel, carrier) slot in
the ledger can only be claimed once.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.escalation import Escalation
from app.models.parcel import OPEN_STATUS, Parcel
from app.models.user import User
from app.services.notification_guard import (
    carrier_skip_reason,
    claim_notification_slot,
    finalize_notification_slot,
)
from app.services.notifications import create_notification
from app.services.push import PushDeliveryError, PushMessage, PushTransport, get_push_transport
from app.utils.clock import MINUTE_MS, now_ms

logger = logging.getLogger(__name__)

TIP_STAGE = 4


def is_parcel_open(status: str | None) -> bool:
    return status == OPEN_STATUS


def stage_radius_km(stage: int) -> float:
    return {
        1: settings.ESCALATION_STAGE1_RADIUS_KM,
        2: settings.ESCALATION_STAGE2_RADIUS_KM,
        3: settings.ESCALATION_STAGE3_RADIUS_KM,
    }[stage]


def stage_delays_ms() -> dict[int, int]:
    return {
        2: settings.ESCALATION_STAGE2_DELAY_MINUTES * MINUTE_MS,
        3: settings.ESCALATION_STAGE3_DELAY_MINUTES * MINUTE_MS,
        TIP_STAGE: settings.ESCALATION_TIP_DELAY_MINUTES * MINUTE_MS,
    }


# ── Waves ─────────────────────────────────────────────────────────────────────

def _carrier_message(parcel: Parcel, carrier_id: str, now: int) -> PushMessage:
    if parcel.proposed_price is not None:
        price_label = f"{parcel.proposed_price} {settings.PRICING_CURRENCY}"
    else:
        price_label = "flexible price"
    return PushMessage(
        recipient_id=carrier_id,
        actor_id=parcel.owner_id,
        notif_type="parcel_new",
        title="New parcel nearby",
        message=f"{parcel.origin_label} -> {parcel.destination_label} · {price_label} · {parcel.urgency_level}",
        parcel_id=parcel.id,
        created_at=now,
    )


def _deliver(db: Session, transport: PushTransport, message: PushMessage) -> tuple[str | None, str | None]:
    """Try the transport up to ESCALATION_SEND_ATTEMPTS times. Returns (response, error)."""
    last_error: str | None = None
    attempts = max(1, settings.ESCALATION_SEND_ATTEMPTS)
    for attempt in range(1, attempts + 1):
        try:
            return transport.send(db, message), None
        except PushDeliveryError as exc:
            last_error = str(exc) or "notification_send_failed"
            logger.warning(
                "escalation: push attempt %s/%s failed for carrier=%s parcel=%s: %s",
                attempt, attempts, message.recipient_id, message.parcel_id, last_error,
            )
    return None, last_error


def send_wave(
    db: Session,
    parcel: Parcel,
    *,
    stage: int,
    radius_km: float,
    now: int,
    transport: PushTransport | None = None,
) -> dict[str, int]:
    """Push every eligible carrier once. A failed carrier never stops the wave."""
    transport = transport or get_push_transport()
    parcel_id = parcel.id
    carriers = db.query(User).filter(User.is_online.is_(True)).order_by(User.id.asc()).all()

    sent_count = 0
    push_failures = 0
    for carrier in carriers:
        reason = carrier_skip_reason(db, carrier, parcel, radius_km=radius_km, now=now)
        if reason is not None:
            continue

        carrier_id = carrier.id
        log_id = claim_notification_slot(
            db,
            parcel_id=parcel_id,
            recipient_id=carrier_id,
            stage=stage,
            radius_km=radius_km,
            now=now,
        )
        if log_id is None:
            logger.debug("escalation: slot already claimed parcel=%s carrier=%s", parcel_id, carrier_id)
            continue

        provider_response, error = _deliver(db, transport, _carrier_message(parcel, carrier_id, now))
        if error is None:
            finalize_notification_slot(db, log_id, provider_response=provider_response)
            sent_count += 1
        else:
            finalize_notification_slot(db, log_id, error=error)
            push_failures += 1
        # Each slot is durable on its own so a crash mid-wave cannot resend
        db.commit()

    return {"sent_count": sent_count, "push_failures": push_failures}


# ── Entry points ──────────────────────────────────────────────────────────────

def _schedule_escalations(db: Session, parcel_id: int, now: int) -> int:
    scheduled = 0
    for stage, delay_ms in stage_delays_ms().items():
        inserted = db.execute(
            text("""
                INSERT INTO escalations
                    (parcel_id, stage, due_at, status, attempts, created_at, updated_at)
                VALUES
                    (:parcel_id, :stage, :due_at, 'pending', 0, :now, :now)
                ON CONFLICT (parcel_id, stage) DO NOTHING
                RETURNING id
            """),
            {"parcel_id": parcel_id, "stage": stage, "due_at": now + delay_ms, "now": now},
        ).first()
        if inserted:
            scheduled += 1
    return scheduled


def on_parcel_created(
    db: Session,
    parcel_id: int,
    *,
    now: int | None = None,
    transport: PushTransport | None = None,
) -> dict[str, int]:
    now = now if now is not None else now_ms()
    parcel = db.query(Parcel).filter(Parcel.id == parcel_id).first()
    if not parcel or not is_parcel_open(parcel.status):
        return {"stage1_sent_count": 0, "push_failures_count": 0, "scheduled": 0}

    stage1 = send_wave(
        db,
        parcel,
        stage=1,
        radius_km=stage_radius_km(1),
        now=now,
        transport=transport,
    )
    scheduled = _schedule_escalations(db, parcel_id, now)
    db.commit()

    logger.info(json.dumps({
        "event": "parcel_created",
        "parcel_id": parcel_id,
        "notifications_stage1_sent_count": stage1["sent_count"],
        "push_failures_count": stage1["push_failures"],
        "escalations_scheduled": scheduled,
    }))
    return {
        "stage1_sent_count": stage1["sent_count"],
        "push_failures_count": stage1["push_failures"],
        "scheduled": scheduled,
    }


def _finish(db: Session, escalation: Escalation, status: str, now: int, sent_count: int | None = None) -> None:
    escalation.status = status
    escalation.sent_count = sent_count
    escalation.updated_at = now
    db.commit()


def run_escalation(
    db: Session,
    escalation_id: int,
    *,
    now: int | None = None,
    transport: PushTransport | None = None,
) -> dict[str, Any]:
    now = now if now is not None else now_ms()

    claimed = (
        db.query(Escalation)
        .filter(Escalation.id == escalation_id, Escalation.status == "pending")
        .update(
            {
                "status": "running",
                "claimed_at": now,
                "attempts": Escalation.attempts + 1,
                "updated_at": now,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if not claimed:
        return {"skipped": True, "escalation_id": escalation_id}

    escalation = db.query(Escalation).filter(Escalation.id == escalation_id).one()
    parcel = db.query(Parcel).filter(Parcel.id == escalation.parcel_id).first()
    if not parcel or not is_parcel_open(parcel.status):
        _finish(db, escalation, "cancelled", now)
        logger.info("escalation: parcel=%s closed, stage %s cancelled", escalation.parcel_id, escalation.stage)
        return {"skipped": True, "escalation_id": escalation_id}

    stage = escalation.stage
    if stage == TIP_STAGE:
        create_notification(
            db,
            recipient_id=parcel.owner_id,
            notif_type="parcel_visibility_tip",
            title="Few carriers for this parcel",
            message=(
                "Your parcel is getting little interest from carriers. "
                "Tip: raise the price or widen the pickup window."
            ),
            parcel_id=parcel.id,
            created_at=now,
        )
        _finish(db, escalation, "done", now, sent_count=1)
        return {"done": True, "stage": stage, "sent_count": 1}

    result = send_wave(
        db,
        parcel,
        stage=stage,
        radius_km=stage_radius_km(stage),
        now=now,
        transport=transport,
    )
    _finish(db, escalation, "done", now, sent_count=result["sent_count"])

    logger.info(json.dumps({
        "event": "parcel_escalation",
        "parcel_id": escalation.parcel_id,
        "stage": stage,
        "stage2_sent_count": result["sent_count"] if stage == 2 else 0,
        "stage3_sent_count": result["sent_count"] if stage == 3 else 0,
        "push_failures_count": result["push_failures"],
    }))
    return {"done": True, "stage": stage, "sent_count": result["sent_count"]}


def run_due_escalations(
    db: Session,
    *,
    now: int | None = None,
    transport: PushTransport | None = None,
    limit: int = 100,
) -> dict[str, Any]:
    """One worker cycle: requeue expired claims, then run every due wave."""
    now = now if now is not None else now_ms()
    lease_cutoff = now - settings.ESCALATION_LEASE_MINUTES * MINUTE_MS

    reclaimed = (
        db.query(Escalation)
        .filter(Escalation.status == "running", Escalation.claimed_at < lease_cutoff)
        .update({"status": "pending", "updated_at": now}, synchronize_session=False)
    )
    db.commit()
    if reclaimed:
        logger.warning("escalation: requeued %s escalations with expired claims", reclaimed)

    due_ids = [
        row.id
        for row in db.query(Escalation.id)
        .filter(Escalation.status == "pending", Escalation.due_at <= now)
        .order_by(Escalation.due_at.asc(), Escalation.id.asc())
        .limit(limit)
        .all()
    ]

    results = []
    for escalation_id in due_ids:
        try:
            results.append(run_escalation(db, escalation_id, now=now, transport=transport))
        except Exception:
            # Row stays "running" and is requeued once its lease expires
            logger.exception("escalation: run failed for escalation=%s", escalation_id)
            db.rollback()

    return {"reclaimed": reclaimed, "processed": len(results), "results": results}


def on_parcel_closed(db: Session, parcel_id: int, *, now: int | None = None) -> dict[str, int]:
    now = now if now is not None else now_ms()
    cancelled = (
        db.query(Escalation)
        .filter(Escalation.parcel_id == parcel_id, Escalation.status == "pending")
        .update({"status": "cancelled", "updated_at": now}, synchronize_session=False)
    )
    db.commit()
    if cancelled:
        logger.info("escalation: cancelled %s pending escalations for parcel=%s", cancelled, parcel_id)
    return {"cancelled": cancelled}


def cancel_escalations_if_closed(db: Session, parcel_id: int, *, now: int | None = None) -> dict[str, int]:
    parcel = db.query(Parcel).filter(Parcel.id == parcel_id).first()
    if not parcel or is_parcel_open(parcel.status):
        return {"cancelled": 0}
    return on_parcel_closed(db, parcel_id, now=now)
