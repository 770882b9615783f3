"""Push delivery transports.

The escalation waves decide *who* and *when*; a transport only delivers one
message to one recipient and either returns a short provider response or
raises PushDeliveryError (treated as transient by callers).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import requests
from sqlalchemy.orm import Session

from app.core.config import settings as core_settings
from app.services.notifications import create_notification

logger = logging.getLogger(__name__)


class PushDeliveryError(RuntimeError):
    pass


@dataclass
class PushMessage:
    recipient_id: str
    notif_type: str
    title: str
    message: str
    actor_id: str | None = None
    parcel_id: int | None = None
    created_at: int | None = None


class PushTransport(Protocol):
    def send(self, db: Session, message: PushMessage) -> str: ...


class InAppPushTransport:
    """Writes the message to the notifications table (polled by the app)."""

    def send(self, db: Session, message: PushMessage) -> str:
        try:
            # Savepoint so a failed insert can be retried on the same session
            with db.begin_nested():
                create_notification(
                    db,
                    recipient_id=message.recipient_id,
                    actor_id=message.actor_id,
                    notif_type=message.notif_type,
                    title=message.title,
                    message=message.message,
                    parcel_id=message.parcel_id,
                    created_at=message.created_at,
                )
        except Exception as exc:
            raise PushDeliveryError(f"in_app_insert_failed: {exc}") from exc
        return "in_app_local_push"


class WebhookPushTransport:
    """POSTs the message as JSON to an external push gateway."""

    def __init__(self, url: str, token: str = "", timeout_seconds: int = 10):
        self.url = url
        self.token = token
        self.timeout_seconds = max(int(timeout_seconds or 10), 1)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def send(self, db: Session, message: PushMessage) -> str:
        payload: dict[str, Any] = {
            "recipient_id": message.recipient_id,
            "type": message.notif_type,
            "title": message.title,
            "message": message.message,
            "parcel_id": message.parcel_id,
        }
        try:
            response = requests.post(
                self.url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise PushDeliveryError(f"push_gateway_request_failed: {exc}") from exc

        if response.status_code >= 300:
            raise PushDeliveryError(f"push_gateway_status_{response.status_code}")
        return f"webhook_{response.status_code}"


def get_push_transport() -> PushTransport:
    transport = (core_settings.PUSH_TRANSPORT or "in_app").strip().lower()
    if transport == "webhook":
        if not core_settings.PUSH_WEBHOOK_URL:
            logger.warning("push: PUSH_TRANSPORT=webhook but PUSH_WEBHOOK_URL is empty, using in_app")
            return InAppPushTransport()
        return WebhookPushTransport(
            core_settings.PUSH_WEBHOOK_URL,
            token=core_settings.PUSH_WEBHOOK_TOKEN,
            timeout_seconds=core_settings.PUSH_WEBHOOK_TIMEOUT_SECONDS,
        )
    return InAppPushTransport()
