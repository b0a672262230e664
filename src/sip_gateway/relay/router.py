"""
Webhook endpoints.

The inbound endpoint must answer the backend fast: it verifies the
signature (when a secret is configured), parses, dispatches and acks.
Billing runs in the background and never affects the response.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Request
from pydantic import ValidationError as PydanticValidationError

from sip_gateway.auth.middleware import AdminIdentityDep
from sip_gateway.dependencies import RelayDep, SettingsDep, StoreDep
from sip_gateway.relay.events import InboundEvent
from sip_gateway.relay.schemas import (
    WebhookAck,
    WebhookEventIn,
    WebhookRegistration,
    WebhookRegistrationRequest,
)
from sip_gateway.relay.signature import SIGNATURE_HEADER, verify_signature
from sip_gateway.shared.exceptions import AppException, InternalError, InvalidSignatureError, ValidationError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

WEBHOOK_NAMESPACE = "webhooks"

router = APIRouter(tags=["webhooks"])


def _parse_event(raw: bytes) -> WebhookEventIn:
    try:
        return WebhookEventIn.model_validate_json(raw or b"")
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in e.errors()
        ]
        raise ValidationError("Malformed webhook body", {"errors": errors}) from None


@router.post("/webhooks/events", response_model=WebhookAck)
@router.post("/api/webhooks/aeims-events", response_model=WebhookAck, include_in_schema=False)
async def receive_event(request: Request, relay: RelayDep, settings: SettingsDep) -> WebhookAck:
    raw = await request.body()

    if settings.webhook_verification_enabled:
        if not verify_signature(settings.webhook_secret, raw, request.headers.get(SIGNATURE_HEADER)):
            logger.warning(
                "Webhook signature rejected",
                extra={"client_ip": request.client.host if request.client else "unknown"},
            )
            raise InvalidSignatureError("Invalid webhook signature")

    payload = _parse_event(raw)
    logger.info("Webhook event received", extra={"event_type": payload.type})

    try:
        await relay.dispatch(InboundEvent(type=payload.type, payload=payload.data))
    except AppException:
        raise
    except Exception as e:
        logger.exception("Webhook processing failed", extra={"event_type": payload.type})
        raise InternalError("Webhook processing failed") from e

    return WebhookAck()


@router.post("/api/webhooks/register")
async def register_webhook(
    body: WebhookRegistrationRequest,
    identity: AdminIdentityDep,
    settings: SettingsDep,
    store: StoreDep,
) -> dict[str, Any]:
    registration = WebhookRegistration(
        id=uuid4().hex,
        url=str(body.url) if body.url else settings.webhook_public_url,
        events=body.events,
        signed=settings.webhook_verification_enabled,
        registered_by=identity.subject_id,
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    await store.put(WEBHOOK_NAMESPACE, registration.id, registration.model_dump(by_alias=True))
    logger.info(
        "Webhook registered",
        extra={"webhook_id": registration.id, "url": registration.url, "events": registration.events},
    )
    return {
        "success": True,
        "webhook": registration.model_dump(by_alias=True),
        "message": "Webhook registered successfully",
    }


@router.get("/api/webhooks/list")
async def list_webhooks(identity: AdminIdentityDep, store: StoreDep) -> list[dict[str, Any]]:
    entries = await store.list_by_key(WEBHOOK_NAMESPACE)
    return sorted(entries.values(), key=lambda w: w.get("createdAt", ""))


@router.post("/api/webhooks/test")
async def test_webhook(identity: AdminIdentityDep, relay: RelayDep) -> dict[str, Any]:
    test_event = {
        "type": "test.event",
        "data": {
            "message": "This is a test webhook event",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "testBy": identity.email or identity.subject_id,
        },
    }
    delivered = relay.broadcast("webhook-test", "test.event", test_event["data"])
    return {"success": True, "event": test_event, "delivered": delivered, "message": "Test webhook sent"}
