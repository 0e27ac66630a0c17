"""Inbound webhooks from the accounting/inventory service.

Handles item.created and item.updated: the item's stock on hand overwrites
the local variant with the same SKU. Requests must carry an HMAC-SHA256 of
the raw body in X-Webhook-Signature.
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from src.storesync.api.deps import get_services
from src.storesync.core.security import verify_webhook_signature
from src.storesync.errors import AdapterError
from src.storesync.services import SyncServices

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

ITEM_EVENTS = frozenset({"item.created", "item.updated"})


class WebhookResponse(BaseModel):
    status: str
    event_type: str | None = None
    variant_id: str | None = None


@router.post("/inventory", response_model=WebhookResponse)
async def inventory_webhook(
    request: Request,
    x_webhook_signature: str | None = Header(default=None),
    services: SyncServices = Depends(get_services),
) -> WebhookResponse:
    body = await request.body()
    if not verify_webhook_signature(body, x_webhook_signature, services.settings.WEBHOOK_SECRET):
        logger.warning("webhook.invalid_signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook body must be a JSON object")

    event_type = payload.get("event_type") or payload.get("eventType")
    if not isinstance(event_type, str):
        event_type = None
    if event_type not in ITEM_EVENTS:
        logger.info("webhook.ignored", event_type=event_type)
        return WebhookResponse(status="ignored", event_type=event_type)

    item = payload.get("data") or {}
    if isinstance(item, dict) and "item" in item:
        item = item["item"]
    if not isinstance(item, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Webhook item must be a JSON object")

    try:
        variant = await services.inventory.apply_remote_item(item)
    except AdapterError as exc:
        logger.warning("webhook.invalid_item", error=exc.message)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    if variant is None:
        return WebhookResponse(status="unmatched", event_type=event_type)
    return WebhookResponse(status="applied", event_type=event_type, variant_id=variant.id)
