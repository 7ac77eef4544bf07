"""
Inbound carrier webhook routes.

Carriers sign the raw body: X-Webhook-Signature = sha256=HMAC(secret,
"{X-Webhook-Timestamp}.{body}").
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from shipping.api.deps import get_webhook_service
from shipping.schemas.webhook import CarrierWebhookResult
from shipping.services.carrier_webhooks import CarrierWebhookService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/carriers/{provider_code}", response_model=CarrierWebhookResult)
async def receive_carrier_webhook(
    provider_code: str,
    request: Request,
    x_webhook_timestamp: Optional[str] = Header(None),
    x_webhook_signature: Optional[str] = Header(None),
    service: CarrierWebhookService = Depends(get_webhook_service),
) -> CarrierWebhookResult:
    """Apply a carrier status callback; redelivered events return the stored outcome."""
    body = await request.body()
    return await service.handle(provider_code, body, x_webhook_timestamp, x_webhook_signature)
