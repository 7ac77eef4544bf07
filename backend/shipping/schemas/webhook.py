"""
Carrier webhook schemas.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CarrierWebhookPayload(BaseModel):
    """Status callback pushed by a carrier."""
    event_id: str = Field(..., min_length=1, max_length=100)
    status: str = Field(..., min_length=1, max_length=50, description="Carrier status code")
    tracking_number: Optional[str] = Field(None, max_length=100)
    provider_order_id: Optional[str] = Field(None, max_length=100)
    reason: Optional[str] = Field(None, max_length=500)
    occurred_at: Optional[datetime] = None
    data: dict[str, Any] = Field(default_factory=dict)


class CarrierWebhookResult(BaseModel):
    """Processing result returned to the carrier."""
    event_id: str
    outcome: str
    duplicate: bool = False
    delivery_id: Optional[UUID] = None
