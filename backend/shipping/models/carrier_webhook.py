"""
Carrier webhook event log.
"""
import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.models.base import UUIDMixin, utcnow


class WebhookOutcome(str, enum.Enum):
    APPLIED = "applied"
    NO_CHANGE = "no_change"
    STALE = "stale"
    UNKNOWN_DELIVERY = "unknown_delivery"
    REJECTED = "rejected"


class CarrierWebhookEvent(Base, UUIDMixin):
    """
    One processed carrier callback; the unique key makes redelivery a no-op.
    """

    __tablename__ = "carrier_webhook_events"
    __table_args__ = (
        UniqueConstraint("provider_code", "event_id", name="uq_carrier_webhook_events_event"),
    )

    provider_code: Mapped[str] = mapped_column(String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    delivery_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    reported_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    outcome: Mapped[WebhookOutcome] = mapped_column(Enum(WebhookOutcome), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<CarrierWebhookEvent {self.provider_code}:{self.event_id} {self.outcome.value}>"
