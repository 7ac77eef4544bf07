"""
Delivery snapshot model (append-only audit trail).
"""
import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.models.base import UUIDMixin, utcnow


class SnapshotType(str, enum.Enum):
    CREATED = "created"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"
    STATUS_UPDATED = "status_updated"
    PROVIDER_UPDATED = "provider_updated"


class DeliverySnapshot(Base, UUIDMixin):
    """
    Immutable capture of a delivery order at one transition.

    `snapshot_data` holds every order attribute; `details` holds the
    typed transition payload. Quick-access columns are denormalized
    for reporting queries.
    """

    __tablename__ = "delivery_snapshots"
    __table_args__ = (
        UniqueConstraint("delivery_id", "sequence", name="uq_delivery_snapshots_sequence"),
    )

    delivery_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("delivery_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot_type: Mapped[SnapshotType] = mapped_column(Enum(SnapshotType), nullable=False, index=True)

    snapshot_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    details: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Chain
    previous_snapshot_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Trigger
    triggered_by: Mapped[str] = mapped_column(String(50), nullable=False)
    triggered_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    triggered_event: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Quick access
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    customer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    order_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    provider_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    business_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<DeliverySnapshot {self.delivery_id}#{self.sequence} {self.snapshot_type.value}>"
