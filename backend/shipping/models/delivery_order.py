"""
Delivery order model and its lifecycle state machine.
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.core.exceptions import (
    InvalidFieldException,
    InvalidStatusTransitionException,
    OperationNotAllowedException,
)
from shipping.models.base import TimestampMixin, UUIDMixin, utcnow
from shipping.models.provider import DeliveryProvider, to_decimal


class DeliveryStatus(str, enum.Enum):
    """Delivery order status."""

    PENDING = "pending"
    PLANNED = "planned"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeliveryMethod(str, enum.Enum):
    """How the shipment is fulfilled."""

    SELF_DELIVERY = "self_delivery"
    ON_DEMAND = "on_demand"
    MANUAL_CARRIER = "manual_carrier"
    SCHEDULED_PICKUP = "scheduled_pickup"


TERMINAL_STATUSES = frozenset(
    {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({
        DeliveryStatus.PLANNED,
        DeliveryStatus.DISPATCHED,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.PLANNED: frozenset({
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.DISPATCHED: frozenset({
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    }),
    DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.DELIVERED}),
    DeliveryStatus.DELIVERED: frozenset(),
    DeliveryStatus.FAILED: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}

# Progress rank, used to tell stale carrier updates from invalid ones
STATUS_RANK = {
    DeliveryStatus.PENDING: 0,
    DeliveryStatus.PLANNED: 1,
    DeliveryStatus.DISPATCHED: 1,
    DeliveryStatus.IN_TRANSIT: 2,
    DeliveryStatus.DELIVERED: 3,
    DeliveryStatus.FAILED: 3,
    DeliveryStatus.CANCELLED: 3,
}

PROVIDER_METHODS = {
    "api_integrated": DeliveryMethod.ON_DEMAND,
    "manual_coordination": DeliveryMethod.MANUAL_CARRIER,
    "auto_pickup": DeliveryMethod.SCHEDULED_PICKUP,
}


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


class DeliveryOrder(Base, UUIDMixin, TimestampMixin):
    """
    Aggregate root for one shipment.

    Status changes go through update_status/cancel/mark_failed so the
    transition table is enforced in one place. `version` is bumped on
    every flush and checked by the ORM (optimistic concurrency).
    """

    __tablename__ = "delivery_orders"
    __table_args__ = (
        CheckConstraint("delivery_fee >= 0", name="ck_delivery_orders_fee_non_negative"),
        CheckConstraint("cod_amount >= 0", name="ck_delivery_orders_cod_non_negative"),
    )

    # Order context
    order_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    customer_address_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Fulfillment
    delivery_method: Mapped[DeliveryMethod] = mapped_column(Enum(DeliveryMethod), nullable=False, index=True)
    provider_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    provider_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    route_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)

    # Provider references
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    provider_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Timing
    scheduled_pickup_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    planned_delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    estimated_delivery_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_pickup_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_delivery_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Money and package
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    cod_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    package_weight_kg: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    same_day_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    destination_province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)

    # Status
    status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus),
        default=DeliveryStatus.PENDING,
        nullable=False,
        index=True,
    )
    status_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Notes
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Flags
    requires_manual_coordination: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def cod_required(self) -> bool:
        return to_decimal(self.cod_amount) > 0

    def validate(self) -> None:
        for field in ("order_id", "customer_id", "customer_address_id", "delivery_method"):
            if getattr(self, field) is None:
                raise InvalidFieldException(field, "is required")
        if to_decimal(self.delivery_fee) < 0:
            raise InvalidFieldException("delivery_fee", "must be non-negative", self.delivery_fee)
        if to_decimal(self.cod_amount) < 0:
            raise InvalidFieldException("cod_amount", "must be non-negative", self.cod_amount)

    # State machine

    def can_transition_to(self, new_status: DeliveryStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[self.status]

    def can_cancel(self) -> bool:
        return self.status in (DeliveryStatus.PENDING, DeliveryStatus.PLANNED)

    def can_update(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    def update_status(self, new_status: DeliveryStatus, now: Optional[datetime] = None) -> bool:
        """
        Move to `new_status`.

        Returns False when already in that status (idempotent no-op,
        timestamps untouched). Raises InvalidStatusTransitionException for
        moves outside the transition table.
        """
        new_status = DeliveryStatus(new_status)
        if new_status == self.status:
            return False
        if not self.can_transition_to(new_status):
            raise InvalidStatusTransitionException("DeliveryOrder", self.id, self.status, new_status)

        now = now or utcnow()
        self.status = new_status
        if new_status in (DeliveryStatus.DISPATCHED, DeliveryStatus.IN_TRANSIT):
            if self.actual_pickup_time is None:
                self.actual_pickup_time = now
        elif new_status == DeliveryStatus.DELIVERED:
            if self.actual_delivery_time is None:
                self.actual_delivery_time = now
        if new_status in TERMINAL_STATUSES:
            self.is_active = False
        return True

    def cancel(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        if not self.can_cancel():
            raise OperationNotAllowedException("DeliveryOrder", self.id, "cancel", self.status)
        self.update_status(DeliveryStatus.CANCELLED, now)
        self.status_reason = reason

    def mark_failed(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        changed = self.update_status(DeliveryStatus.FAILED, now)
        if changed:
            self.status_reason = reason
        return changed

    def assign_vehicle(self, vehicle_id: uuid.UUID, route_id: Optional[uuid.UUID] = None) -> None:
        if self.status not in (DeliveryStatus.PENDING, DeliveryStatus.PLANNED):
            raise OperationNotAllowedException("DeliveryOrder", self.id, "assign vehicle to", self.status)
        self.vehicle_id = vehicle_id
        if route_id is not None:
            self.route_id = route_id

    def assign_provider(self, provider: DeliveryProvider) -> None:
        if self.status not in (DeliveryStatus.PENDING, DeliveryStatus.PLANNED, DeliveryStatus.DISPATCHED):
            raise OperationNotAllowedException("DeliveryOrder", self.id, "assign provider to", self.status)
        # Carrier orders never ride on the own fleet
        if self.delivery_method == DeliveryMethod.SELF_DELIVERY:
            self.vehicle_id = None
            self.route_id = None
        self.provider_id = provider.id
        self.provider_code = provider.code
        self.delivery_method = PROVIDER_METHODS[provider.provider_type.value]
        self.requires_manual_coordination = provider.requires_manual_coordination

    def set_tracking_info(
        self,
        tracking_number: Optional[str],
        provider_order_id: Optional[str] = None,
    ) -> bool:
        """Returns False when nothing changed."""
        if self.is_terminal:
            raise OperationNotAllowedException("DeliveryOrder", self.id, "set tracking on", self.status)
        changed = False
        if tracking_number and tracking_number != self.tracking_number:
            self.tracking_number = tracking_number
            changed = True
        if provider_order_id and provider_order_id != self.provider_order_id:
            self.provider_order_id = provider_order_id
            changed = True
        return changed

    def to_snapshot_dict(self) -> dict[str, Any]:
        """Full attribute capture, JSON-safe."""
        return {
            column.key: _iso(getattr(self, column.key))
            for column in self.__table__.columns
        }

    def __repr__(self) -> str:
        status = self.status.value if self.status else None
        return f"<DeliveryOrder {self.id} {status}>"
