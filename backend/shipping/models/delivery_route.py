"""
Delivery route model.
"""
import enum
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Date, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.core.exceptions import (
    InvalidFieldException,
    OperationNotAllowedException,
)
from shipping.models.base import TimestampMixin, UUIDMixin, utcnow
from shipping.models.provider import Number, to_decimal


class RouteStatus(str, enum.Enum):
    """Delivery route status."""
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DeliveryRoute(Base, UUIDMixin, TimestampMixin):
    """
    Planned grouping of self-delivery orders for one vehicle on one date.

    Tracks planned vs. actual execution. The optimization payload comes
    from an external optimizer and is stored as-is.
    """

    __tablename__ = "delivery_routes"

    route_name: Mapped[str] = mapped_column(String(100), nullable=False)
    route_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Assignment
    assigned_vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    assigned_driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Planning
    planned_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    planned_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    total_planned_distance_km: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    total_planned_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Status
    status: Mapped[RouteStatus] = mapped_column(
        Enum(RouteStatus),
        default=RouteStatus.PLANNED,
        nullable=False,
        index=True,
    )

    # Actuals
    actual_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_distance_km: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    actual_orders_delivered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    route_optimization_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status in (RouteStatus.PLANNED, RouteStatus.IN_PROGRESS)

    def assign_vehicle(self, vehicle_id: uuid.UUID, driver_id: Optional[uuid.UUID] = None) -> None:
        if self.status != RouteStatus.PLANNED:
            raise OperationNotAllowedException("DeliveryRoute", self.id, "assign vehicle to", self.status)
        self.assigned_vehicle_id = vehicle_id
        self.assigned_driver_id = driver_id

    def set_planning(
        self,
        start_time: datetime,
        end_time: datetime,
        distance_km: Number,
        order_count: int,
    ) -> None:
        if self.status != RouteStatus.PLANNED:
            raise OperationNotAllowedException("DeliveryRoute", self.id, "re-plan", self.status)
        if end_time <= start_time:
            raise InvalidFieldException("planned_end_time", "end time must be after start time")
        distance = to_decimal(distance_km)
        if distance <= 0:
            raise InvalidFieldException("total_planned_distance_km", "must be positive", distance)
        if order_count <= 0:
            raise InvalidFieldException("total_planned_orders", "must be positive", order_count)

        self.planned_start_time = start_time
        self.planned_end_time = end_time
        self.total_planned_distance_km = distance
        self.total_planned_orders = order_count

    def start(self, now: Optional[datetime] = None) -> None:
        if self.status != RouteStatus.PLANNED:
            raise OperationNotAllowedException("DeliveryRoute", self.id, "start", self.status)
        if self.assigned_vehicle_id is None:
            raise OperationNotAllowedException("DeliveryRoute", self.id, "start unassigned", self.status)
        self.status = RouteStatus.IN_PROGRESS
        self.actual_start_time = now or utcnow()

    def complete(
        self,
        actual_distance_km: Number,
        actual_orders_delivered: int,
        now: Optional[datetime] = None,
    ) -> None:
        if self.status != RouteStatus.IN_PROGRESS:
            raise OperationNotAllowedException("DeliveryRoute", self.id, "complete", self.status)
        distance = to_decimal(actual_distance_km)
        if distance < 0:
            raise InvalidFieldException("actual_distance_km", "must be non-negative", distance)
        if actual_orders_delivered < 0:
            raise InvalidFieldException("actual_orders_delivered", "must be non-negative", actual_orders_delivered)
        self.status = RouteStatus.COMPLETED
        self.actual_end_time = now or utcnow()
        self.actual_distance_km = distance
        self.actual_orders_delivered = actual_orders_delivered

    def cancel(self) -> None:
        if self.status == RouteStatus.COMPLETED:
            raise OperationNotAllowedException("DeliveryRoute", self.id, "cancel", self.status)
        self.status = RouteStatus.CANCELLED

    def get_efficiency(self) -> float:
        """Delivered vs. planned orders in percent; 0.0 until completed."""
        if self.status != RouteStatus.COMPLETED or not self.total_planned_orders:
            return 0.0
        return self.actual_orders_delivered / self.total_planned_orders * 100.0

    def get_duration(self, now: Optional[datetime] = None) -> timedelta:
        if self.actual_start_time is None:
            return timedelta(0)
        end = self.actual_end_time or now or utcnow()
        return end - self.actual_start_time

    def __repr__(self) -> str:
        return f"<DeliveryRoute {self.route_name} for {self.route_date}>"
