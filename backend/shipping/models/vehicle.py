"""
Vehicle model for the self-delivery fleet.
"""
import enum
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Date, Enum, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.core.exceptions import InvalidFieldException
from shipping.models.base import TimestampMixin, UUIDMixin
from shipping.models.provider import to_decimal


class VehicleType(str, enum.Enum):
    MOTORCYCLE = "motorcycle"
    CAR = "car"
    VAN = "van"
    TRUCK = "truck"


class VehicleStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    ON_ROUTE = "on_route"


class DeliveryVehicle(Base, UUIDMixin, TimestampMixin):
    """
    Delivery vehicle with capacity constraints.
    """

    __tablename__ = "delivery_vehicles"

    # Identification
    license_plate: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    vehicle_type: Mapped[VehicleType] = mapped_column(Enum(VehicleType), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Capacity constraints
    max_weight_kg: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_volume_m3: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    fuel_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Driver
    driver_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Status
    status: Mapped[VehicleStatus] = mapped_column(
        Enum(VehicleStatus),
        default=VehicleStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    last_maintenance_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    next_maintenance_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def validate(self) -> None:
        if not (self.license_plate or "").strip():
            raise InvalidFieldException("license_plate", "is required")
        if to_decimal(self.max_weight_kg) <= 0:
            raise InvalidFieldException("max_weight_kg", "must be positive", self.max_weight_kg)
        if self.max_volume_m3 is not None and to_decimal(self.max_volume_m3) <= 0:
            raise InvalidFieldException("max_volume_m3", "must be positive", self.max_volume_m3)

    def is_available(self) -> bool:
        return bool(self.is_active) and self.status in (VehicleStatus.ACTIVE, VehicleStatus.INACTIVE)

    def needs_maintenance(self, today: Optional[date] = None) -> bool:
        if self.next_maintenance_date is None:
            return False
        return self.next_maintenance_date <= (today or date.today())

    def __repr__(self) -> str:
        return f"<DeliveryVehicle {self.license_plate}>"
