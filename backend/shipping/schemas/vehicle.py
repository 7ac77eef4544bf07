"""
Vehicle schemas.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from shipping.models.vehicle import VehicleStatus, VehicleType
from shipping.schemas.validators import NonEmptyStr, PositiveDecimal


class VehicleBase(BaseModel):
    """Base vehicle schema."""
    license_plate: NonEmptyStr = Field(..., description="License plate number", max_length=20)
    vehicle_type: VehicleType
    brand: Optional[str] = Field(None, max_length=50)
    model: Optional[str] = Field(None, max_length=50)
    year: Optional[int] = Field(None, ge=1950, le=2100)
    max_weight_kg: PositiveDecimal
    max_volume_m3: Optional[Decimal] = Field(None, gt=0, description="Volume capacity in m3")
    fuel_type: Optional[str] = Field(None, max_length=20)
    driver_id: Optional[UUID] = None
    last_maintenance_date: Optional[date] = None
    next_maintenance_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_maintenance_dates(self):
        """Validate that the next maintenance is not before the last one."""
        if (
            self.last_maintenance_date
            and self.next_maintenance_date
            and self.next_maintenance_date < self.last_maintenance_date
        ):
            raise ValueError("next_maintenance_date must not be before last_maintenance_date")
        return self


class VehicleCreate(VehicleBase):
    """Schema for creating a vehicle."""
    pass


class VehicleStatusUpdate(BaseModel):
    status: VehicleStatus
    notes: Optional[str] = None


class VehicleResponse(VehicleBase):
    """Schema for vehicle response."""
    id: UUID
    status: VehicleStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VehicleListResponse(BaseModel):
    """Paginated vehicle list."""
    items: list[VehicleResponse]
    total: int
    page: int
    size: int


class MaintenanceModeUpdate(BaseModel):
    enable: bool


class DriverAssignment(BaseModel):
    driver_id: UUID
