"""
Delivery route schemas.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from shipping.models.delivery_route import RouteStatus
from shipping.schemas.validators import NonEmptyStr, NonNegativeDecimal, PositiveDecimal


class RouteCreate(BaseModel):
    route_name: NonEmptyStr = Field(..., max_length=100)
    route_date: date
    notes: Optional[str] = None
    route_optimization_data: Optional[dict[str, Any]] = None


class RouteAssignVehicle(BaseModel):
    vehicle_id: UUID
    driver_id: Optional[UUID] = None


class RoutePlanning(BaseModel):
    planned_start_time: datetime
    planned_end_time: datetime
    total_planned_distance_km: PositiveDecimal
    total_planned_orders: int = Field(..., gt=0)
    route_optimization_data: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def validate_window(self):
        """Validate that the route ends after it starts."""
        if self.planned_end_time <= self.planned_start_time:
            raise ValueError("planned_end_time must be after planned_start_time")
        return self


class RouteOrders(BaseModel):
    delivery_ids: list[UUID] = Field(..., min_length=1)
    user_id: Optional[UUID] = None


class RouteComplete(BaseModel):
    actual_distance_km: NonNegativeDecimal
    actual_orders_delivered: int = Field(..., ge=0)


class RouteCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RouteResponse(BaseModel):
    """Schema for route response."""
    id: UUID
    route_name: str
    route_date: date
    assigned_vehicle_id: Optional[UUID] = None
    assigned_driver_id: Optional[UUID] = None
    planned_start_time: Optional[datetime] = None
    planned_end_time: Optional[datetime] = None
    total_planned_distance_km: Decimal
    total_planned_orders: int
    status: RouteStatus
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    actual_distance_km: Optional[Decimal] = None
    actual_orders_delivered: int
    route_optimization_data: Optional[dict[str, Any]] = None
    notes: Optional[str] = None
    efficiency: float = 0.0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RouteDetailResponse(RouteResponse):
    delivery_ids: list[UUID] = Field(default_factory=list)
