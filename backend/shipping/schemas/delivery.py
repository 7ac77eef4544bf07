"""
Delivery order schemas.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from shipping.models.delivery_order import DeliveryMethod, DeliveryStatus
from shipping.schemas.validators import Money, MoneyOptional, NonEmptyStr, NonNegativeDecimal


class DeliveryCreate(BaseModel):
    """Schema for requesting fulfillment of an order."""
    order_id: UUID
    customer_id: UUID
    customer_address_id: UUID
    package_weight_kg: NonNegativeDecimal = Field(..., description="Package weight in kg")
    cod_amount: Money = Decimal("0")
    same_day_required: bool = False
    order_value: MoneyOptional = Field(None, description="Used for the free-delivery threshold")
    planned_delivery_date: Optional[date] = None
    notes: Optional[str] = None
    delivery_instructions: Optional[str] = None


class VersionedAction(BaseModel):
    """Optional compare-and-swap on the order version."""
    expected_version: Optional[int] = Field(None, ge=1)
    user_id: Optional[UUID] = None


class AssignVehicleRequest(VersionedAction):
    vehicle_id: UUID
    route_id: Optional[UUID] = None


class AssignProviderRequest(VersionedAction):
    provider_code: NonEmptyStr


class StatusUpdateRequest(VersionedAction):
    status: DeliveryStatus
    reason: Optional[str] = Field(None, max_length=500)


class TrackingUpdateRequest(VersionedAction):
    tracking_number: Optional[str] = Field(None, max_length=100)
    provider_order_id: Optional[str] = Field(None, max_length=100)


class CancelRequest(VersionedAction):
    reason: Optional[str] = Field(None, max_length=500)


class DeliveryResponse(BaseModel):
    """Schema for delivery order response."""
    id: UUID
    order_id: UUID
    customer_id: UUID
    customer_address_id: UUID
    delivery_method: DeliveryMethod
    provider_id: Optional[UUID] = None
    provider_code: Optional[str] = None
    vehicle_id: Optional[UUID] = None
    route_id: Optional[UUID] = None
    tracking_number: Optional[str] = None
    provider_order_id: Optional[str] = None
    scheduled_pickup_time: Optional[datetime] = None
    planned_delivery_date: Optional[date] = None
    estimated_delivery_time: Optional[datetime] = None
    actual_pickup_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    delivery_fee: Decimal
    cod_amount: Decimal
    package_weight_kg: Decimal
    same_day_required: bool
    destination_province: Optional[str] = None
    status: DeliveryStatus
    status_reason: Optional[str] = None
    notes: Optional[str] = None
    delivery_instructions: Optional[str] = None
    requires_manual_coordination: bool
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DeliveryListResponse(BaseModel):
    """Paginated delivery list."""
    items: list[DeliveryResponse]
    total: int
    page: int
    size: int


class TrackingUpdate(BaseModel):
    timestamp: datetime
    status: str
    snapshot_type: str
    description: str


class TrackingResponse(BaseModel):
    """Delivery state and history for a carrier tracking number."""
    delivery_id: UUID
    tracking_number: str
    provider_code: Optional[str] = None
    status: DeliveryStatus
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    last_updated: datetime
    is_delayed: bool
    updates: list[TrackingUpdate]


class DeliveryMetricsResponse(BaseModel):
    start: datetime
    end: datetime
    total_deliveries: int
    by_status: dict[str, int]
    by_method: dict[str, int]
    total_delivery_fees: Decimal
    success_rate: float
    on_time_rate: float
    average_delivery_hours: Optional[float] = None

    class Config:
        from_attributes = True
