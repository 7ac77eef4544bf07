"""
Delivery provider schemas.
"""
from datetime import datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from shipping.models.provider import ProviderType
from shipping.schemas.validators import Money, MoneyOptional, NonEmptyStr, PositiveDecimal, Province


class ProviderBase(BaseModel):
    """Base provider schema."""
    code: NonEmptyStr = Field(..., max_length=50)
    name: NonEmptyStr = Field(..., max_length=255)
    provider_type: ProviderType

    api_base_url: Optional[str] = Field(None, max_length=500)
    api_version: Optional[str] = Field(None, max_length=20)
    auth_method: Optional[str] = Field(None, max_length=50)

    coverage_provinces: list[str] = Field(default_factory=list, description="Empty means no restriction")
    max_weight_kg: PositiveDecimal = Decimal("30")
    max_dimensions: Optional[dict[str, float]] = None

    base_rate: Money = Decimal("0")
    per_km_rate: Money = Decimal("0")
    weight_surcharge_rate: Money = Decimal("0")
    same_day_surcharge: Money = Decimal("0")
    cod_surcharge: Money = Decimal("0")

    standard_delivery_hours: int = Field(24, gt=0)
    express_delivery_hours: Optional[int] = Field(None, gt=0)
    same_day_available: bool = False
    cod_available: bool = False
    tracking_available: bool = False
    insurance_available: bool = False

    daily_cutoff_time: Optional[time] = None
    weekend_service: bool = True
    holiday_service: bool = False

    contact_phone: Optional[str] = Field(None, max_length=50)
    contact_line_id: Optional[str] = Field(None, max_length=100)
    contact_email: Optional[str] = Field(None, max_length=255)
    contact_app_name: Optional[str] = Field(None, max_length=100)
    coordination_notes: Optional[str] = None

    is_active: bool = True
    priority_order: int = Field(100, ge=0)
    auto_assign: bool = False
    requires_approval: bool = False


class ProviderCreate(ProviderBase):
    """Schema for registering a provider."""
    pass


class ProviderUpdate(BaseModel):
    """Schema for updating a provider; code is immutable."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    api_base_url: Optional[str] = Field(None, max_length=500)
    api_version: Optional[str] = None
    coverage_provinces: Optional[list[str]] = None
    max_weight_kg: Optional[Decimal] = Field(None, gt=0)
    base_rate: MoneyOptional = None
    per_km_rate: MoneyOptional = None
    weight_surcharge_rate: MoneyOptional = None
    same_day_surcharge: MoneyOptional = None
    cod_surcharge: MoneyOptional = None
    standard_delivery_hours: Optional[int] = Field(None, gt=0)
    express_delivery_hours: Optional[int] = Field(None, gt=0)
    same_day_available: Optional[bool] = None
    cod_available: Optional[bool] = None
    daily_cutoff_time: Optional[time] = None
    contact_phone: Optional[str] = None
    contact_line_id: Optional[str] = None
    contact_email: Optional[str] = None
    contact_app_name: Optional[str] = None
    coordination_notes: Optional[str] = None
    auto_assign: Optional[bool] = None
    requires_approval: Optional[bool] = None


class ProviderPerformanceUpdate(BaseModel):
    average_delivery_hours: Optional[Decimal] = Field(None, ge=0)
    success_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    customer_rating: Optional[Decimal] = Field(None, ge=1, le=5)


class ProviderPriorityUpdate(BaseModel):
    priority_order: int = Field(..., ge=0)


class ProviderResponse(ProviderBase):
    """Schema for provider response."""
    id: UUID
    average_delivery_hours: Optional[Decimal] = None
    success_rate: Optional[Decimal] = None
    customer_rating: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class QuoteRequest(BaseModel):
    """Fee quote request for a shipment."""
    province: Province = None
    weight_kg: PositiveDecimal
    distance_km: Decimal = Field(Decimal("0"), ge=0)
    same_day_required: bool = False
    cod_required: bool = False


class QuoteItem(BaseModel):
    id: Optional[UUID] = None
    code: str
    name: str
    provider_type: ProviderType
    fee: Decimal
    within_cutoff: bool
    estimated_hours: int


class QuoteResponse(BaseModel):
    items: list[QuoteItem]
    cheapest: Optional[QuoteItem] = None
