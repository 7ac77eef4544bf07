"""
Coverage area schemas.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from shipping.schemas.validators import Money, MoneyOptional, NonEmptyStr


class CoverageAreaBase(BaseModel):
    """Base coverage area schema."""
    province: NonEmptyStr = Field(..., max_length=100)
    district: Optional[str] = Field(None, max_length=100)
    subdistrict: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=10)

    is_self_delivery_area: bool = False
    delivery_route: Optional[str] = Field(None, max_length=50)
    delivery_zone: Optional[str] = Field(None, max_length=50)
    priority_order: int = Field(100, ge=0)

    base_delivery_fee: Money = Decimal("0")
    per_km_rate: Money = Decimal("0")
    free_delivery_threshold: MoneyOptional = None

    standard_delivery_hours: int = Field(24, gt=0)
    express_delivery_hours: Optional[int] = Field(None, gt=0)
    same_day_available: bool = False
    max_daily_capacity: Optional[int] = Field(None, gt=0)

    is_active: bool = True
    auto_assign: bool = True


class CoverageAreaCreate(CoverageAreaBase):
    """Schema for creating a coverage area."""

    @model_validator(mode="after")
    def validate_route(self):
        """Active self-delivery areas need a route."""
        if self.is_self_delivery_area and self.is_active and not (self.delivery_route or "").strip():
            raise ValueError("delivery_route is required for active self-delivery areas")
        return self


class CoverageAreaUpdate(BaseModel):
    is_self_delivery_area: Optional[bool] = None
    delivery_route: Optional[str] = Field(None, max_length=50)
    delivery_zone: Optional[str] = Field(None, max_length=50)
    priority_order: Optional[int] = Field(None, ge=0)
    base_delivery_fee: MoneyOptional = None
    per_km_rate: MoneyOptional = None
    free_delivery_threshold: MoneyOptional = None
    standard_delivery_hours: Optional[int] = Field(None, gt=0)
    express_delivery_hours: Optional[int] = Field(None, gt=0)
    same_day_available: Optional[bool] = None
    max_daily_capacity: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    auto_assign: Optional[bool] = None


class CoverageAreaResponse(CoverageAreaBase):
    """Schema for coverage area response."""
    id: UUID
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CoverageInfoResponse(BaseModel):
    """Self-delivery eligibility and pricing for a province."""
    province: str
    is_self_delivery: bool
    delivery_route: Optional[str] = None
    delivery_zone: Optional[str] = None
    base_fee: Optional[Decimal] = None
    free_delivery_threshold: Optional[Decimal] = None
    service_levels: list[str] = Field(default_factory=list)


class CoverageStatsResponse(BaseModel):
    total_areas: int
    active_areas: int
    inactive_areas: int
    self_delivery_areas: int
    third_party_areas: int
    provinces_covered: dict[str, int]
    routes_covered: dict[str, int]
