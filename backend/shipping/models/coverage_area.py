"""
Coverage area model.
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.core.exceptions import InvalidFieldException
from shipping.models.base import TimestampMixin, UUIDMixin
from shipping.models.provider import CENTS, Number, to_decimal


class CoverageArea(Base, UUIDMixin, TimestampMixin):
    """
    Administrative scope (province, optionally down to postal code)
    with its delivery policy: self-delivery eligibility, route/zone,
    pricing and service levels.
    """

    __tablename__ = "coverage_areas"
    __table_args__ = (
        Index("ix_coverage_areas_scope", "province", "district", "subdistrict", "postal_code"),
    )

    # Scope
    province: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    district: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    subdistrict: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, index=True)

    # Delivery policy
    is_self_delivery_area: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivery_route: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    delivery_zone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    priority_order: Mapped[int] = mapped_column(Integer, default=100, nullable=False)

    # Pricing
    base_delivery_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    per_km_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    free_delivery_threshold: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # Service levels
    standard_delivery_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    express_delivery_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    same_day_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_daily_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Admin
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_assign: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def specificity(self) -> int:
        """3 = postal code, 2 = subdistrict, 1 = district, 0 = province only."""
        if self.postal_code:
            return 3
        if self.subdistrict:
            return 2
        if self.district:
            return 1
        return 0

    @property
    def has_self_delivery_route(self) -> bool:
        return bool(self.is_self_delivery_area and (self.delivery_route or "").strip())

    def validate(self) -> None:
        if not (self.province or "").strip():
            raise InvalidFieldException("province", "province is required")
        if self.is_self_delivery_area and self.is_active and not (self.delivery_route or "").strip():
            raise InvalidFieldException(
                "delivery_route", "active self-delivery areas must carry a route",
            )
        for field in ("base_delivery_fee", "per_km_rate", "free_delivery_threshold"):
            value = getattr(self, field)
            if value is not None and to_decimal(value) < 0:
                raise InvalidFieldException(field, "must be non-negative", value)
        if self.max_daily_capacity is not None and self.max_daily_capacity <= 0:
            raise InvalidFieldException("max_daily_capacity", "must be positive", self.max_daily_capacity)

    def calculate_delivery_fee(
        self,
        distance_km: Number,
        order_value: Optional[Number] = None,
    ) -> Decimal:
        """Zero once the order value reaches the free-delivery threshold."""
        if (
            order_value is not None
            and self.free_delivery_threshold is not None
            and to_decimal(order_value) >= to_decimal(self.free_delivery_threshold)
        ):
            return Decimal("0.00")
        distance = max(to_decimal(distance_km), Decimal("0"))
        fee = to_decimal(self.base_delivery_fee) + distance * to_decimal(self.per_km_rate)
        return fee.quantize(CENTS)

    def estimated_delivery_hours(self, express: bool = False) -> int:
        if express and self.express_delivery_hours:
            return self.express_delivery_hours
        return self.standard_delivery_hours

    def supported_service_levels(self) -> list[str]:
        levels = ["standard"]
        if self.express_delivery_hours:
            levels.append("express")
        if self.same_day_available:
            levels.append("same_day")
        return levels

    def __repr__(self) -> str:
        scope = "/".join(p for p in (self.province, self.district, self.subdistrict, self.postal_code) if p)
        return f"<CoverageArea {scope}>"
