"""
Delivery provider (carrier) capability profile.
"""
import enum
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from sqlalchemy import JSON, Boolean, Enum, Integer, Numeric, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.config import settings
from shipping.core.database import Base
from shipping.core.exceptions import ProviderConfigurationException
from shipping.models.base import TimestampMixin, UUIDMixin, utcnow

Number = Union[Decimal, float, int, str]

# Weight included in the base rate; heavier parcels pay the surcharge per kg above it
FREE_WEIGHT_KG = Decimal("5")
CENTS = Decimal("0.01")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce numeric input to Decimal without float artifacts."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class ProviderType(str, enum.Enum):
    """How the carrier is booked."""

    API_INTEGRATED = "api_integrated"
    MANUAL_COORDINATION = "manual_coordination"
    AUTO_PICKUP = "auto_pickup"


class DeliveryProvider(Base, UUIDMixin, TimestampMixin):
    """
    Third-party carrier with coverage, pricing, service levels and
    the contact channels used when it has to be booked by a human.
    """

    __tablename__ = "delivery_providers"

    # Identification
    code: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_type: Mapped[ProviderType] = mapped_column(
        Enum(ProviderType),
        nullable=False,
        index=True,
    )

    # API integration
    api_base_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    api_version: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    auth_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Coverage and limits; empty coverage means no province restriction
    coverage_provinces: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    max_weight_kg: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("30"), nullable=False)
    max_dimensions: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Pricing
    base_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    per_km_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    weight_surcharge_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    same_day_surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    cod_surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)

    # Service levels
    standard_delivery_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    express_delivery_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    same_day_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cod_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tracking_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    insurance_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Operational constraints (cutoff is business-local time of day)
    daily_cutoff_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    weekend_service: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    holiday_service: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Manual coordination contacts
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    contact_line_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_app_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    coordination_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Performance
    average_delivery_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    success_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    customer_rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2), nullable=True)

    # Admin
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    priority_order: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    auto_assign: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    @property
    def requires_manual_coordination(self) -> bool:
        return self.provider_type == ProviderType.MANUAL_COORDINATION

    @property
    def has_api(self) -> bool:
        return self.provider_type == ProviderType.API_INTEGRATED

    def contact_channels(self) -> dict[str, str]:
        """Non-empty contact channels keyed by channel name."""
        channels = {
            "phone": self.contact_phone,
            "line_id": self.contact_line_id,
            "app_name": self.contact_app_name,
            "email": self.contact_email,
        }
        return {k: v.strip() for k, v in channels.items() if v and v.strip()}

    def validate(self) -> None:
        """Raise ProviderConfigurationException if the profile cannot receive deliveries."""
        code = self.code or "<unnamed>"
        if not self.code or not self.code.strip():
            raise ProviderConfigurationException(code, "code", "code is required")
        if not self.name or not self.name.strip():
            raise ProviderConfigurationException(code, "name", "name is required")
        if self.requires_manual_coordination and not self.contact_channels():
            raise ProviderConfigurationException(
                code, "contact", "manual coordination requires at least one contact channel",
            )
        if self.has_api and not (self.api_base_url or "").strip():
            raise ProviderConfigurationException(
                code, "api_base_url", "API integration requires a base URL",
            )
        if to_decimal(self.max_weight_kg) <= 0:
            raise ProviderConfigurationException(code, "max_weight_kg", "must be positive")
        for field in (
            "base_rate",
            "per_km_rate",
            "weight_surcharge_rate",
            "same_day_surcharge",
            "cod_surcharge",
        ):
            if to_decimal(getattr(self, field)) < 0:
                raise ProviderConfigurationException(code, field, "rates must be non-negative")
        if self.success_rate is not None and not (0 <= to_decimal(self.success_rate) <= 100):
            raise ProviderConfigurationException(code, "success_rate", "must be between 0 and 100")
        if self.customer_rating is not None and not (1 <= to_decimal(self.customer_rating) <= 5):
            raise ProviderConfigurationException(code, "customer_rating", "must be between 1 and 5")

    # Rate calculation

    def calculate_fee(
        self,
        distance_km: Number,
        weight_kg: Number,
        same_day: bool = False,
        cod: bool = False,
    ) -> Decimal:
        """base + distance*per_km + overweight*surcharge + same-day/COD surcharges."""
        distance = max(to_decimal(distance_km), Decimal("0"))
        weight = to_decimal(weight_kg)

        fee = to_decimal(self.base_rate) + distance * to_decimal(self.per_km_rate)
        if weight > FREE_WEIGHT_KG:
            fee += (weight - FREE_WEIGHT_KG) * to_decimal(self.weight_surcharge_rate)
        if same_day:
            fee += to_decimal(self.same_day_surcharge)
        if cod:
            fee += to_decimal(self.cod_surcharge)
        return fee.quantize(CENTS)

    def covers_province(self, province: Optional[str]) -> bool:
        if not self.coverage_provinces:
            return True
        if not province:
            return False
        wanted = province.strip().casefold()
        return any(p.strip().casefold() == wanted for p in self.coverage_provinces)

    def is_available_for_delivery(
        self,
        province: Optional[str],
        weight_kg: Number,
        same_day: bool = False,
        cod: bool = False,
    ) -> bool:
        if not self.is_active:
            return False
        if to_decimal(weight_kg) > to_decimal(self.max_weight_kg):
            return False
        if same_day and not self.same_day_available:
            return False
        if cod and not self.cod_available:
            return False
        return self.covers_province(province)

    def is_within_cutoff_time(self, now: Optional[datetime] = None) -> bool:
        """Compare business-local time of day against the daily cutoff."""
        if self.daily_cutoff_time is None:
            return True
        now = now or utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE))
        return local.time() <= self.daily_cutoff_time

    def estimated_delivery_hours(self, same_day: bool = False) -> int:
        if same_day and self.express_delivery_hours:
            return self.express_delivery_hours
        return self.standard_delivery_hours

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": str(self.id) if self.id else None,
            "code": self.code,
            "name": self.name,
            "provider_type": self.provider_type.value,
        }

    def __repr__(self) -> str:
        return f"<DeliveryProvider {self.code} ({self.provider_type.value})>"
