"""
Provider registry and rate calculator.

Holds carrier capability profiles and answers "who can take this
shipment, and for how much". Misconfigured providers are rejected
when they are registered or updated, never at dispatch time.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import (
    DuplicateResourceException,
    InvalidFieldException,
    ProviderNotFoundException,
)
from shipping.models.provider import DeliveryProvider, Number, ProviderType, to_decimal

logger = logging.getLogger(__name__)

# Fields an admin update may not touch
IMMUTABLE_FIELDS = {"id", "code", "created_at", "updated_at"}


@dataclass
class RateQuote:
    """Fee offered by one available provider."""

    provider: DeliveryProvider
    fee: Decimal
    within_cutoff: bool
    estimated_hours: int

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.provider.to_summary(),
            "fee": self.fee,
            "within_cutoff": self.within_cutoff,
            "estimated_hours": self.estimated_hours,
        }


def rank_quotes(quotes: Sequence[RateQuote]) -> list[RateQuote]:
    """Cheapest first; ties broken by priority order, then code."""
    return sorted(quotes, key=lambda q: (q.fee, q.provider.priority_order, q.provider.code))


class ProviderRegistry:
    """Persistence-backed provider registry."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Lookup

    async def get(self, code: str) -> DeliveryProvider:
        result = await self.db.execute(
            select(DeliveryProvider).where(DeliveryProvider.code == code)
        )
        provider = result.scalar_one_or_none()
        if not provider:
            raise ProviderNotFoundException(code)
        return provider

    async def list_providers(
        self,
        active_only: bool = False,
        provider_type: Optional[ProviderType] = None,
    ) -> list[DeliveryProvider]:
        query = select(DeliveryProvider)
        if active_only:
            query = query.where(DeliveryProvider.is_active.is_(True))
        if provider_type is not None:
            query = query.where(DeliveryProvider.provider_type == provider_type)
        query = query.order_by(DeliveryProvider.priority_order, DeliveryProvider.code)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_for_province(self, province: str) -> list[DeliveryProvider]:
        """Active providers that cover the province, by priority."""
        providers = await self.list_providers(active_only=True)
        return [p for p in providers if p.covers_province(province)]

    # Admin operations

    async def register(self, data: dict[str, Any]) -> DeliveryProvider:
        existing = await self.db.execute(
            select(DeliveryProvider.id).where(DeliveryProvider.code == data.get("code"))
        )
        if existing.scalar_one_or_none():
            raise DuplicateResourceException("DeliveryProvider", "code", data.get("code"))

        provider = DeliveryProvider(**data)
        provider.validate()
        self.db.add(provider)
        await self.db.commit()
        logger.info(f"Registered provider {provider.code} ({provider.provider_type.value})")
        return provider

    async def update(self, code: str, changes: dict[str, Any]) -> DeliveryProvider:
        provider = await self.get(code)
        for field, value in changes.items():
            if field in IMMUTABLE_FIELDS:
                raise InvalidFieldException(field, "cannot be changed")
            setattr(provider, field, value)
        try:
            provider.validate()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.commit()
        logger.info(f"Updated provider {code}: {sorted(changes)}")
        return provider

    async def set_active(self, code: str, active: bool) -> DeliveryProvider:
        """Activate/deactivate; providers are never hard-deleted."""
        provider = await self.get(code)
        if active:
            provider.validate()
        provider.is_active = active
        await self.db.commit()
        logger.info(f"Provider {code} {'activated' if active else 'deactivated'}")
        return provider

    async def set_priority(self, code: str, priority_order: int) -> DeliveryProvider:
        if priority_order < 0:
            raise InvalidFieldException("priority_order", "must be non-negative", priority_order)
        provider = await self.get(code)
        provider.priority_order = priority_order
        await self.db.commit()
        return provider

    async def update_performance(
        self,
        code: str,
        average_delivery_hours: Optional[Number] = None,
        success_rate: Optional[Number] = None,
        customer_rating: Optional[Number] = None,
    ) -> DeliveryProvider:
        provider = await self.get(code)
        if average_delivery_hours is not None:
            provider.average_delivery_hours = to_decimal(average_delivery_hours)
        if success_rate is not None:
            provider.success_rate = to_decimal(success_rate)
        if customer_rating is not None:
            provider.customer_rating = to_decimal(customer_rating)
        try:
            provider.validate()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.commit()
        return provider

    # Rate calculation

    async def quote(
        self,
        province: Optional[str],
        weight_kg: Number,
        distance_km: Number,
        same_day: bool = False,
        cod: bool = False,
        now: Optional[datetime] = None,
    ) -> list[RateQuote]:
        """Every provider able to take the shipment, cheapest first."""
        providers = await self.list_providers(active_only=True)
        quotes = [
            RateQuote(
                provider=p,
                fee=p.calculate_fee(distance_km, weight_kg, same_day, cod),
                within_cutoff=p.is_within_cutoff_time(now),
                estimated_hours=p.estimated_delivery_hours(same_day),
            )
            for p in providers
            if p.is_available_for_delivery(province, weight_kg, same_day, cod)
        ]
        return rank_quotes(quotes)

    async def select_cheapest(
        self,
        province: Optional[str],
        weight_kg: Number,
        distance_km: Number,
        same_day: bool = False,
        cod: bool = False,
        now: Optional[datetime] = None,
    ) -> Optional[RateQuote]:
        """Cheapest available provider still within its daily cutoff."""
        quotes = await self.quote(province, weight_kg, distance_km, same_day, cod, now)
        eligible = [q for q in quotes if q.within_cutoff]
        if not eligible:
            logger.info(
                f"No provider within cutoff for province={province} weight={weight_kg} "
                f"same_day={same_day} cod={cod} ({len(quotes)} outside cutoff)"
            )
            return None
        return eligible[0]
