"""
FastAPI dependencies.

Collaborators (address lookup, event publisher, cache) are separate
dependencies so tests can override them with fakes.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.database import get_db
from shipping.services.address_lookup import AddressLookup, address_lookup
from shipping.services.carrier_webhooks import CarrierWebhookService
from shipping.services.coverage_resolver import CoverageResolver
from shipping.services.delivery_cache import DeliveryCache, delivery_cache
from shipping.services.delivery_service import DeliveryService
from shipping.services.escalation_policy import EscalationPolicy, get_escalation_policy
from shipping.services.event_publisher import EventPublisher, event_publisher
from shipping.services.fleet import FleetService
from shipping.services.manual_coordination import ManualCoordinationService
from shipping.services.provider_registry import ProviderRegistry
from shipping.services.route_planner import RoutePlanner
from shipping.services.tracking import TrackingService


def get_address_lookup() -> AddressLookup:
    return address_lookup


def get_event_publisher() -> EventPublisher:
    return event_publisher


def get_delivery_cache() -> DeliveryCache:
    return delivery_cache


def get_policy() -> EscalationPolicy:
    return get_escalation_policy()


def get_delivery_service(
    db: AsyncSession = Depends(get_db),
    lookup: AddressLookup = Depends(get_address_lookup),
    publisher: EventPublisher = Depends(get_event_publisher),
    cache: DeliveryCache = Depends(get_delivery_cache),
    policy: EscalationPolicy = Depends(get_policy),
) -> DeliveryService:
    return DeliveryService(db, lookup=lookup, publisher=publisher, cache=cache, policy=policy)


def get_task_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
    cache: DeliveryCache = Depends(get_delivery_cache),
    policy: EscalationPolicy = Depends(get_policy),
) -> ManualCoordinationService:
    return ManualCoordinationService(db, publisher=publisher, cache=cache, policy=policy)


def get_route_planner(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> RoutePlanner:
    return RoutePlanner(db, publisher=publisher, cache=cache)


def get_webhook_service(
    db: AsyncSession = Depends(get_db),
    publisher: EventPublisher = Depends(get_event_publisher),
    cache: DeliveryCache = Depends(get_delivery_cache),
) -> CarrierWebhookService:
    return CarrierWebhookService(db, publisher=publisher, cache=cache)


def get_provider_registry(db: AsyncSession = Depends(get_db)) -> ProviderRegistry:
    return ProviderRegistry(db)


def get_coverage_resolver(db: AsyncSession = Depends(get_db)) -> CoverageResolver:
    return CoverageResolver(db)


def get_fleet_service(db: AsyncSession = Depends(get_db)) -> FleetService:
    return FleetService(db)


def get_tracking_service(db: AsyncSession = Depends(get_db)) -> TrackingService:
    return TrackingService(db)
