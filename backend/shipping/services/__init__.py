"""
Services module.

Business logic for delivery orchestration:
- Provider registry and rate calculation
- Coverage resolution
- Delivery order lifecycle and audit snapshots
- Manual coordination tasks and reminder sweep
- Route planning for the self-delivery fleet
- Carrier webhooks and lifecycle event publishing
"""
from shipping.services.address_lookup import AddressInfo, AddressLookup, CustomerServiceAddressLookup, address_lookup
from shipping.services.carrier_webhooks import CarrierWebhookService
from shipping.services.coverage_resolver import CoverageResolver
from shipping.services.delivery_cache import DeliveryCache, delivery_cache
from shipping.services.delivery_service import DeliveryService
from shipping.services.escalation_policy import EscalationPolicy, TaskPolicy, get_escalation_policy
from shipping.services.event_publisher import EventPublisher, event_publisher
from shipping.services.fleet import FleetService
from shipping.services.manual_coordination import ManualCoordinationService
from shipping.services.provider_registry import ProviderRegistry, RateQuote
from shipping.services.route_planner import RoutePlanner
from shipping.services.snapshot_recorder import SnapshotRecorder, compare_with_previous

__all__ = [
    # Clients
    "AddressInfo",
    "AddressLookup",
    "CustomerServiceAddressLookup",
    "address_lookup",
    "DeliveryCache",
    "delivery_cache",
    "EventPublisher",
    "event_publisher",
    # Services
    "CarrierWebhookService",
    "CoverageResolver",
    "DeliveryService",
    "FleetService",
    "ManualCoordinationService",
    "ProviderRegistry",
    "RateQuote",
    "RoutePlanner",
    "SnapshotRecorder",
    "compare_with_previous",
    # Policy
    "EscalationPolicy",
    "TaskPolicy",
    "get_escalation_policy",
]
