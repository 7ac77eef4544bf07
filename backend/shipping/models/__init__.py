"""
Database models.
"""
from shipping.models.base import TimestampMixin, UUIDMixin, utcnow
from shipping.models.provider import DeliveryProvider, ProviderType
from shipping.models.coverage_area import CoverageArea
from shipping.models.delivery_order import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    DeliveryMethod,
    DeliveryOrder,
    DeliveryStatus,
)
from shipping.models.vehicle import DeliveryVehicle, VehicleStatus, VehicleType
from shipping.models.delivery_route import DeliveryRoute, RouteStatus
from shipping.models.manual_task import ManualCoordinationTask, TaskStatus, TaskType
from shipping.models.snapshot import DeliverySnapshot, SnapshotType
from shipping.models.carrier_webhook import CarrierWebhookEvent, WebhookOutcome

__all__ = [
    "TimestampMixin",
    "UUIDMixin",
    "utcnow",
    "DeliveryProvider",
    "ProviderType",
    "CoverageArea",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "DeliveryMethod",
    "DeliveryOrder",
    "DeliveryStatus",
    "DeliveryVehicle",
    "VehicleStatus",
    "VehicleType",
    "DeliveryRoute",
    "RouteStatus",
    "ManualCoordinationTask",
    "TaskStatus",
    "TaskType",
    "DeliverySnapshot",
    "SnapshotType",
    "CarrierWebhookEvent",
    "WebhookOutcome",
]
