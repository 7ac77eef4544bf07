"""
Pydantic schemas for API request/response models.
"""

from shipping.schemas.coverage import (
    CoverageAreaCreate,
    CoverageAreaResponse,
    CoverageAreaUpdate,
    CoverageInfoResponse,
)
from shipping.schemas.delivery import (
    AssignProviderRequest,
    AssignVehicleRequest,
    CancelRequest,
    DeliveryCreate,
    DeliveryListResponse,
    DeliveryResponse,
    StatusUpdateRequest,
    TrackingUpdateRequest,
)
from shipping.schemas.provider import (
    ProviderCreate,
    ProviderPerformanceUpdate,
    ProviderPriorityUpdate,
    ProviderResponse,
    ProviderUpdate,
    QuoteItem,
    QuoteRequest,
    QuoteResponse,
)
from shipping.schemas.route import (
    RouteAssignVehicle,
    RouteCancel,
    RouteComplete,
    RouteCreate,
    RouteDetailResponse,
    RouteOrders,
    RoutePlanning,
    RouteResponse,
)
from shipping.schemas.snapshot import (
    SnapshotDetails,
    SnapshotDiffResponse,
    SnapshotResponse,
    TimelineResponse,
)
from shipping.schemas.task import (
    TaskAssign,
    TaskClose,
    TaskComplete,
    TaskCreate,
    TaskResponse,
    TaskStatistics,
)
from shipping.schemas.vehicle import (
    VehicleCreate,
    VehicleListResponse,
    VehicleResponse,
    VehicleStatusUpdate,
)
from shipping.schemas.webhook import CarrierWebhookPayload, CarrierWebhookResult

__all__ = [
    # Coverage
    "CoverageAreaCreate",
    "CoverageAreaUpdate",
    "CoverageAreaResponse",
    "CoverageInfoResponse",
    # Delivery
    "DeliveryCreate",
    "DeliveryResponse",
    "DeliveryListResponse",
    "AssignVehicleRequest",
    "AssignProviderRequest",
    "StatusUpdateRequest",
    "TrackingUpdateRequest",
    "CancelRequest",
    # Provider
    "ProviderCreate",
    "ProviderUpdate",
    "ProviderResponse",
    "ProviderPerformanceUpdate",
    "ProviderPriorityUpdate",
    "QuoteRequest",
    "QuoteItem",
    "QuoteResponse",
    # Route
    "RouteCreate",
    "RouteAssignVehicle",
    "RoutePlanning",
    "RouteOrders",
    "RouteComplete",
    "RouteCancel",
    "RouteResponse",
    "RouteDetailResponse",
    # Snapshot
    "SnapshotDetails",
    "SnapshotResponse",
    "TimelineResponse",
    "SnapshotDiffResponse",
    # Task
    "TaskCreate",
    "TaskAssign",
    "TaskComplete",
    "TaskClose",
    "TaskResponse",
    "TaskStatistics",
    # Vehicle
    "VehicleCreate",
    "VehicleStatusUpdate",
    "VehicleResponse",
    "VehicleListResponse",
    # Webhook
    "CarrierWebhookPayload",
    "CarrierWebhookResult",
]
