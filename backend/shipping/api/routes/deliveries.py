"""
Delivery order API routes.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shipping.api.deps import get_delivery_service, get_tracking_service
from shipping.models.delivery_order import DeliveryMethod, DeliveryStatus
from shipping.schemas.delivery import (
    AssignProviderRequest,
    AssignVehicleRequest,
    CancelRequest,
    DeliveryCreate,
    DeliveryListResponse,
    DeliveryMetricsResponse,
    DeliveryResponse,
    StatusUpdateRequest,
    TrackingResponse,
    TrackingUpdateRequest,
)
from shipping.schemas.snapshot import SnapshotDiffResponse, SnapshotResponse, TimelineResponse
from shipping.schemas.task import TaskResponse
from shipping.services.delivery_service import DeliveryService
from shipping.services.tracking import TrackingService

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


def _actor(user_id: Optional[UUID]) -> str:
    return "user" if user_id else "api"


@router.post("", response_model=DeliveryResponse, status_code=201)
async def create_delivery(
    data: DeliveryCreate,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    """Create a delivery order; picks self-delivery or the cheapest provider."""
    order = await service.create_delivery_order(
        order_id=data.order_id,
        customer_id=data.customer_id,
        customer_address_id=data.customer_address_id,
        package_weight_kg=data.package_weight_kg,
        cod_amount=data.cod_amount,
        same_day_required=data.same_day_required,
        order_value=data.order_value,
        planned_delivery_date=data.planned_delivery_date,
        notes=data.notes,
        delivery_instructions=data.delivery_instructions,
        triggered_by="api",
    )
    return DeliveryResponse.model_validate(order)


@router.get("", response_model=DeliveryListResponse)
async def list_deliveries(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[DeliveryStatus] = Query(None),
    delivery_method: Optional[DeliveryMethod] = Query(None),
    provider_code: Optional[str] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryListResponse:
    """Get list of deliveries with filters and pagination."""
    orders, total = await service.list_deliveries(
        status=status,
        delivery_method=delivery_method,
        provider_code=provider_code,
        customer_id=customer_id,
        created_from=created_from,
        created_to=created_to,
        page=page,
        size=size,
    )
    return DeliveryListResponse(
        items=[DeliveryResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
    )


@router.get("/delayed", response_model=list[DeliveryResponse])
async def list_delayed_deliveries(
    limit: int = Query(100, ge=1, le=500),
    tracking: TrackingService = Depends(get_tracking_service),
) -> list[DeliveryResponse]:
    """Open deliveries past their estimated delivery time."""
    return [DeliveryResponse.model_validate(o) for o in await tracking.list_delayed(limit=limit)]


@router.get("/metrics", response_model=DeliveryMetricsResponse)
async def get_delivery_metrics(
    start: datetime = Query(...),
    end: datetime = Query(...),
    tracking: TrackingService = Depends(get_tracking_service),
) -> DeliveryMetricsResponse:
    """Delivery performance for orders created in [start, end)."""
    return DeliveryMetricsResponse.model_validate(await tracking.get_metrics(start, end))


@router.get("/track/{tracking_number}", response_model=TrackingResponse)
async def track_delivery(
    tracking_number: str,
    tracking: TrackingService = Depends(get_tracking_service),
) -> TrackingResponse:
    return TrackingResponse(**await tracking.track(tracking_number))


@router.get("/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(
    delivery_id: UUID,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    """Get delivery by ID."""
    return DeliveryResponse.model_validate(await service.get_delivery_view(delivery_id))


@router.post("/{delivery_id}/assign-vehicle", response_model=DeliveryResponse)
async def assign_vehicle(
    delivery_id: UUID,
    data: AssignVehicleRequest,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    order = await service.assign_vehicle(
        delivery_id,
        data.vehicle_id,
        data.route_id,
        expected_version=data.expected_version,
        triggered_by=_actor(data.user_id),
        triggered_by_user_id=data.user_id,
    )
    return DeliveryResponse.model_validate(order)


@router.post("/{delivery_id}/assign-provider", response_model=DeliveryResponse)
async def assign_provider(
    delivery_id: UUID,
    data: AssignProviderRequest,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    order = await service.assign_provider(
        delivery_id,
        data.provider_code,
        expected_version=data.expected_version,
        triggered_by=_actor(data.user_id),
        triggered_by_user_id=data.user_id,
    )
    return DeliveryResponse.model_validate(order)


@router.post("/{delivery_id}/status", response_model=DeliveryResponse)
async def update_status(
    delivery_id: UUID,
    data: StatusUpdateRequest,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    """Move the delivery through its lifecycle; same-status updates are no-ops."""
    order = await service.update_status(
        delivery_id,
        data.status,
        reason=data.reason,
        expected_version=data.expected_version,
        triggered_by=_actor(data.user_id),
        triggered_by_user_id=data.user_id,
    )
    return DeliveryResponse.model_validate(order)


@router.post("/{delivery_id}/tracking", response_model=DeliveryResponse)
async def set_tracking(
    delivery_id: UUID,
    data: TrackingUpdateRequest,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    order = await service.set_tracking_info(
        delivery_id,
        data.tracking_number,
        data.provider_order_id,
        expected_version=data.expected_version,
        triggered_by=_actor(data.user_id),
        triggered_by_user_id=data.user_id,
    )
    return DeliveryResponse.model_validate(order)


@router.post("/{delivery_id}/cancel", response_model=DeliveryResponse)
async def cancel_delivery(
    delivery_id: UUID,
    data: CancelRequest,
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    """Cancel a pending or planned delivery and its open coordination tasks."""
    order = await service.cancel_order(
        delivery_id,
        reason=data.reason,
        expected_version=data.expected_version,
        triggered_by=_actor(data.user_id),
        triggered_by_user_id=data.user_id,
    )
    return DeliveryResponse.model_validate(order)


@router.get("/{delivery_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    delivery_id: UUID,
    service: DeliveryService = Depends(get_delivery_service),
) -> TimelineResponse:
    """Audit trail of the delivery, oldest first."""
    snapshots = await service.get_timeline(delivery_id)
    return TimelineResponse(
        delivery_id=delivery_id,
        items=[SnapshotResponse.model_validate(s) for s in snapshots],
        total=len(snapshots),
    )


@router.get("/{delivery_id}/timeline/diff", response_model=SnapshotDiffResponse)
async def get_latest_diff(
    delivery_id: UUID,
    service: DeliveryService = Depends(get_delivery_service),
) -> SnapshotDiffResponse:
    """What changed in the latest snapshot."""
    return SnapshotDiffResponse.model_validate(await service.get_latest_diff(delivery_id))


@router.get("/{delivery_id}/tasks", response_model=list[TaskResponse])
async def list_delivery_tasks(
    delivery_id: UUID,
    service: DeliveryService = Depends(get_delivery_service),
) -> list[TaskResponse]:
    return [TaskResponse.model_validate(t) for t in await service.list_tasks(delivery_id)]
