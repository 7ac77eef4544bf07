"""
Delivery route API routes.
"""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shipping.api.deps import get_route_planner
from shipping.models.delivery_route import DeliveryRoute, RouteStatus
from shipping.schemas.delivery import DeliveryResponse
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
from shipping.services.route_planner import RoutePlanner

router = APIRouter(prefix="/routes", tags=["routes"])


def _to_response(route: DeliveryRoute) -> RouteResponse:
    return RouteResponse.model_validate(route).model_copy(update={"efficiency": route.get_efficiency()})


@router.post("", response_model=RouteResponse, status_code=201)
async def create_route(
    data: RouteCreate,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteResponse:
    route = await planner.create_route(
        data.route_name,
        data.route_date,
        notes=data.notes,
        route_optimization_data=data.route_optimization_data,
    )
    return _to_response(route)


@router.get("", response_model=list[RouteResponse])
async def list_routes(
    route_date: Optional[date] = Query(None),
    status: Optional[RouteStatus] = Query(None),
    vehicle_id: Optional[UUID] = Query(None),
    driver_id: Optional[UUID] = Query(None),
    active_only: bool = Query(False, description="Only planned and in-progress routes"),
    planner: RoutePlanner = Depends(get_route_planner),
) -> list[RouteResponse]:
    routes = await planner.list_routes(route_date, status, vehicle_id, driver_id, active_only)
    return [_to_response(r) for r in routes]


@router.get("/{route_id}", response_model=RouteDetailResponse)
async def get_route(
    route_id: UUID,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteDetailResponse:
    route = await planner.get_route(route_id)
    orders = await planner.orders_on_route(route_id)
    return RouteDetailResponse(
        **_to_response(route).model_dump(),
        delivery_ids=[o.id for o in orders],
    )


@router.post("/{route_id}/assign-vehicle", response_model=RouteResponse)
async def assign_vehicle(
    route_id: UUID,
    data: RouteAssignVehicle,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteResponse:
    return _to_response(await planner.assign_vehicle(route_id, data.vehicle_id, data.driver_id))


@router.post("/{route_id}/planning", response_model=RouteResponse)
async def set_planning(
    route_id: UUID,
    data: RoutePlanning,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteResponse:
    route = await planner.set_planning(
        route_id,
        data.planned_start_time,
        data.planned_end_time,
        data.total_planned_distance_km,
        data.total_planned_orders,
        data.route_optimization_data,
    )
    return _to_response(route)


@router.post("/{route_id}/orders", response_model=list[DeliveryResponse])
async def add_orders(
    route_id: UUID,
    data: RouteOrders,
    planner: RoutePlanner = Depends(get_route_planner),
) -> list[DeliveryResponse]:
    """Put self-delivery orders on the route; pending orders become planned."""
    orders = await planner.add_orders(route_id, data.delivery_ids, data.user_id)
    return [DeliveryResponse.model_validate(o) for o in orders]


@router.post("/{route_id}/start", response_model=RouteResponse)
async def start_route(
    route_id: UUID,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteResponse:
    return _to_response(await planner.start_route(route_id))


@router.post("/{route_id}/complete", response_model=RouteResponse)
async def complete_route(
    route_id: UUID,
    data: RouteComplete,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteResponse:
    route = await planner.complete_route(route_id, data.actual_distance_km, data.actual_orders_delivered)
    return _to_response(route)


@router.post("/{route_id}/cancel", response_model=RouteResponse)
async def cancel_route(
    route_id: UUID,
    data: RouteCancel,
    planner: RoutePlanner = Depends(get_route_planner),
) -> RouteResponse:
    return _to_response(await planner.cancel_route(route_id, data.reason))
