"""
Vehicle API routes.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shipping.api.deps import get_fleet_service
from shipping.models.vehicle import VehicleStatus
from shipping.schemas.vehicle import (
    DriverAssignment,
    MaintenanceModeUpdate,
    VehicleCreate,
    VehicleListResponse,
    VehicleResponse,
    VehicleStatusUpdate,
)
from shipping.services.fleet import FleetService

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.get("", response_model=VehicleListResponse)
async def list_vehicles(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[VehicleStatus] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, description="Search by license plate"),
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleListResponse:
    """Get list of vehicles with pagination."""
    vehicles, total = await fleet.list_vehicles(status, is_active, search, page, size)
    return VehicleListResponse(
        items=[VehicleResponse.model_validate(v) for v in vehicles],
        total=total,
        page=page,
        size=size,
    )


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(
    vehicle_id: UUID,
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleResponse:
    """Get vehicle by ID."""
    return VehicleResponse.model_validate(await fleet.get_vehicle(vehicle_id))


@router.post("", response_model=VehicleResponse, status_code=201)
async def create_vehicle(
    data: VehicleCreate,
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleResponse:
    """Create a new vehicle."""
    vehicle = await fleet.register_vehicle(data.model_dump())
    return VehicleResponse.model_validate(vehicle)


@router.post("/{vehicle_id}/status", response_model=VehicleResponse)
async def set_vehicle_status(
    vehicle_id: UUID,
    data: VehicleStatusUpdate,
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleResponse:
    vehicle = await fleet.set_status(vehicle_id, data.status, data.notes)
    return VehicleResponse.model_validate(vehicle)


@router.post("/{vehicle_id}/maintenance", response_model=VehicleResponse)
async def set_maintenance_mode(
    vehicle_id: UUID,
    data: MaintenanceModeUpdate,
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleResponse:
    vehicle = await fleet.set_maintenance_mode(vehicle_id, data.enable)
    return VehicleResponse.model_validate(vehicle)


@router.post("/{vehicle_id}/driver", response_model=VehicleResponse)
async def assign_driver(
    vehicle_id: UUID,
    data: DriverAssignment,
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleResponse:
    vehicle = await fleet.assign_driver(vehicle_id, data.driver_id)
    return VehicleResponse.model_validate(vehicle)


@router.delete("/{vehicle_id}/driver", response_model=VehicleResponse)
async def unassign_driver(
    vehicle_id: UUID,
    fleet: FleetService = Depends(get_fleet_service),
) -> VehicleResponse:
    vehicle = await fleet.unassign_driver(vehicle_id)
    return VehicleResponse.model_validate(vehicle)
