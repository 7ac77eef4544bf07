"""
Self-delivery fleet administration.
"""
import logging
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import (
    DuplicateResourceException,
    InvalidFieldException,
    VehicleNotFoundException,
    VehicleUnavailableException,
)
from shipping.models.vehicle import DeliveryVehicle, VehicleStatus

logger = logging.getLogger(__name__)


class FleetService:
    """Vehicle registration, listing and status changes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_vehicle(self, vehicle_id: uuid.UUID) -> DeliveryVehicle:
        vehicle = await self.db.get(DeliveryVehicle, vehicle_id)
        if not vehicle:
            raise VehicleNotFoundException(vehicle_id)
        return vehicle

    async def list_vehicles(
        self,
        status: Optional[VehicleStatus] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = 1,
        size: int = 20,
    ) -> tuple[list[DeliveryVehicle], int]:
        query = select(DeliveryVehicle)
        if status is not None:
            query = query.where(DeliveryVehicle.status == status)
        if is_active is not None:
            query = query.where(DeliveryVehicle.is_active == is_active)
        if search:
            query = query.where(DeliveryVehicle.license_plate.ilike(f"%{search}%"))

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(DeliveryVehicle.license_plate).offset((page - 1) * size).limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def register_vehicle(self, data: dict[str, Any]) -> DeliveryVehicle:
        existing = await self.db.execute(
            select(DeliveryVehicle.id).where(DeliveryVehicle.license_plate == data.get("license_plate"))
        )
        if existing.scalar_one_or_none():
            raise DuplicateResourceException("DeliveryVehicle", "license_plate", data.get("license_plate"))

        data = {"status": VehicleStatus.ACTIVE, "is_active": True, **data}
        vehicle = DeliveryVehicle(**data)
        vehicle.validate()
        self.db.add(vehicle)
        await self.db.commit()
        logger.info(f"Registered vehicle {vehicle.license_plate} ({vehicle.vehicle_type.value})")
        return vehicle

    async def set_status(
        self,
        vehicle_id: uuid.UUID,
        status: VehicleStatus,
        notes: Optional[str] = None,
    ) -> DeliveryVehicle:
        """Manual status change; `on_route` is owned by the route planner."""
        status = VehicleStatus(status)
        if status == VehicleStatus.ON_ROUTE:
            raise InvalidFieldException("status", "on_route is set by starting a route", status.value)
        vehicle = await self.get_vehicle(vehicle_id)
        if vehicle.status == VehicleStatus.ON_ROUTE:
            raise VehicleUnavailableException(vehicle_id, "vehicle is on a route in progress")

        vehicle.status = status
        if notes is not None:
            vehicle.notes = notes
        await self.db.commit()
        logger.info(f"Vehicle {vehicle.license_plate} status -> {status.value}")
        return vehicle

    async def set_maintenance_mode(
        self,
        vehicle_id: uuid.UUID,
        enable: bool,
        today: Optional[date] = None,
    ) -> DeliveryVehicle:
        """
        Take a vehicle out of service, or bring it back.

        Leaving maintenance stamps `last_maintenance_date`.
        """
        vehicle = await self.get_vehicle(vehicle_id)
        if vehicle.status == VehicleStatus.ON_ROUTE:
            raise VehicleUnavailableException(vehicle_id, "vehicle is on a route in progress")
        if enable:
            vehicle.status = VehicleStatus.MAINTENANCE
        elif vehicle.status == VehicleStatus.MAINTENANCE:
            vehicle.status = VehicleStatus.ACTIVE
            vehicle.last_maintenance_date = today or date.today()
        await self.db.commit()
        logger.info(f"Vehicle {vehicle.license_plate} maintenance mode {'on' if enable else 'off'}")
        return vehicle

    async def assign_driver(self, vehicle_id: uuid.UUID, driver_id: uuid.UUID) -> DeliveryVehicle:
        vehicle = await self.get_vehicle(vehicle_id)
        if vehicle.status != VehicleStatus.ACTIVE or not vehicle.is_active:
            raise VehicleUnavailableException(vehicle_id, f"vehicle status is {vehicle.status.value}")
        vehicle.driver_id = driver_id
        await self.db.commit()
        logger.info(f"Driver {driver_id} assigned to vehicle {vehicle.license_plate}")
        return vehicle

    async def unassign_driver(self, vehicle_id: uuid.UUID) -> DeliveryVehicle:
        vehicle = await self.get_vehicle(vehicle_id)
        if vehicle.driver_id is None:
            raise InvalidFieldException("driver_id", "vehicle has no assigned driver")
        driver_id, vehicle.driver_id = vehicle.driver_id, None
        await self.db.commit()
        logger.info(f"Driver {driver_id} unassigned from vehicle {vehicle.license_plate}")
        return vehicle
