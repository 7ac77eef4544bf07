"""
Delivery route planner.

Groups self-delivery orders onto a vehicle for one date and tracks the
route from planning through execution. Route optimization itself is
external; its payload is stored as-is.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.config import settings
from shipping.core.exceptions import (
    InvalidFieldException,
    OperationNotAllowedException,
    RouteNotFoundException,
    VehicleUnavailableException,
)
from shipping.core.metrics import record_transition
from shipping.models.base import utcnow
from shipping.models.delivery_order import DeliveryMethod, DeliveryOrder, DeliveryStatus
from shipping.models.delivery_route import DeliveryRoute, RouteStatus
from shipping.models.provider import Number
from shipping.models.snapshot import SnapshotType
from shipping.models.vehicle import VehicleStatus
from shipping.schemas.snapshot import AssignedDetails
from shipping.services.delivery_cache import DeliveryCache, delivery_cache
from shipping.services.delivery_service import DeliveryService, delivery_event
from shipping.services.event_publisher import EventPublisher, event_publisher
from shipping.services.fleet import FleetService
from shipping.services.snapshot_recorder import SnapshotRecorder

logger = logging.getLogger(__name__)


def business_today(now: Optional[datetime] = None) -> date:
    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE)).date()


def route_event(route: DeliveryRoute, **extra: Any) -> dict[str, Any]:
    return {
        "route_id": str(route.id),
        "route_name": route.route_name,
        "route_date": route.route_date.isoformat(),
        "status": route.status.value,
        "vehicle_id": str(route.assigned_vehicle_id) if route.assigned_vehicle_id else None,
        **extra,
    }


class RoutePlanner:
    """Route lifecycle and order assignment."""

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[EventPublisher] = None,
        cache: Optional[DeliveryCache] = None,
    ):
        self.db = db
        self.publisher = publisher or event_publisher
        self.cache = cache or delivery_cache
        self.fleet = FleetService(db)
        self.recorder = SnapshotRecorder(db)
        self.deliveries = DeliveryService(db, publisher=self.publisher, cache=self.cache)

    async def get_route(self, route_id: uuid.UUID) -> DeliveryRoute:
        route = await self.db.get(DeliveryRoute, route_id)
        if not route:
            raise RouteNotFoundException(route_id)
        return route

    async def list_routes(
        self,
        route_date: Optional[date] = None,
        status: Optional[RouteStatus] = None,
        vehicle_id: Optional[uuid.UUID] = None,
        driver_id: Optional[uuid.UUID] = None,
        active_only: bool = False,
    ) -> list[DeliveryRoute]:
        query = select(DeliveryRoute)
        if route_date is not None:
            query = query.where(DeliveryRoute.route_date == route_date)
        if status is not None:
            query = query.where(DeliveryRoute.status == status)
        if vehicle_id is not None:
            query = query.where(DeliveryRoute.assigned_vehicle_id == vehicle_id)
        if driver_id is not None:
            query = query.where(DeliveryRoute.assigned_driver_id == driver_id)
        if active_only:
            query = query.where(DeliveryRoute.status.in_((RouteStatus.PLANNED, RouteStatus.IN_PROGRESS)))
        result = await self.db.execute(query.order_by(DeliveryRoute.route_date, DeliveryRoute.route_name))
        return list(result.scalars().all())

    async def orders_on_route(self, route_id: uuid.UUID) -> list[DeliveryOrder]:
        result = await self.db.execute(
            select(DeliveryOrder)
            .where(DeliveryOrder.route_id == route_id)
            .order_by(DeliveryOrder.created_at)
        )
        return list(result.scalars().all())

    async def create_route(
        self,
        route_name: str,
        route_date: date,
        notes: Optional[str] = None,
        route_optimization_data: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryRoute:
        if not route_name or not route_name.strip():
            raise InvalidFieldException("route_name", "route name is required")
        if route_date < business_today(now):
            raise InvalidFieldException("route_date", "route date cannot be in the past", route_date)

        now = now or utcnow()
        route = DeliveryRoute(
            id=uuid.uuid4(),
            route_name=route_name.strip(),
            route_date=route_date,
            status=RouteStatus.PLANNED,
            total_planned_distance_km=Decimal("0"),
            total_planned_orders=0,
            actual_orders_delivered=0,
            route_optimization_data=route_optimization_data,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self.db.add(route)
        await self.db.commit()
        logger.info(f"Created route {route.route_name} for {route_date}")
        return route

    async def assign_vehicle(
        self,
        route_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        driver_id: Optional[uuid.UUID] = None,
    ) -> DeliveryRoute:
        """A vehicle serves at most one active route at a time."""
        route = await self.get_route(route_id)
        vehicle = await self.fleet.get_vehicle(vehicle_id)
        if not vehicle.is_available():
            raise VehicleUnavailableException(vehicle_id, f"vehicle status is {vehicle.status.value}")

        result = await self.db.execute(
            select(DeliveryRoute.id).where(
                DeliveryRoute.assigned_vehicle_id == vehicle_id,
                DeliveryRoute.status.in_((RouteStatus.PLANNED, RouteStatus.IN_PROGRESS)),
                DeliveryRoute.id != route.id,
            )
        )
        other = result.scalars().first()
        if other is not None:
            raise VehicleUnavailableException(vehicle_id, f"already assigned to active route {other}")

        route.assign_vehicle(vehicle_id, driver_id or vehicle.driver_id)
        await self.db.commit()
        logger.info(f"Route {route.route_name}: vehicle {vehicle.license_plate} assigned")
        return route

    async def set_planning(
        self,
        route_id: uuid.UUID,
        planned_start_time: datetime,
        planned_end_time: datetime,
        total_planned_distance_km: Number,
        total_planned_orders: int,
        route_optimization_data: Optional[dict] = None,
    ) -> DeliveryRoute:
        route = await self.get_route(route_id)
        route.set_planning(planned_start_time, planned_end_time, total_planned_distance_km, total_planned_orders)
        if route_optimization_data is not None:
            route.route_optimization_data = route_optimization_data
        await self.db.commit()
        return route

    async def add_orders(
        self,
        route_id: uuid.UUID,
        delivery_ids: Sequence[uuid.UUID],
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> list[DeliveryOrder]:
        """
        Put self-delivery orders on the route's vehicle; pending orders
        become planned. All or nothing.
        """
        route = await self.get_route(route_id)
        if route.status != RouteStatus.PLANNED:
            raise OperationNotAllowedException("DeliveryRoute", route.id, "add orders to", route.status)
        if route.assigned_vehicle_id is None:
            raise OperationNotAllowedException("DeliveryRoute", route.id, "add orders to unassigned", route.status)

        now = now or utcnow()
        orders = []
        for delivery_id in dict.fromkeys(delivery_ids):
            order = await self.deliveries.get_delivery(delivery_id)
            if order.delivery_method != DeliveryMethod.SELF_DELIVERY:
                raise InvalidFieldException(
                    "delivery_ids", f"delivery {order.id} is not a self-delivery order", str(order.id),
                )
            previous = order.status
            order.assign_vehicle(route.assigned_vehicle_id, route.id)
            if order.update_status(DeliveryStatus.PLANNED, now):
                record_transition(previous.value, order.status.value)
            order.updated_at = now
            await self.recorder.record(
                order,
                SnapshotType.ASSIGNED,
                AssignedDetails(
                    vehicle_id=order.vehicle_id,
                    route_id=route.id,
                    previous_status=previous.value,
                    new_status=order.status.value,
                ),
                triggered_by="user" if triggered_by_user_id else "system",
                triggered_event="route.orders_added",
                triggered_by_user_id=triggered_by_user_id,
                now=now,
            )
            orders.append(order)

        on_route = await self.orders_on_route(route.id)
        route.total_planned_orders = max(route.total_planned_orders or 0, len(on_route))
        await self.db.commit()

        await self.cache.invalidate_delivery(*[o.id for o in orders])
        for order in orders:
            await self.publisher.publish(
                "delivery.assigned", delivery_event(order, route_id=str(route.id)),
            )
        logger.info(f"Route {route.route_name}: {len(orders)} orders added")
        return orders

    async def start_route(self, route_id: uuid.UUID, now: Optional[datetime] = None) -> DeliveryRoute:
        now = now or utcnow()
        route = await self.get_route(route_id)
        if route.status != RouteStatus.PLANNED:
            raise OperationNotAllowedException("DeliveryRoute", route.id, "start", route.status)
        if route.assigned_vehicle_id is None:
            raise OperationNotAllowedException("DeliveryRoute", route.id, "start unassigned", route.status)
        vehicle = await self.fleet.get_vehicle(route.assigned_vehicle_id)
        if not vehicle.is_available():
            raise VehicleUnavailableException(vehicle.id, f"vehicle status is {vehicle.status.value}")
        route.start(now)
        vehicle.status = VehicleStatus.ON_ROUTE

        moved = []
        for order in await self.orders_on_route(route.id):
            if order.status == DeliveryStatus.PLANNED:
                await self.deliveries.apply_status(
                    order, DeliveryStatus.IN_TRANSIT,
                    triggered_event="route.started",
                    now=now,
                )
                moved.append(order)
        await self.db.commit()

        for order in moved:
            await self.deliveries.after_commit(order, "delivery.status_updated", route_id=str(route.id))
        await self.publisher.publish("route.started", route_event(route, orders_in_transit=len(moved)))
        logger.info(f"Route {route.route_name} started with {len(moved)} orders")
        return route

    async def complete_route(
        self,
        route_id: uuid.UUID,
        actual_distance_km: Number,
        actual_orders_delivered: int,
        now: Optional[datetime] = None,
    ) -> DeliveryRoute:
        route = await self.get_route(route_id)
        route.complete(actual_distance_km, actual_orders_delivered, now)
        vehicle = await self.fleet.get_vehicle(route.assigned_vehicle_id)
        vehicle.status = VehicleStatus.ACTIVE
        await self.db.commit()

        efficiency = route.get_efficiency()
        await self.publisher.publish("route.completed", route_event(
            route,
            actual_distance_km=str(route.actual_distance_km),
            actual_orders_delivered=route.actual_orders_delivered,
            efficiency=round(efficiency, 2),
        ))
        logger.info(f"Route {route.route_name} completed, efficiency {efficiency:.1f}%")
        return route

    async def cancel_route(
        self,
        route_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryRoute:
        """Cancel and release orders that have not left the depot."""
        now = now or utcnow()
        route = await self.get_route(route_id)
        was_in_progress = route.status == RouteStatus.IN_PROGRESS
        route.cancel()
        if reason:
            route.notes = f"{route.notes}\n{reason}" if route.notes else reason

        if was_in_progress and route.assigned_vehicle_id is not None:
            vehicle = await self.fleet.get_vehicle(route.assigned_vehicle_id)
            vehicle.status = VehicleStatus.ACTIVE

        released = []
        for order in await self.orders_on_route(route.id):
            if order.status not in (DeliveryStatus.PENDING, DeliveryStatus.PLANNED):
                continue
            order.vehicle_id = None
            order.route_id = None
            order.updated_at = now
            await self.recorder.record(
                order,
                SnapshotType.ASSIGNED,
                AssignedDetails(previous_status=order.status.value, new_status=order.status.value),
                triggered_event="route.cancelled",
                now=now,
            )
            released.append(order)
        await self.db.commit()

        await self.cache.invalidate_delivery(*[o.id for o in released])
        logger.info(f"Route {route.route_name} cancelled, {len(released)} orders released")
        return route
