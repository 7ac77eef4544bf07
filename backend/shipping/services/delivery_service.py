"""
Delivery order orchestration.

Creates delivery orders (method selection and pricing), drives the
status state machine and keeps the audit trail: every mutation and its
snapshot are committed together. Events and cache invalidation follow
the commit and never fail the operation.
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import (
    ConcurrentModificationException,
    DeliveryNotFoundException,
    InvalidFieldException,
    NoProviderAvailableException,
    OperationNotAllowedException,
    RouteNotFoundException,
    VehicleNotFoundException,
    VehicleUnavailableException,
)
from shipping.core.logging import bind_delivery
from shipping.core.metrics import DELIVERIES_CREATED, DELIVERY_FEE, record_transition
from shipping.models.base import utcnow
from shipping.models.delivery_order import TERMINAL_STATUSES, DeliveryMethod, DeliveryOrder, DeliveryStatus
from shipping.models.delivery_route import DeliveryRoute
from shipping.models.manual_task import ManualCoordinationTask
from shipping.models.provider import Number, to_decimal
from shipping.models.snapshot import DeliverySnapshot, SnapshotType
from shipping.models.vehicle import DeliveryVehicle, VehicleStatus
from shipping.schemas.delivery import DeliveryResponse
from shipping.schemas.snapshot import (
    AssignedDetails,
    CancelledDetails,
    CreatedDetails,
    FailedDetails,
    ProviderUpdatedDetails,
    StatusChangeDetails,
)
from shipping.services.address_lookup import AddressLookup, address_lookup
from shipping.services.coverage_resolver import CoverageResolver
from shipping.services.delivery_cache import DeliveryCache, delivery_cache
from shipping.services.escalation_policy import EscalationPolicy
from shipping.services.event_publisher import EventPublisher, event_publisher
from shipping.services.manual_coordination import ManualCoordinationService, task_event
from shipping.services.provider_registry import ProviderRegistry
from shipping.services.snapshot_recorder import SNAPSHOT_TYPE_FOR_STATUS, SnapshotRecorder

logger = logging.getLogger(__name__)

STATUS_EVENTS = {
    DeliveryStatus.DELIVERED: "delivery.delivered",
    DeliveryStatus.FAILED: "delivery.failed",
    DeliveryStatus.CANCELLED: "delivery.cancelled",
}


def delivery_event(order: DeliveryOrder, **extra: Any) -> dict[str, Any]:
    return {
        "delivery_id": str(order.id),
        "order_id": str(order.order_id),
        "customer_id": str(order.customer_id),
        "status": order.status.value,
        "delivery_method": order.delivery_method.value,
        "provider_code": order.provider_code,
        "tracking_number": order.tracking_number,
        "version": order.version,
        **extra,
    }


class DeliveryService:
    """Delivery order use cases."""

    def __init__(
        self,
        db: AsyncSession,
        lookup: Optional[AddressLookup] = None,
        publisher: Optional[EventPublisher] = None,
        cache: Optional[DeliveryCache] = None,
        policy: Optional[EscalationPolicy] = None,
    ):
        self.db = db
        self.lookup = lookup or address_lookup
        self.publisher = publisher or event_publisher
        self.cache = cache or delivery_cache
        self.registry = ProviderRegistry(db)
        self.resolver = CoverageResolver(db)
        self.recorder = SnapshotRecorder(db)
        self.tasks = ManualCoordinationService(db, self.publisher, self.cache, policy)

    # Creation

    async def create_delivery_order(
        self,
        order_id: uuid.UUID,
        customer_id: uuid.UUID,
        customer_address_id: uuid.UUID,
        package_weight_kg: Number,
        cod_amount: Number = Decimal("0"),
        same_day_required: bool = False,
        order_value: Optional[Number] = None,
        planned_delivery_date: Optional[date] = None,
        notes: Optional[str] = None,
        delivery_instructions: Optional[str] = None,
        triggered_by: str = "system",
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryOrder:
        """
        Decide how the order ships and persist it.

        Self-delivery wins when the destination resolves to an area with
        a route; otherwise the cheapest available provider within its
        cutoff. A manual-coordination provider gets a booking task in
        the same transaction.
        """
        now = now or utcnow()
        weight = to_decimal(package_weight_kg)
        cod = to_decimal(cod_amount)
        if weight < 0:
            raise InvalidFieldException("package_weight_kg", "must be non-negative", weight)
        if cod < 0:
            raise InvalidFieldException("cod_amount", "must be non-negative", cod)

        address = await self.lookup.resolve(customer_id, customer_address_id)
        area = await self.resolver.resolve(
            address.province, address.district, address.subdistrict, address.postal_code,
        )

        order = DeliveryOrder(
            id=uuid.uuid4(),
            order_id=order_id,
            customer_id=customer_id,
            customer_address_id=customer_address_id,
            package_weight_kg=weight,
            cod_amount=cod,
            same_day_required=same_day_required,
            destination_province=address.province,
            planned_delivery_date=planned_delivery_date,
            notes=notes,
            delivery_instructions=delivery_instructions,
            status=DeliveryStatus.PENDING,
            is_active=True,
            requires_manual_coordination=False,
            created_at=now,
            updated_at=now,
        )

        provider = None
        if area is not None and area.has_self_delivery_route:
            order.delivery_method = DeliveryMethod.SELF_DELIVERY
            order.delivery_fee = area.calculate_delivery_fee(address.distance_km, order_value)
            hours = area.estimated_delivery_hours(express=same_day_required)
            coverage_route = area.delivery_route
        else:
            quote = await self.registry.select_cheapest(
                address.province, weight, address.distance_km, same_day_required, cod > 0, now,
            )
            if quote is None:
                raise NoProviderAvailableException(address.province, weight, same_day_required, cod > 0)
            provider = quote.provider
            order.assign_provider(provider)
            order.delivery_fee = quote.fee
            hours = quote.estimated_hours
            coverage_route = None
        order.estimated_delivery_time = now + timedelta(hours=hours)
        order.validate()

        self.db.add(order)
        await self.recorder.record(
            order,
            SnapshotType.CREATED,
            CreatedDetails(
                delivery_method=order.delivery_method.value,
                provider_code=order.provider_code,
                delivery_fee=order.delivery_fee,
                requires_manual_coordination=order.requires_manual_coordination,
                coverage_route=coverage_route,
            ),
            triggered_by=triggered_by,
            triggered_event="delivery.created",
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )

        task = None
        if provider is not None and provider.requires_manual_coordination:
            task = self.tasks.open_task(order, provider, now=now)

        await self.db.commit()

        DELIVERIES_CREATED.labels(delivery_method=order.delivery_method.value).inc()
        DELIVERY_FEE.labels(delivery_method=order.delivery_method.value).observe(float(order.delivery_fee))
        logger.info(
            f"Created delivery {order.id} for order {order_id}: "
            f"method={order.delivery_method.value} provider={order.provider_code} fee={order.delivery_fee}",
            extra={"delivery_id": str(order.id)},
        )

        await self.publisher.publish("delivery.created", delivery_event(order, delivery_fee=order.delivery_fee))
        if task is not None:
            await self.publisher.publish("manual_task.created", task_event(task))
        return order

    # Lookup

    async def get_delivery(self, delivery_id: uuid.UUID) -> DeliveryOrder:
        bind_delivery(delivery_id)
        order = await self.db.get(DeliveryOrder, delivery_id)
        if not order:
            raise DeliveryNotFoundException(delivery_id)
        return order

    async def get_delivery_view(self, delivery_id: uuid.UUID) -> dict[str, Any]:
        """Response payload for one delivery, served from cache when warm."""
        cached = await self.cache.get_delivery(delivery_id)
        if cached is not None:
            return cached
        order = await self.get_delivery(delivery_id)
        data = DeliveryResponse.model_validate(order).model_dump(mode="json")
        await self.cache.set_delivery(delivery_id, data)
        return data

    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        delivery_method: Optional[DeliveryMethod] = None,
        provider_code: Optional[str] = None,
        customer_id: Optional[uuid.UUID] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        page: int = 1,
        size: int = 20,
    ) -> tuple[list[DeliveryOrder], int]:
        query = select(DeliveryOrder)
        if status is not None:
            query = query.where(DeliveryOrder.status == status)
        if delivery_method is not None:
            query = query.where(DeliveryOrder.delivery_method == delivery_method)
        if provider_code:
            query = query.where(DeliveryOrder.provider_code == provider_code)
        if customer_id is not None:
            query = query.where(DeliveryOrder.customer_id == customer_id)
        if created_from is not None:
            query = query.where(DeliveryOrder.created_at >= created_from)
        if created_to is not None:
            query = query.where(DeliveryOrder.created_at < created_to)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(DeliveryOrder.created_at.desc()).offset((page - 1) * size).limit(size)
        )
        return list(result.scalars().all()), total or 0

    async def get_timeline(self, delivery_id: uuid.UUID) -> list[DeliverySnapshot]:
        await self.get_delivery(delivery_id)
        return await self.recorder.get_delivery_timeline(delivery_id)

    async def get_latest_diff(self, delivery_id: uuid.UUID) -> dict[str, Any]:
        await self.get_delivery(delivery_id)
        return await self.recorder.diff_latest(delivery_id)

    # Mutations

    def _check_version(self, order: DeliveryOrder, expected_version: Optional[int]) -> None:
        if expected_version is not None and order.version != expected_version:
            raise ConcurrentModificationException("DeliveryOrder", order.id, expected_version, order.version)

    async def _release_vehicle(self, order: DeliveryOrder) -> Optional[uuid.UUID]:
        """Return the order's on-route vehicle to active once no open order still needs it."""
        if order.vehicle_id is None:
            return None
        vehicle = await self.db.get(DeliveryVehicle, order.vehicle_id)
        if vehicle is None or vehicle.status != VehicleStatus.ON_ROUTE:
            return None
        still_open = await self.db.scalar(
            select(func.count()).select_from(DeliveryOrder).where(
                DeliveryOrder.vehicle_id == vehicle.id,
                DeliveryOrder.id != order.id,
                DeliveryOrder.status.not_in(list(TERMINAL_STATUSES)),
            )
        )
        if still_open:
            return None
        vehicle.status = VehicleStatus.ACTIVE
        logger.info(f"Vehicle {vehicle.license_plate} released after delivery {order.id} closed")
        return vehicle.id

    async def apply_status(
        self,
        order: DeliveryOrder,
        new_status: DeliveryStatus,
        reason: Optional[str] = None,
        triggered_by: str = "system",
        triggered_event: Optional[str] = None,
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Transition `order` and record its snapshot without committing.

        Returns False for a same-status update, which writes nothing.
        Entering a terminal status cancels the order's open coordination
        tasks; failing or cancelling also releases an on-route vehicle
        that has no other open orders.
        """
        new_status = DeliveryStatus(new_status)
        if order.status == new_status:
            return False
        now = now or utcnow()
        previous = order.status

        if new_status == DeliveryStatus.CANCELLED:
            order.cancel(reason, now)
        elif new_status == DeliveryStatus.FAILED:
            order.mark_failed(reason, now)
        else:
            order.update_status(new_status, now)
            if reason:
                order.status_reason = reason

        task_ids = []
        if order.is_terminal:
            task_ids = await self.tasks.cancel_active_for_delivery(
                order.id, f"Delivery {new_status.value}: {reason or 'no reason given'}", now,
            )

        if new_status == DeliveryStatus.CANCELLED:
            details = CancelledDetails(
                previous_status=previous.value,
                reason=reason,
                cancelled_task_ids=task_ids,
                released_vehicle_id=await self._release_vehicle(order),
            )
        elif new_status == DeliveryStatus.FAILED:
            details = FailedDetails(
                previous_status=previous.value,
                reason=reason,
                cancelled_task_ids=task_ids,
                released_vehicle_id=await self._release_vehicle(order),
            )
        else:
            details = StatusChangeDetails(
                snapshot_type=SNAPSHOT_TYPE_FOR_STATUS[new_status].value,
                previous_status=previous.value,
                new_status=new_status.value,
                actual_pickup_time=order.actual_pickup_time,
                actual_delivery_time=order.actual_delivery_time,
                cancelled_task_ids=task_ids,
            )
        order.updated_at = now

        await self.recorder.record(
            order,
            SNAPSHOT_TYPE_FOR_STATUS[new_status],
            details,
            triggered_by=triggered_by,
            triggered_event=triggered_event,
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )
        record_transition(previous.value, new_status.value)
        logger.info(
            f"Delivery {order.id}: {previous.value} -> {new_status.value}",
            extra={"delivery_id": str(order.id)},
        )
        return True

    async def after_commit(self, order: DeliveryOrder, event_type: str, **extra: Any) -> None:
        await self.cache.invalidate_delivery(order.id)
        await self.publisher.publish(event_type, delivery_event(order, **extra))

    async def update_status(
        self,
        delivery_id: uuid.UUID,
        new_status: DeliveryStatus,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
        triggered_by: str = "system",
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryOrder:
        order = await self.get_delivery(delivery_id)
        self._check_version(order, expected_version)
        previous = order.status
        changed = await self.apply_status(
            order, new_status, reason,
            triggered_by=triggered_by,
            triggered_event="delivery.status_updated",
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )
        if not changed:
            return order
        await self.db.commit()
        await self.after_commit(
            order,
            STATUS_EVENTS.get(order.status, "delivery.status_updated"),
            previous_status=previous.value,
            reason=reason,
        )
        return order

    async def cancel_order(
        self,
        delivery_id: uuid.UUID,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
        triggered_by: str = "system",
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryOrder:
        """Operator cancellation; rejected unless pending or planned."""
        order = await self.get_delivery(delivery_id)
        self._check_version(order, expected_version)
        # Explicit cancel of an already-cancelled order is an error, not a no-op
        order_status = order.status
        if not order.can_cancel():
            raise OperationNotAllowedException("DeliveryOrder", order.id, "cancel", order.status)
        await self.apply_status(
            order, DeliveryStatus.CANCELLED, reason,
            triggered_by=triggered_by,
            triggered_event="delivery.cancelled",
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )
        await self.db.commit()
        await self.after_commit(order, "delivery.cancelled", previous_status=order_status.value, reason=reason)
        return order

    async def assign_vehicle(
        self,
        delivery_id: uuid.UUID,
        vehicle_id: uuid.UUID,
        route_id: Optional[uuid.UUID] = None,
        expected_version: Optional[int] = None,
        triggered_by: str = "system",
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryOrder:
        """Put the order on a fleet vehicle, optionally as part of an active route."""
        order = await self.get_delivery(delivery_id)
        self._check_version(order, expected_version)
        vehicle = await self.db.get(DeliveryVehicle, vehicle_id)
        if not vehicle:
            raise VehicleNotFoundException(vehicle_id)
        if not vehicle.is_available():
            raise VehicleUnavailableException(vehicle_id, f"vehicle status is {vehicle.status.value}")
        if route_id is not None:
            route = await self.db.get(DeliveryRoute, route_id)
            if not route:
                raise RouteNotFoundException(route_id)
            if not route.is_active:
                raise OperationNotAllowedException("DeliveryRoute", route.id, "assign orders to", route.status)
            if route.assigned_vehicle_id not in (None, vehicle_id):
                raise InvalidFieldException(
                    "vehicle_id", f"route {route.id} runs on another vehicle", str(vehicle_id),
                )

        now = now or utcnow()
        order.assign_vehicle(vehicle_id, route_id)
        order.updated_at = now
        await self.recorder.record(
            order,
            SnapshotType.ASSIGNED,
            AssignedDetails(
                vehicle_id=vehicle_id,
                route_id=order.route_id,
                previous_status=order.status.value,
                new_status=order.status.value,
            ),
            triggered_by=triggered_by,
            triggered_event="delivery.assigned",
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )
        await self.db.commit()
        await self.after_commit(order, "delivery.assigned", vehicle_id=str(vehicle_id))
        return order

    async def assign_provider(
        self,
        delivery_id: uuid.UUID,
        provider_code: str,
        expected_version: Optional[int] = None,
        triggered_by: str = "system",
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryOrder:
        """
        Hand the order to a specific provider (operator override).

        The fee is kept. Open tasks for any other provider are cancelled,
        a self-delivery order leaves its vehicle and route, and a
        manual-coordination provider gets a booking task unless one is
        already open.
        """
        order = await self.get_delivery(delivery_id)
        self._check_version(order, expected_version)
        provider = await self.registry.get(provider_code)
        if not provider.is_available_for_delivery(
            order.destination_province, order.package_weight_kg, order.same_day_required, order.cod_required,
        ):
            raise InvalidFieldException(
                "provider_code", f"provider '{provider_code}' cannot serve this delivery", provider_code,
            )

        now = now or utcnow()
        released_vehicle_id, released_route_id = order.vehicle_id, order.route_id
        order.assign_provider(provider)
        if order.vehicle_id is not None:
            released_vehicle_id = released_route_id = None
        order.updated_at = now
        task_ids = await self.tasks.cancel_active_for_delivery(
            order.id, f"Provider reassigned to {provider.code}", now, keep_provider_code=provider.code,
        )
        await self.recorder.record(
            order,
            SnapshotType.ASSIGNED,
            AssignedDetails(
                provider_code=provider.code,
                previous_status=order.status.value,
                new_status=order.status.value,
                released_vehicle_id=released_vehicle_id,
                released_route_id=released_route_id,
                cancelled_task_ids=task_ids,
            ),
            triggered_by=triggered_by,
            triggered_event="delivery.assigned",
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )

        task = None
        if provider.requires_manual_coordination:
            open_tasks = [
                t for t in await self.tasks.list_for_delivery(order.id)
                if t.is_active and t.provider_code == provider.code
            ]
            if not open_tasks:
                task = self.tasks.open_task(order, provider, now=now)

        await self.db.commit()
        await self.after_commit(order, "delivery.assigned", provider_code=provider.code)
        if task is not None:
            await self.publisher.publish("manual_task.created", task_event(task))
        return order

    async def set_tracking_info(
        self,
        delivery_id: uuid.UUID,
        tracking_number: Optional[str],
        provider_order_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        source: str = "api",
        triggered_by: str = "system",
        triggered_by_user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliveryOrder:
        order = await self.get_delivery(delivery_id)
        self._check_version(order, expected_version)
        if not order.set_tracking_info(tracking_number, provider_order_id):
            return order

        now = now or utcnow()
        order.updated_at = now
        await self.recorder.record(
            order,
            SnapshotType.PROVIDER_UPDATED,
            ProviderUpdatedDetails(
                provider_code=order.provider_code,
                tracking_number=order.tracking_number,
                provider_order_id=order.provider_order_id,
                source=source,
            ),
            triggered_by=triggered_by,
            triggered_event="delivery.tracking_updated",
            triggered_by_user_id=triggered_by_user_id,
            now=now,
        )
        await self.db.commit()
        await self.after_commit(order, "delivery.status_updated", tracking_updated=True)
        return order

    async def list_tasks(self, delivery_id: uuid.UUID) -> list[ManualCoordinationTask]:
        await self.get_delivery(delivery_id)
        return await self.tasks.list_for_delivery(delivery_id)
