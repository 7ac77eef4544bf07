"""
Tests for delivery order creation and mutations.
"""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from shipping.core.exceptions import (
    ConcurrentModificationException,
    InvalidFieldException,
    InvalidStatusTransitionException,
    NoProviderAvailableException,
    OperationNotAllowedException,
    RouteNotFoundException,
    VehicleNotFoundException,
    VehicleUnavailableException,
)
from shipping.models.delivery_order import DeliveryMethod, DeliveryStatus
from shipping.models.manual_task import TaskStatus, TaskType
from shipping.models.snapshot import SnapshotType
from shipping.models.vehicle import VehicleStatus

from conftest import NOW, make_vehicle


class TestCreateDeliveryOrder:
    """Method selection and pricing."""

    @pytest.mark.asyncio
    async def test_self_delivery_in_covered_area(self, delivery_service, lookup, coverage, providers, order_ids):
        address_id = lookup.add("Bangkok", "Dusit", postal_code="10300", distance_km="10")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        assert order.delivery_method == DeliveryMethod.SELF_DELIVERY
        assert order.provider_code is None
        assert order.delivery_fee == Decimal("100.00")
        assert order.status == DeliveryStatus.PENDING
        assert order.version == 1
        assert order.estimated_delivery_time == NOW + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_free_delivery_threshold(self, delivery_service, lookup, coverage, order_ids):
        address_id = lookup.add("Bangkok", distance_km="10")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, order_value=500, now=NOW, **order_ids,
        )
        assert order.delivery_fee == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_most_specific_area_prices_the_order(self, delivery_service, lookup, coverage, order_ids):
        address_id = lookup.add("Bangkok", "Bang Rak", postal_code="10500", distance_km="2")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=1, now=NOW, **order_ids,
        )
        assert order.delivery_fee == Decimal("40.00")
        assert order.estimated_delivery_time == NOW + timedelta(hours=8)

    @pytest.mark.asyncio
    async def test_cheapest_provider_outside_self_delivery(
        self, delivery_service, lookup, coverage, providers, order_ids,
    ):
        address_id = lookup.add("Chiang Mai", distance_km="10")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        assert order.delivery_method == DeliveryMethod.ON_DEMAND
        assert order.provider_code == "fastbike"
        assert order.delivery_fee == Decimal("140.00")
        assert order.requires_manual_coordination is False
        assert await delivery_service.list_tasks(order.id) == []

    @pytest.mark.asyncio
    async def test_manual_provider_opens_task(
        self, delivery_service, lookup, coverage, providers, publisher, order_ids,
    ):
        address_id = lookup.add("Chiang Mai", distance_km="10")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, cod_amount=250, now=NOW, **order_ids,
        )
        assert order.delivery_method == DeliveryMethod.MANUAL_CARRIER
        assert order.provider_code == "callcourier"
        assert order.delivery_fee == Decimal("160.00")
        assert order.requires_manual_coordination is True

        tasks = await delivery_service.list_tasks(order.id)
        assert len(tasks) == 1
        assert tasks[0].task_type == TaskType.PHONE_COORDINATION
        assert tasks[0].task_status == TaskStatus.PENDING
        assert "Collect on delivery" in tasks[0].task_instructions
        assert tasks[0].next_reminder_due == NOW + timedelta(minutes=30)

        assert publisher.types() == ["delivery.created", "manual_task.created"]

    @pytest.mark.asyncio
    async def test_uncovered_province_uses_any_provider(self, delivery_service, lookup, providers, order_ids):
        address_id = lookup.add("Krabi", distance_km="5")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        assert order.provider_code == "callcourier"

    @pytest.mark.asyncio
    async def test_no_provider_available(self, delivery_service, lookup, providers, publisher, order_ids):
        address_id = lookup.add("Krabi", distance_km="5")
        with pytest.raises(NoProviderAvailableException):
            await delivery_service.create_delivery_order(
                customer_address_id=address_id, package_weight_kg=5000, now=NOW, **order_ids,
            )
        assert publisher.events == []

    @pytest.mark.asyncio
    async def test_negative_weight_rejected(self, delivery_service, lookup, order_ids):
        address_id = lookup.add("Bangkok")
        with pytest.raises(InvalidFieldException):
            await delivery_service.create_delivery_order(
                customer_address_id=address_id, package_weight_kg=-1, **order_ids,
            )

    @pytest.mark.asyncio
    async def test_creation_is_snapshotted(self, delivery_service, lookup, coverage, order_ids):
        address_id = lookup.add("Bangkok")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        timeline = await delivery_service.get_timeline(order.id)
        assert [s.snapshot_type for s in timeline] == [SnapshotType.CREATED]
        assert timeline[0].details["coverage_route"] == "BKK-01"
        assert timeline[0].snapshot_data["status"] == "pending"


async def create_bangkok_order(delivery_service, lookup, order_ids):
    address_id = lookup.add("Bangkok")
    return await delivery_service.create_delivery_order(
        customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
    )


async def create_manual_order(delivery_service, lookup, order_ids):
    address_id = lookup.add("Chiang Mai")
    return await delivery_service.create_delivery_order(
        customer_address_id=address_id, package_weight_kg=2, cod_amount=100, now=NOW, **order_ids,
    )


class TestStatusUpdates:

    @pytest.mark.asyncio
    async def test_update_status_records_snapshot_and_bumps_version(
        self, delivery_service, lookup, coverage, publisher, order_ids,
    ):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.PLANNED, expected_version=1, now=NOW)
        assert order.version == 2

        timeline = await delivery_service.get_timeline(order.id)
        assert [s.snapshot_type for s in timeline] == [SnapshotType.CREATED, SnapshotType.STATUS_UPDATED]
        assert timeline[1].details["previous_status"] == "pending"
        assert timeline[1].details["new_status"] == "planned"
        assert publisher.types()[-1] == "delivery.status_updated"

    @pytest.mark.asyncio
    async def test_same_status_writes_nothing(self, delivery_service, lookup, coverage, publisher, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.PENDING)
        assert order.version == 1
        assert len(await delivery_service.get_timeline(order.id)) == 1
        assert publisher.types() == ["delivery.created"]

    @pytest.mark.asyncio
    async def test_stale_expected_version(self, delivery_service, lookup, coverage, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.PLANNED)
        with pytest.raises(ConcurrentModificationException) as exc_info:
            await delivery_service.update_status(order.id, DeliveryStatus.IN_TRANSIT, expected_version=1)
        assert exc_info.value.details["actual_version"] == 2
        assert order.status == DeliveryStatus.PLANNED

    @pytest.mark.asyncio
    async def test_invalid_transition(self, delivery_service, lookup, coverage, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        with pytest.raises(InvalidStatusTransitionException):
            await delivery_service.update_status(order.id, DeliveryStatus.DELIVERED)

    @pytest.mark.asyncio
    async def test_delivered_event_and_cache_invalidation(
        self, delivery_service, lookup, coverage, publisher, redis_store, cache, order_ids,
    ):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.get_delivery_view(order.id)
        assert cache.delivery_key(order.id) in redis_store.store

        await delivery_service.update_status(order.id, DeliveryStatus.DISPATCHED, now=NOW)
        await delivery_service.update_status(order.id, DeliveryStatus.DELIVERED, now=NOW + timedelta(hours=2))
        assert cache.delivery_key(order.id) not in redis_store.store
        assert publisher.types()[-1] == "delivery.delivered"
        assert order.actual_delivery_time == NOW + timedelta(hours=2)
        assert order.is_active is False

    @pytest.mark.asyncio
    async def test_failure_keeps_reason(self, delivery_service, lookup, coverage, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.FAILED, reason="address not found")
        assert order.status_reason == "address not found"
        diff = await delivery_service.get_latest_diff(order.id)
        assert diff["has_changes"] is True
        assert diff["changes"][0]["field"] == "status"


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_closes_open_tasks(
        self, delivery_service, lookup, coverage, providers, publisher, order_ids,
    ):
        order = await create_manual_order(delivery_service, lookup, order_ids)
        await delivery_service.cancel_order(order.id, "customer request")

        assert order.status == DeliveryStatus.CANCELLED
        tasks = await delivery_service.list_tasks(order.id)
        assert tasks[0].task_status == TaskStatus.CANCELLED

        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.snapshot_type == SnapshotType.CANCELLED
        assert latest.details["cancelled_task_ids"] == [str(tasks[0].id)]
        assert publisher.types()[-1] == "delivery.cancelled"

    @pytest.mark.asyncio
    async def test_cancel_twice_is_rejected(self, delivery_service, lookup, coverage, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.cancel_order(order.id, "duplicate order")
        with pytest.raises(OperationNotAllowedException):
            await delivery_service.cancel_order(order.id, "again")

    @pytest.mark.asyncio
    async def test_cancel_after_dispatch_rejected(self, delivery_service, lookup, coverage, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.DISPATCHED)
        with pytest.raises(OperationNotAllowedException):
            await delivery_service.cancel_order(order.id)


class TestAssignment:

    @pytest.mark.asyncio
    async def test_assign_vehicle_keeps_status(self, delivery_service, lookup, coverage, vehicle, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.assign_vehicle(order.id, vehicle.id)
        assert order.vehicle_id == vehicle.id
        assert order.status == DeliveryStatus.PENDING
        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.snapshot_type == SnapshotType.ASSIGNED

    @pytest.mark.asyncio
    async def test_assign_unknown_vehicle(self, delivery_service, lookup, coverage, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        with pytest.raises(VehicleNotFoundException):
            await delivery_service.assign_vehicle(order.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_assign_manual_provider_opens_single_task(
        self, delivery_service, lookup, coverage, providers, order_ids,
    ):
        address_id = lookup.add("Chiang Mai")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        fee = order.delivery_fee
        await delivery_service.assign_provider(order.id, "callcourier")
        await delivery_service.assign_provider(order.id, "callcourier")

        assert order.provider_code == "callcourier"
        assert order.delivery_method == DeliveryMethod.MANUAL_CARRIER
        assert order.delivery_fee == fee
        assert len(await delivery_service.list_tasks(order.id)) == 1

    @pytest.mark.asyncio
    async def test_assign_incapable_provider(self, delivery_service, lookup, coverage, providers, order_ids):
        order = await create_manual_order(delivery_service, lookup, order_ids)
        with pytest.raises(InvalidFieldException):
            await delivery_service.assign_provider(order.id, "fastbike")

    @pytest.mark.asyncio
    async def test_tracking_info_change_only(self, delivery_service, lookup, coverage, providers, order_ids):
        address_id = lookup.add("Chiang Mai")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        await delivery_service.set_tracking_info(order.id, "FB-1001")
        await delivery_service.set_tracking_info(order.id, "FB-1001")
        timeline = await delivery_service.get_timeline(order.id)
        assert [s.snapshot_type for s in timeline] == [SnapshotType.CREATED, SnapshotType.PROVIDER_UPDATED]
        assert order.version == 2


class TestListing:

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, delivery_service, lookup, coverage, providers, order_ids):
        await create_bangkok_order(delivery_service, lookup, order_ids)
        await create_bangkok_order(delivery_service, lookup, order_ids)
        await create_manual_order(delivery_service, lookup, order_ids)

        items, total = await delivery_service.list_deliveries(delivery_method=DeliveryMethod.SELF_DELIVERY)
        assert total == 2
        items, total = await delivery_service.list_deliveries(provider_code="callcourier")
        assert total == 1
        items, total = await delivery_service.list_deliveries(page=2, size=2)
        assert total == 3
        assert len(items) == 1


class TestTerminalStatus:
    """Side effects of entering delivered, failed or cancelled."""

    @pytest.mark.asyncio
    async def test_failure_closes_open_tasks(
        self, delivery_service, task_service, lookup, coverage, providers, order_ids,
    ):
        order = await create_manual_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(
            order.id, DeliveryStatus.FAILED, reason="customer unreachable", now=NOW + timedelta(hours=1),
        )

        tasks = await delivery_service.list_tasks(order.id)
        assert tasks[0].task_status == TaskStatus.CANCELLED
        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.snapshot_type == SnapshotType.FAILED
        assert latest.details["cancelled_task_ids"] == [str(tasks[0].id)]

        # Nothing left for the sweep to chase
        result = await task_service.run_sweep(NOW + timedelta(hours=5))
        assert result == {"reminders_sent": 0, "overdue_alerts": 0}

    @pytest.mark.asyncio
    async def test_delivery_closes_open_tasks(self, delivery_service, lookup, coverage, providers, order_ids):
        order = await create_manual_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.DISPATCHED, now=NOW)
        tasks = await delivery_service.list_tasks(order.id)
        assert tasks[0].task_status == TaskStatus.PENDING

        await delivery_service.update_status(order.id, DeliveryStatus.DELIVERED, now=NOW + timedelta(hours=3))
        assert tasks[0].task_status == TaskStatus.CANCELLED
        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.snapshot_type == SnapshotType.DELIVERED
        assert latest.details["cancelled_task_ids"] == [str(tasks[0].id)]

    @pytest.mark.asyncio
    async def test_repeated_delivered_is_noop(self, delivery_service, lookup, coverage, publisher, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.update_status(order.id, DeliveryStatus.DISPATCHED, now=NOW)
        await delivery_service.update_status(order.id, DeliveryStatus.DELIVERED, now=NOW + timedelta(hours=2))
        version = order.version
        timeline_length = len(await delivery_service.get_timeline(order.id))

        await delivery_service.update_status(order.id, DeliveryStatus.DELIVERED, now=NOW + timedelta(hours=6))
        assert order.version == version
        assert order.actual_delivery_time == NOW + timedelta(hours=2)
        assert len(await delivery_service.get_timeline(order.id)) == timeline_length
        assert publisher.types().count("delivery.delivered") == 1

    @pytest.mark.asyncio
    async def test_failure_releases_on_route_vehicle(
        self, delivery_service, db_session, lookup, coverage, vehicle, order_ids,
    ):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        await delivery_service.assign_vehicle(order.id, vehicle.id)
        await delivery_service.update_status(order.id, DeliveryStatus.DISPATCHED, now=NOW)
        vehicle.status = VehicleStatus.ON_ROUTE
        await db_session.commit()

        await delivery_service.update_status(order.id, DeliveryStatus.FAILED, reason="gate locked")
        assert vehicle.status == VehicleStatus.ACTIVE
        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.details["released_vehicle_id"] == str(vehicle.id)

    @pytest.mark.asyncio
    async def test_vehicle_kept_while_other_orders_open(
        self, delivery_service, db_session, lookup, coverage, vehicle, order_ids,
    ):
        first = await create_bangkok_order(delivery_service, lookup, order_ids)
        second = await create_bangkok_order(delivery_service, lookup, order_ids)
        for order in (first, second):
            await delivery_service.assign_vehicle(order.id, vehicle.id)
            await delivery_service.update_status(order.id, DeliveryStatus.DISPATCHED, now=NOW)
        vehicle.status = VehicleStatus.ON_ROUTE
        await db_session.commit()

        await delivery_service.update_status(first.id, DeliveryStatus.FAILED, reason="gate locked")
        assert vehicle.status == VehicleStatus.ON_ROUTE
        latest = (await delivery_service.get_timeline(first.id))[-1]
        assert latest.details["released_vehicle_id"] is None


class TestReassignment:

    @pytest.mark.asyncio
    async def test_switching_away_from_manual_provider_cancels_its_task(
        self, delivery_service, lookup, coverage, providers, order_ids,
    ):
        address_id = lookup.add("Chiang Mai")
        order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        await delivery_service.assign_provider(order.id, "callcourier", now=NOW)
        tasks = await delivery_service.list_tasks(order.id)
        assert [t.task_status for t in tasks] == [TaskStatus.PENDING]

        await delivery_service.assign_provider(order.id, "fastbike", now=NOW + timedelta(minutes=10))
        assert order.delivery_method == DeliveryMethod.ON_DEMAND
        assert order.requires_manual_coordination is False
        assert tasks[0].task_status == TaskStatus.CANCELLED

        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.snapshot_type == SnapshotType.ASSIGNED
        assert latest.details["provider_code"] == "fastbike"
        assert latest.details["cancelled_task_ids"] == [str(tasks[0].id)]

    @pytest.mark.asyncio
    async def test_self_delivery_handed_to_carrier_leaves_fleet(
        self, delivery_service, route_planner, lookup, coverage, providers, vehicle, order_ids,
    ):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        route = await route_planner.create_route("BKK-01 morning", NOW.date(), now=NOW)
        await route_planner.assign_vehicle(route.id, vehicle.id)
        await delivery_service.assign_vehicle(order.id, vehicle.id, route_id=route.id)

        await delivery_service.assign_provider(order.id, "bigtruck")
        assert order.provider_code == "bigtruck"
        assert order.vehicle_id is None
        assert order.route_id is None

        latest = (await delivery_service.get_timeline(order.id))[-1]
        assert latest.details["released_vehicle_id"] == str(vehicle.id)
        assert latest.details["released_route_id"] == str(route.id)
        assert latest.details["cancelled_task_ids"] == []


class TestVehicleChecks:

    @pytest.mark.asyncio
    async def test_vehicle_in_maintenance_rejected(self, delivery_service, db_session, lookup, coverage, order_ids):
        broken = make_vehicle(status=VehicleStatus.MAINTENANCE)
        db_session.add(broken)
        await db_session.commit()
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        with pytest.raises(VehicleUnavailableException):
            await delivery_service.assign_vehicle(order.id, broken.id)
        assert order.vehicle_id is None

    @pytest.mark.asyncio
    async def test_unknown_route_rejected(self, delivery_service, lookup, coverage, vehicle, order_ids):
        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        with pytest.raises(RouteNotFoundException):
            await delivery_service.assign_vehicle(order.id, vehicle.id, route_id=uuid.uuid4())
        assert order.vehicle_id is None

    @pytest.mark.asyncio
    async def test_route_on_another_vehicle_rejected(
        self, delivery_service, route_planner, db_session, lookup, coverage, vehicle, order_ids,
    ):
        other = make_vehicle()
        db_session.add(other)
        await db_session.commit()
        route = await route_planner.create_route("BKK-01 morning", NOW.date(), now=NOW)
        await route_planner.assign_vehicle(route.id, vehicle.id)

        order = await create_bangkok_order(delivery_service, lookup, order_ids)
        with pytest.raises(InvalidFieldException):
            await delivery_service.assign_vehicle(order.id, other.id, route_id=route.id)
