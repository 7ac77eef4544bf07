"""
Tests for route planning, fleet administration and route execution.
"""
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from shipping.core.exceptions import (
    DuplicateResourceException,
    InvalidFieldException,
    OperationNotAllowedException,
    VehicleUnavailableException,
)
from shipping.models.delivery_order import DeliveryStatus
from shipping.models.delivery_route import RouteStatus
from shipping.models.snapshot import SnapshotType
from shipping.models.vehicle import VehicleStatus, VehicleType
from shipping.services.fleet import FleetService
from shipping.services.route_planner import business_today

from conftest import NOW, make_vehicle

ROUTE_DATE = date(2026, 3, 2)


@pytest_asyncio.fixture
async def bangkok_orders(delivery_service, lookup, coverage, order_ids):
    orders = []
    for distance in ("3", "7"):
        address_id = lookup.add("Bangkok", distance_km=distance)
        orders.append(await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        ))
    return orders


@pytest_asyncio.fixture
async def route(route_planner, vehicle):
    created = await route_planner.create_route("BKK-01 morning", ROUTE_DATE, now=NOW)
    return await route_planner.assign_vehicle(created.id, vehicle.id)


class TestBusinessToday:

    def test_uses_business_timezone(self):
        assert business_today(datetime(2026, 3, 1, 18, 0)) == date(2026, 3, 2)


class TestFleet:

    @pytest.mark.asyncio
    async def test_register_and_duplicate_plate(self, db_session):
        fleet = FleetService(db_session)
        vehicle = await fleet.register_vehicle({
            "license_plate": "2KT-9001",
            "vehicle_type": VehicleType.MOTORCYCLE,
            "max_weight_kg": Decimal("30"),
        })
        assert vehicle.status == VehicleStatus.ACTIVE
        with pytest.raises(DuplicateResourceException):
            await fleet.register_vehicle({
                "license_plate": "2KT-9001",
                "vehicle_type": VehicleType.CAR,
                "max_weight_kg": Decimal("300"),
            })

    @pytest.mark.asyncio
    async def test_capacity_must_be_positive(self, db_session):
        with pytest.raises(InvalidFieldException):
            await FleetService(db_session).register_vehicle({
                "license_plate": "3KT-1",
                "vehicle_type": VehicleType.VAN,
                "max_weight_kg": Decimal("0"),
            })

    @pytest.mark.asyncio
    async def test_on_route_is_not_set_by_hand(self, db_session, vehicle):
        with pytest.raises(InvalidFieldException):
            await FleetService(db_session).set_status(vehicle.id, VehicleStatus.ON_ROUTE)

    @pytest.mark.asyncio
    async def test_list_and_search(self, db_session, vehicle):
        db_session.add(make_vehicle(license_plate="9ZZ-0001", status=VehicleStatus.MAINTENANCE))
        await db_session.commit()
        fleet = FleetService(db_session)

        items, total = await fleet.list_vehicles(status=VehicleStatus.MAINTENANCE)
        assert total == 1
        items, total = await fleet.list_vehicles(search="9ZZ")
        assert [v.license_plate for v in items] == ["9ZZ-0001"]

    @pytest.mark.asyncio
    async def test_maintenance_mode_round_trip(self, db_session, vehicle):
        fleet = FleetService(db_session)
        await fleet.set_maintenance_mode(vehicle.id, True)
        assert vehicle.status == VehicleStatus.MAINTENANCE
        assert vehicle.is_available() is False

        await fleet.set_maintenance_mode(vehicle.id, False, today=ROUTE_DATE)
        assert vehicle.status == VehicleStatus.ACTIVE
        assert vehicle.last_maintenance_date == ROUTE_DATE

    @pytest.mark.asyncio
    async def test_maintenance_refused_while_on_route(self, route_planner, route, vehicle):
        await route_planner.start_route(route.id, now=NOW)
        with pytest.raises(VehicleUnavailableException):
            await FleetService(route_planner.db).set_maintenance_mode(vehicle.id, True)
        assert vehicle.status == VehicleStatus.ON_ROUTE

    @pytest.mark.asyncio
    async def test_assign_and_unassign_driver(self, db_session, vehicle):
        fleet = FleetService(db_session)
        driver_id = uuid.uuid4()
        await fleet.assign_driver(vehicle.id, driver_id)
        assert vehicle.driver_id == driver_id

        await fleet.unassign_driver(vehicle.id)
        assert vehicle.driver_id is None
        with pytest.raises(InvalidFieldException):
            await fleet.unassign_driver(vehicle.id)

    @pytest.mark.asyncio
    async def test_driver_needs_active_vehicle(self, db_session, vehicle):
        fleet = FleetService(db_session)
        await fleet.set_maintenance_mode(vehicle.id, True)
        with pytest.raises(VehicleUnavailableException):
            await fleet.assign_driver(vehicle.id, uuid.uuid4())


class TestRoutePlanning:

    @pytest.mark.asyncio
    async def test_past_date_rejected(self, route_planner):
        with pytest.raises(InvalidFieldException):
            await route_planner.create_route("late", ROUTE_DATE - timedelta(days=1), now=NOW)

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, route_planner):
        with pytest.raises(InvalidFieldException):
            await route_planner.create_route("  ", ROUTE_DATE, now=NOW)

    @pytest.mark.asyncio
    async def test_vehicle_serves_one_active_route(self, route_planner, route, vehicle):
        other = await route_planner.create_route("BKK-01 afternoon", ROUTE_DATE, now=NOW)
        with pytest.raises(VehicleUnavailableException):
            await route_planner.assign_vehicle(other.id, vehicle.id)

    @pytest.mark.asyncio
    async def test_vehicle_in_maintenance_unavailable(self, route_planner, db_session):
        broken = make_vehicle(status=VehicleStatus.MAINTENANCE)
        db_session.add(broken)
        await db_session.commit()
        created = await route_planner.create_route("BKK-02", ROUTE_DATE, now=NOW)
        with pytest.raises(VehicleUnavailableException):
            await route_planner.assign_vehicle(created.id, broken.id)

    @pytest.mark.asyncio
    async def test_set_planning_validates_window(self, route_planner, route):
        start = datetime(2026, 3, 2, 1, 0)
        with pytest.raises(InvalidFieldException):
            await route_planner.set_planning(route.id, start, start, 20, 2)
        planned = await route_planner.set_planning(
            route.id, start, start + timedelta(hours=5), "42.5", 12, {"solver": "external"},
        )
        assert planned.total_planned_distance_km == Decimal("42.5")
        assert planned.route_optimization_data == {"solver": "external"}

    @pytest.mark.asyncio
    async def test_add_orders_plans_them(self, route_planner, route, bangkok_orders, vehicle, publisher):
        orders = await route_planner.add_orders(route.id, [o.id for o in bangkok_orders], now=NOW)
        assert all(o.status == DeliveryStatus.PLANNED for o in orders)
        assert all(o.vehicle_id == vehicle.id and o.route_id == route.id for o in orders)
        assert route.total_planned_orders == 2
        assert publisher.types().count("delivery.assigned") == 2

        timeline = await route_planner.deliveries.get_timeline(orders[0].id)
        assert timeline[-1].snapshot_type == SnapshotType.ASSIGNED
        assert timeline[-1].details["new_status"] == "planned"

    @pytest.mark.asyncio
    async def test_add_orders_requires_vehicle(self, route_planner, bangkok_orders):
        created = await route_planner.create_route("unassigned", ROUTE_DATE, now=NOW)
        with pytest.raises(OperationNotAllowedException):
            await route_planner.add_orders(created.id, [bangkok_orders[0].id])

    @pytest.mark.asyncio
    async def test_add_orders_rejects_carrier_orders(
        self, route_planner, route, delivery_service, lookup, providers, order_ids,
    ):
        address_id = lookup.add("Chiang Mai")
        carrier_order = await delivery_service.create_delivery_order(
            customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
        )
        with pytest.raises(InvalidFieldException):
            await route_planner.add_orders(route.id, [carrier_order.id])


class TestRouteExecution:

    @pytest.mark.asyncio
    async def test_start_and_complete(self, route_planner, route, bangkok_orders, vehicle, publisher):
        await route_planner.add_orders(route.id, [o.id for o in bangkok_orders], now=NOW)

        started_at = NOW + timedelta(hours=1)
        await route_planner.start_route(route.id, now=started_at)
        assert route.status == RouteStatus.IN_PROGRESS
        assert route.actual_start_time == started_at
        assert vehicle.status == VehicleStatus.ON_ROUTE
        for order in bangkok_orders:
            assert order.status == DeliveryStatus.IN_TRANSIT
            assert order.actual_pickup_time == started_at
        assert "route.started" in publisher.types()

        with pytest.raises(VehicleUnavailableException):
            await FleetService(route_planner.db).set_status(vehicle.id, VehicleStatus.MAINTENANCE)

        await route_planner.complete_route(route.id, "18.4", 2, now=NOW + timedelta(hours=4))
        assert route.status == RouteStatus.COMPLETED
        assert route.get_efficiency() == 100.0
        assert route.get_duration() == timedelta(hours=3)
        assert vehicle.status == VehicleStatus.ACTIVE
        assert publisher.of_type("route.completed")[0]["efficiency"] == 100.0

    @pytest.mark.asyncio
    async def test_start_unassigned_route(self, route_planner):
        created = await route_planner.create_route("no vehicle", ROUTE_DATE, now=NOW)
        with pytest.raises(OperationNotAllowedException):
            await route_planner.start_route(created.id)

    @pytest.mark.asyncio
    async def test_complete_requires_start(self, route_planner, route):
        with pytest.raises(OperationNotAllowedException):
            await route_planner.complete_route(route.id, 10, 1)

    @pytest.mark.asyncio
    async def test_cancel_releases_planned_orders(self, route_planner, route, bangkok_orders):
        await route_planner.add_orders(route.id, [o.id for o in bangkok_orders], now=NOW)
        await route_planner.cancel_route(route.id, "driver sick", now=NOW)

        assert route.status == RouteStatus.CANCELLED
        assert route.notes == "driver sick"
        for order in bangkok_orders:
            assert order.route_id is None
            assert order.vehicle_id is None
        assert await route_planner.orders_on_route(route.id) == []

    @pytest.mark.asyncio
    async def test_cancel_in_progress_frees_vehicle(self, route_planner, route, vehicle):
        await route_planner.start_route(route.id, now=NOW)
        await route_planner.cancel_route(route.id, now=NOW)
        assert vehicle.status == VehicleStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_completed_route_cannot_be_cancelled(self, route_planner, route):
        await route_planner.start_route(route.id, now=NOW)
        await route_planner.complete_route(route.id, 0, 0, now=NOW)
        with pytest.raises(OperationNotAllowedException):
            await route_planner.cancel_route(route.id)

    @pytest.mark.asyncio
    async def test_list_routes(self, route_planner, route):
        await route_planner.create_route("BKK-01 afternoon", ROUTE_DATE, now=NOW)
        assert len(await route_planner.list_routes(route_date=ROUTE_DATE)) == 2
        planned = await route_planner.list_routes(status=RouteStatus.PLANNED)
        assert [r.route_name for r in planned] == ["BKK-01 afternoon", "BKK-01 morning"]

    @pytest.mark.asyncio
    async def test_list_routes_by_vehicle_driver_and_activity(self, route_planner, route, vehicle, db_session):
        spare = make_vehicle()
        db_session.add(spare)
        await db_session.commit()
        driver_id = uuid.uuid4()
        evening = await route_planner.create_route("BKK-01 evening", ROUTE_DATE, now=NOW)
        await route_planner.assign_vehicle(evening.id, spare.id, driver_id)

        assert [r.id for r in await route_planner.list_routes(vehicle_id=vehicle.id)] == [route.id]
        assert [r.id for r in await route_planner.list_routes(driver_id=driver_id)] == [evening.id]

        await route_planner.cancel_route(evening.id, now=NOW)
        active = await route_planner.list_routes(active_only=True)
        assert [r.id for r in active] == [route.id]
        assert len(await route_planner.list_routes()) == 2
