"""
API endpoint tests.
"""
import json
import time
import uuid
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from shipping.core.config import settings
from shipping.core.redis import redis_client
from shipping.services.event_publisher import EventPublisher

from conftest import NOW

API = "/api/v1"


def delivery_payload(address_id: uuid.UUID, **overrides) -> dict:
    data = {
        "order_id": str(uuid.uuid4()),
        "customer_id": str(uuid.uuid4()),
        "customer_address_id": str(address_id),
        "package_weight_kg": "2",
    }
    data.update(overrides)
    return data


async def create_delivery(client: AsyncClient, lookup, province: str = "Bangkok", **overrides) -> dict:
    response = await client.post(f"{API}/deliveries", json=delivery_payload(lookup.add(province), **overrides))
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test basic health check."""
        response = await client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": settings.APP_VERSION}

    @pytest.mark.asyncio
    async def test_detailed_health_check(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr(redis_client, "health_check", AsyncMock(return_value=False))
        response = await client.get(f"{API}/health/detailed")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"] == "healthy"
        assert data["checks"]["redis"] == "unhealthy"
        assert data["status"] == "degraded"


class TestDeliveryEndpoints:
    """Tests for delivery order endpoints."""

    @pytest.mark.asyncio
    async def test_create_self_delivery(self, client: AsyncClient, lookup, coverage, publisher):
        data = await create_delivery(client, lookup)
        assert data["delivery_method"] == "self_delivery"
        assert data["status"] == "pending"
        assert data["delivery_fee"] == "100.00"
        assert data["version"] == 1
        assert data["destination_province"] == "Bangkok"
        assert publisher.types() == ["delivery.created"]

    @pytest.mark.asyncio
    async def test_create_rejects_negative_weight(self, client: AsyncClient, lookup, coverage):
        response = await client.post(
            f"{API}/deliveries",
            json=delivery_payload(lookup.add("Bangkok"), package_weight_kg="-1"),
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "REQUEST_VALIDATION_ERROR"
        assert error["kind"] == "validation"

    @pytest.mark.asyncio
    async def test_create_without_provider(self, client: AsyncClient, lookup, coverage, providers):
        response = await client.post(
            f"{API}/deliveries",
            json=delivery_payload(lookup.add("Chiang Mai"), package_weight_kg="5000"),
        )
        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "NO_PROVIDER_AVAILABLE"
        assert error["kind"] == "configuration"

    @pytest.mark.asyncio
    async def test_get_delivery_is_cached(self, client: AsyncClient, lookup, coverage, redis_store):
        created = await create_delivery(client, lookup)
        response = await client.get(f"{API}/deliveries/{created['id']}")
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]
        assert f"shipping:delivery:{created['id']}" in redis_store.store

    @pytest.mark.asyncio
    async def test_get_unknown_delivery(self, client: AsyncClient):
        response = await client.get(f"{API}/deliveries/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"]["kind"] == "not_found"

    @pytest.mark.asyncio
    async def test_list_deliveries(self, client: AsyncClient, lookup, coverage, providers):
        await create_delivery(client, lookup)
        await create_delivery(client, lookup, province="Chiang Mai")

        response = await client.get(f"{API}/deliveries", params={"delivery_method": "on_demand"})
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["provider_code"] == "fastbike"

        response = await client.get(f"{API}/deliveries", params={"size": 1})
        assert response.json()["total"] == 2
        assert len(response.json()["items"]) == 1

    @pytest.mark.asyncio
    async def test_status_update_and_cache_invalidation(self, client: AsyncClient, lookup, coverage, redis_store):
        created = await create_delivery(client, lookup)
        await client.get(f"{API}/deliveries/{created['id']}")

        response = await client.post(
            f"{API}/deliveries/{created['id']}/status",
            json={"status": "dispatched", "expected_version": 1},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "dispatched"
        assert response.json()["version"] == 2
        assert f"shipping:delivery:{created['id']}" not in redis_store.store

    @pytest.mark.asyncio
    async def test_stale_version_conflict(self, client: AsyncClient, lookup, coverage):
        created = await create_delivery(client, lookup)
        await client.post(f"{API}/deliveries/{created['id']}/status", json={"status": "planned"})

        response = await client.post(
            f"{API}/deliveries/{created['id']}/status",
            json={"status": "dispatched", "expected_version": 1},
        )
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "CONCURRENT_MODIFICATION"
        assert error["kind"] == "conflict"
        assert error["details"]["actual_version"] == 2

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client: AsyncClient, lookup, coverage):
        created = await create_delivery(client, lookup)
        response = await client.post(f"{API}/deliveries/{created['id']}/status", json={"status": "delivered"})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"
        assert response.json()["error"]["kind"] == "state"

    @pytest.mark.asyncio
    async def test_cancel(self, client: AsyncClient, lookup, coverage):
        created = await create_delivery(client, lookup)
        response = await client.post(
            f"{API}/deliveries/{created['id']}/cancel",
            json={"reason": "customer changed mind"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["is_active"] is False

    @pytest.mark.asyncio
    async def test_cancel_after_dispatch(self, client: AsyncClient, lookup, coverage):
        created = await create_delivery(client, lookup)
        await client.post(f"{API}/deliveries/{created['id']}/status", json={"status": "dispatched"})

        response = await client.post(f"{API}/deliveries/{created['id']}/cancel", json={})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "OPERATION_NOT_ALLOWED"

    @pytest.mark.asyncio
    async def test_timeline_and_diff(self, client: AsyncClient, lookup, coverage):
        created = await create_delivery(client, lookup)
        await client.post(f"{API}/deliveries/{created['id']}/status", json={"status": "planned"})

        response = await client.get(f"{API}/deliveries/{created['id']}/timeline")
        assert response.status_code == 200
        timeline = response.json()
        assert timeline["total"] == 2
        assert [s["snapshot_type"] for s in timeline["items"]] == ["created", "status_updated"]

        response = await client.get(f"{API}/deliveries/{created['id']}/timeline/diff")
        assert response.status_code == 200
        diff = response.json()
        assert diff["has_changes"] is True
        assert {"field": "status", "previous": "pending", "current": "planned"} in diff["changes"]

    @pytest.mark.asyncio
    async def test_tracking_update(self, client: AsyncClient, lookup, providers):
        created = await create_delivery(client, lookup, province="Chiang Mai")
        response = await client.post(
            f"{API}/deliveries/{created['id']}/tracking",
            json={"tracking_number": "FB-2002"},
        )
        assert response.status_code == 200
        assert response.json()["tracking_number"] == "FB-2002"

    @pytest.mark.asyncio
    async def test_track_by_number(self, client: AsyncClient, lookup, providers):
        created = await create_delivery(client, lookup, province="Chiang Mai")
        await client.post(f"{API}/deliveries/{created['id']}/tracking", json={"tracking_number": "FB-3003"})

        response = await client.get(f"{API}/deliveries/track/FB-3003")
        assert response.status_code == 200
        data = response.json()
        assert data["delivery_id"] == created["id"]
        assert data["is_delayed"] is False
        assert [u["snapshot_type"] for u in data["updates"]] == ["created", "provider_updated"]

        response = await client.get(f"{API}/deliveries/track/FB-0000")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TRACKING_NUMBER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_delayed_deliveries(self, client: AsyncClient, delivery_service, lookup, coverage, order_ids):
        # Created at a fixed past instant, so its estimate has already passed
        late = await delivery_service.create_delivery_order(
            customer_address_id=lookup.add("Bangkok"), package_weight_kg=2, now=NOW, **order_ids,
        )
        await create_delivery(client, lookup)

        response = await client.get(f"{API}/deliveries/delayed")
        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == [str(late.id)]

    @pytest.mark.asyncio
    async def test_delivery_metrics(self, client: AsyncClient, delivery_service, lookup, coverage, order_ids):
        await delivery_service.create_delivery_order(
            customer_address_id=lookup.add("Bangkok"), package_weight_kg=2, now=NOW, **order_ids,
        )
        params = {"start": (NOW - timedelta(hours=1)).isoformat(), "end": (NOW + timedelta(hours=1)).isoformat()}
        response = await client.get(f"{API}/deliveries/metrics", params=params)
        assert response.status_code == 200
        data = response.json()
        assert data["total_deliveries"] == 1
        assert data["by_status"]["pending"] == 1
        assert Decimal(data["total_delivery_fees"]) == Decimal("100")
        assert data["average_delivery_hours"] is None

        response = await client.get(
            f"{API}/deliveries/metrics", params={"start": params["end"], "end": params["start"]},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_FIELD"

    @pytest.mark.asyncio
    async def test_assign_vehicle_in_maintenance(self, client: AsyncClient, lookup, coverage, vehicle):
        created = await create_delivery(client, lookup)
        response = await client.post(f"{API}/vehicles/{vehicle.id}/maintenance", json={"enable": True})
        assert response.status_code == 200
        assert response.json()["status"] == "maintenance"

        response = await client.post(
            f"{API}/deliveries/{created['id']}/assign-vehicle", json={"vehicle_id": str(vehicle.id)},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "VEHICLE_UNAVAILABLE"


class TestTaskEndpoints:
    """Manual coordination through the API."""

    @pytest.mark.asyncio
    async def test_manual_delivery_task_flow(self, client: AsyncClient, lookup, providers):
        created = await create_delivery(client, lookup, province="Chiang Mai", cod_amount="100")
        assert created["provider_code"] == "callcourier"
        assert created["requires_manual_coordination"] is True

        response = await client.get(f"{API}/deliveries/{created['id']}/tasks")
        tasks = response.json()
        assert len(tasks) == 1
        assert tasks[0]["task_type"] == "phone_coordination"
        task_id = tasks[0]["id"]

        response = await client.get(f"{API}/tasks/statistics")
        assert response.json()["pending"] == 1

        response = await client.get(f"{API}/tasks/pending", params={"provider_code": "callcourier"})
        assert [t["id"] for t in response.json()] == [task_id]

        response = await client.post(
            f"{API}/tasks/{task_id}/complete",
            json={"completion_notes": "booked by phone", "external_reference": "CC-1"},
        )
        assert response.status_code == 200
        assert response.json()["task_status"] == "completed"

        response = await client.get(f"{API}/deliveries/{created['id']}")
        assert response.json()["tracking_number"] == "CC-1"

        response = await client.post(
            f"{API}/tasks/{task_id}/complete",
            json={"completion_notes": "again"},
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_complete_requires_notes(self, client: AsyncClient):
        response = await client.post(f"{API}/tasks/{uuid.uuid4()}/complete", json={"completion_notes": " "})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_task(self, client: AsyncClient):
        response = await client.get(f"{API}/tasks/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TASK_NOT_FOUND"


class TestReferenceDataEndpoints:
    """Providers, coverage and vehicles."""

    @pytest.mark.asyncio
    async def test_quote(self, client: AsyncClient, providers):
        response = await client.post(
            f"{API}/providers/quote",
            json={"province": "Chiang Mai", "weight_kg": "2", "distance_km": "10"},
        )
        assert response.status_code == 200
        data = response.json()
        assert [i["code"] for i in data["items"]] == ["fastbike", "callcourier", "bigtruck"]
        assert data["cheapest"]["code"] == "fastbike"
        assert data["cheapest"]["fee"] == "140.00"

    @pytest.mark.asyncio
    async def test_get_unknown_provider(self, client: AsyncClient):
        response = await client.get(f"{API}/providers/ghost")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_resolve_coverage(self, client: AsyncClient, coverage):
        response = await client.get(
            f"{API}/coverage/resolve",
            params={"province": "Bangkok", "district": "Bang Rak"},
        )
        assert response.status_code == 200
        assert response.json()["delivery_route"] == "BKK-CBD"

        response = await client.get(f"{API}/coverage/resolve", params={"province": "Krabi"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "COVERAGE_AREA_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_coverage_info(self, client: AsyncClient, coverage):
        response = await client.get(f"{API}/coverage/Chiang Mai")
        assert response.status_code == 200
        data = response.json()
        assert data["is_self_delivery"] is False
        assert data["delivery_zone"] == "north"

    @pytest.mark.asyncio
    async def test_create_vehicle_and_duplicate(self, client: AsyncClient):
        payload = {"license_plate": "5KT-1234", "vehicle_type": "van", "max_weight_kg": "800"}
        response = await client.post(f"{API}/vehicles", json=payload)
        assert response.status_code == 201
        assert response.json()["status"] == "active"

        response = await client.post(f"{API}/vehicles", json=payload)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_RESOURCE"

    @pytest.mark.asyncio
    async def test_vehicle_status(self, client: AsyncClient, vehicle):
        response = await client.post(
            f"{API}/vehicles/{vehicle.id}/status",
            json={"status": "maintenance", "notes": "brakes"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "maintenance"

    @pytest.mark.asyncio
    async def test_coverage_stats(self, client: AsyncClient, coverage):
        response = await client.get(f"{API}/coverage/stats")
        assert response.status_code == 200
        data = response.json()
        assert data["total_areas"] == 3
        assert data["self_delivery_areas"] == 2
        assert data["provinces_covered"] == {"Bangkok": 2, "Chiang Mai": 1}

    @pytest.mark.asyncio
    async def test_vehicle_driver_assignment(self, client: AsyncClient, vehicle):
        driver_id = str(uuid.uuid4())
        response = await client.post(f"{API}/vehicles/{vehicle.id}/driver", json={"driver_id": driver_id})
        assert response.status_code == 200
        assert response.json()["driver_id"] == driver_id

        response = await client.delete(f"{API}/vehicles/{vehicle.id}/driver")
        assert response.status_code == 200
        assert response.json()["driver_id"] is None

        response = await client.delete(f"{API}/vehicles/{vehicle.id}/driver")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_maintenance_mode_off_stamps_date(self, client: AsyncClient, vehicle):
        await client.post(f"{API}/vehicles/{vehicle.id}/maintenance", json={"enable": True})
        response = await client.post(f"{API}/vehicles/{vehicle.id}/maintenance", json={"enable": False})
        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert response.json()["last_maintenance_date"] is not None


class TestRouteEndpoints:

    @pytest.mark.asyncio
    async def test_plan_and_start_route(self, client: AsyncClient, lookup, coverage, vehicle):
        delivery = await create_delivery(client, lookup)
        route_date = (date.today() + timedelta(days=7)).isoformat()

        response = await client.post(f"{API}/routes", json={"route_name": "BKK-01", "route_date": route_date})
        assert response.status_code == 201
        route_id = response.json()["id"]

        response = await client.post(f"{API}/routes/{route_id}/assign-vehicle", json={"vehicle_id": str(vehicle.id)})
        assert response.status_code == 200

        response = await client.post(f"{API}/routes/{route_id}/orders", json={"delivery_ids": [delivery["id"]]})
        assert response.status_code == 200
        assert response.json()[0]["status"] == "planned"

        response = await client.get(f"{API}/routes/{route_id}")
        assert response.json()["delivery_ids"] == [delivery["id"]]

        response = await client.post(f"{API}/routes/{route_id}/start")
        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"

    @pytest.mark.asyncio
    async def test_route_in_the_past(self, client: AsyncClient):
        response = await client.post(
            f"{API}/routes",
            json={"route_name": "late", "route_date": (date.today() - timedelta(days=3)).isoformat()},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_FIELD"

    @pytest.mark.asyncio
    async def test_list_routes_filters(self, client: AsyncClient, vehicle):
        route_date = (date.today() + timedelta(days=7)).isoformat()
        first = (await client.post(f"{API}/routes", json={"route_name": "BKK-01", "route_date": route_date})).json()
        second = (await client.post(f"{API}/routes", json={"route_name": "BKK-02", "route_date": route_date})).json()
        await client.post(f"{API}/routes/{first['id']}/assign-vehicle", json={"vehicle_id": str(vehicle.id)})
        await client.post(f"{API}/routes/{second['id']}/cancel", json={})

        response = await client.get(f"{API}/routes", params={"vehicle_id": str(vehicle.id)})
        assert [r["id"] for r in response.json()] == [first["id"]]
        response = await client.get(f"{API}/routes", params={"active_only": "true"})
        assert [r["id"] for r in response.json()] == [first["id"]]


class TestCarrierWebhookEndpoint:

    @pytest.mark.asyncio
    async def test_unsigned_callback_rejected(self, client: AsyncClient, providers, monkeypatch):
        monkeypatch.setattr(settings, "CARRIER_WEBHOOK_SECRETS", {"fastbike": "s3cret"})
        response = await client.post(
            f"{API}/webhooks/carriers/fastbike",
            content=json.dumps({"event_id": "e1", "status": "delivered"}),
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_WEBHOOK_SIGNATURE"

    @pytest.mark.asyncio
    async def test_signed_callback_applied(self, client: AsyncClient, lookup, providers, monkeypatch):
        monkeypatch.setattr(settings, "CARRIER_WEBHOOK_SECRETS", {"fastbike": "s3cret"})
        created = await create_delivery(client, lookup, province="Chiang Mai")
        await client.post(f"{API}/deliveries/{created['id']}/tracking", json={"tracking_number": "FB-3003"})

        body = json.dumps({"event_id": "e1", "status": "picked_up", "tracking_number": "FB-3003"})
        ts = int(time.time())
        signature = EventPublisher.generate_signature("s3cret", body, ts)
        response = await client.post(
            f"{API}/webhooks/carriers/fastbike",
            content=body,
            headers={"X-Webhook-Timestamp": str(ts), "X-Webhook-Signature": f"sha256={signature}"},
        )
        assert response.status_code == 200
        assert response.json()["outcome"] == "applied"

        response = await client.get(f"{API}/deliveries/{created['id']}")
        assert response.json()["status"] == "dispatched"
