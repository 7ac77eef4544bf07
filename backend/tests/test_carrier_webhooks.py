"""
Tests for carrier webhook verification, deduplication and status mapping.
"""
import json
import time
from typing import Optional

import pytest
import pytest_asyncio

from shipping.core.config import settings
from shipping.core.exceptions import InvalidFieldException, ProviderNotFoundException, WebhookSignatureException
from shipping.models.delivery_order import DeliveryStatus
from shipping.models.snapshot import SnapshotType
from shipping.services.carrier_webhooks import CarrierWebhookService, map_carrier_status, transition_path
from shipping.services.event_publisher import EventPublisher

from conftest import NOW

SECRET = "fastbike-test-secret"


def signed(payload: dict, secret: str = SECRET, timestamp: Optional[int] = None) -> tuple[bytes, str, str]:
    body = json.dumps(payload).encode("utf-8")
    ts = timestamp if timestamp is not None else int(time.time())
    signature = EventPublisher.generate_signature(secret, body.decode("utf-8"), ts)
    return body, str(ts), f"sha256={signature}"


@pytest.fixture(autouse=True)
def carrier_secrets(monkeypatch):
    monkeypatch.setattr(settings, "CARRIER_WEBHOOK_SECRETS", {"fastbike": SECRET})


@pytest.fixture
def webhooks(db_session, publisher, cache) -> CarrierWebhookService:
    return CarrierWebhookService(db_session, publisher=publisher, cache=cache)


@pytest_asyncio.fixture
async def tracked_order(delivery_service, lookup, providers, order_ids):
    address_id = lookup.add("Chiang Mai")
    order = await delivery_service.create_delivery_order(
        customer_address_id=address_id, package_weight_kg=2, now=NOW, **order_ids,
    )
    return await delivery_service.set_tracking_info(order.id, "FB-1001", now=NOW)


class TestStatusMapping:

    @pytest.mark.parametrize("raw,expected", [
        ("picked_up", DeliveryStatus.DISPATCHED),
        (" Out-For-Delivery ", DeliveryStatus.IN_TRANSIT),
        ("RETURNED", DeliveryStatus.FAILED),
        ("booked", None),
    ])
    def test_known_codes(self, raw, expected):
        assert map_carrier_status(raw) == expected

    def test_unknown_code(self):
        with pytest.raises(InvalidFieldException):
            map_carrier_status("teleported")

    def test_path_through_intermediate_states(self):
        assert transition_path(DeliveryStatus.PENDING, DeliveryStatus.DELIVERED) == [
            DeliveryStatus.DISPATCHED,
            DeliveryStatus.DELIVERED,
        ]
        assert transition_path(DeliveryStatus.PENDING, DeliveryStatus.IN_TRANSIT) == [
            DeliveryStatus.DISPATCHED,
            DeliveryStatus.IN_TRANSIT,
        ]

    def test_no_path(self):
        assert transition_path(DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELLED) is None
        assert transition_path(DeliveryStatus.DELIVERED, DeliveryStatus.FAILED) is None


class TestSignature:

    @pytest.mark.asyncio
    async def test_bad_signature(self, webhooks, providers):
        body, ts, _ = signed({"event_id": "e1", "status": "delivered"})
        with pytest.raises(WebhookSignatureException):
            await webhooks.handle("fastbike", body, ts, "sha256=deadbeef")

    @pytest.mark.asyncio
    async def test_wrong_secret(self, webhooks, providers):
        body, ts, signature = signed({"event_id": "e1", "status": "delivered"}, secret="other")
        with pytest.raises(WebhookSignatureException):
            await webhooks.handle("fastbike", body, ts, signature)

    @pytest.mark.asyncio
    async def test_expired_timestamp(self, webhooks, providers):
        body, ts, signature = signed({"event_id": "e1", "status": "delivered"}, timestamp=int(time.time()) - 3600)
        with pytest.raises(WebhookSignatureException):
            await webhooks.handle("fastbike", body, ts, signature)

    @pytest.mark.asyncio
    async def test_carrier_without_secret(self, webhooks, providers):
        body, ts, signature = signed({"event_id": "e1", "status": "delivered"})
        with pytest.raises(WebhookSignatureException):
            await webhooks.handle("callcourier", body, ts, signature)

    @pytest.mark.asyncio
    async def test_unknown_provider(self, webhooks, monkeypatch):
        monkeypatch.setattr(settings, "CARRIER_WEBHOOK_SECRETS", {"ghost": SECRET})
        body, ts, signature = signed({"event_id": "e1", "status": "delivered"})
        with pytest.raises(ProviderNotFoundException):
            await webhooks.handle("ghost", body, ts, signature)

    @pytest.mark.asyncio
    async def test_malformed_body(self, webhooks, providers):
        body = b"not json"
        ts = str(int(time.time()))
        signature = "sha256=" + EventPublisher.generate_signature(SECRET, body.decode(), int(ts))
        with pytest.raises(InvalidFieldException):
            await webhooks.handle("fastbike", body, ts, signature)


class TestCallbacks:

    @pytest.mark.asyncio
    async def test_delivered_steps_through_dispatched(self, webhooks, tracked_order, delivery_service, publisher):
        body, ts, signature = signed({"event_id": "e1", "status": "delivered", "tracking_number": "FB-1001"})
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)

        assert result.outcome == "applied"
        assert result.duplicate is False
        assert result.delivery_id == tracked_order.id
        assert tracked_order.status == DeliveryStatus.DELIVERED
        assert tracked_order.actual_pickup_time == NOW

        timeline = await delivery_service.get_timeline(tracked_order.id)
        assert [s.snapshot_type for s in timeline][-2:] == [SnapshotType.PICKED_UP, SnapshotType.DELIVERED]
        assert timeline[-1].triggered_by == "carrier:fastbike"
        assert timeline[-1].triggered_event == "carrier.delivered"
        assert publisher.types()[-1] == "delivery.delivered"

    @pytest.mark.asyncio
    async def test_redelivery_returns_stored_outcome(self, webhooks, tracked_order, delivery_service):
        body, ts, signature = signed({"event_id": "e1", "status": "in_transit", "tracking_number": "FB-1001"})
        first = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        count = len(await delivery_service.get_timeline(tracked_order.id))

        again = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert again.duplicate is True
        assert again.outcome == first.outcome == "applied"
        assert len(await delivery_service.get_timeline(tracked_order.id)) == count

    @pytest.mark.asyncio
    async def test_out_of_order_update_is_stale(self, webhooks, tracked_order):
        body, ts, signature = signed({"event_id": "e1", "status": "out_for_delivery", "tracking_number": "FB-1001"})
        await webhooks.handle("fastbike", body, ts, signature, now=NOW)

        body, ts, signature = signed({"event_id": "e0", "status": "picked_up", "tracking_number": "FB-1001"})
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert result.outcome == "stale"
        assert tracked_order.status == DeliveryStatus.IN_TRANSIT

    @pytest.mark.asyncio
    async def test_disallowed_update_is_rejected(self, webhooks, tracked_order):
        body, ts, signature = signed({"event_id": "e1", "status": "in_transit", "tracking_number": "FB-1001"})
        await webhooks.handle("fastbike", body, ts, signature, now=NOW)

        body, ts, signature = signed({"event_id": "e2", "status": "cancelled", "tracking_number": "FB-1001"})
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert result.outcome == "rejected"
        assert tracked_order.status == DeliveryStatus.IN_TRANSIT

    @pytest.mark.asyncio
    async def test_failure_reason_recorded(self, webhooks, tracked_order):
        body, ts, signature = signed({
            "event_id": "e1", "status": "delivery_failed", "tracking_number": "FB-1001", "reason": "nobody home",
        })
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert result.outcome == "applied"
        assert tracked_order.status == DeliveryStatus.FAILED
        assert tracked_order.status_reason == "nobody home"

    @pytest.mark.asyncio
    async def test_tracking_only_update(self, webhooks, tracked_order):
        body, ts, signature = signed({
            "event_id": "e1", "status": "booked", "tracking_number": "FB-1001", "provider_order_id": "FBO-77",
        })
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert result.outcome == "applied"
        assert tracked_order.provider_order_id == "FBO-77"
        assert tracked_order.status == DeliveryStatus.PENDING

        body, ts, signature = signed({"event_id": "e2", "status": "accepted", "tracking_number": "FB-1001"})
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert result.outcome == "no_change"

    @pytest.mark.asyncio
    async def test_unknown_delivery_is_stored(self, webhooks, providers):
        body, ts, signature = signed({"event_id": "e1", "status": "delivered", "tracking_number": "NOPE"})
        result = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert result.outcome == "unknown_delivery"
        assert result.delivery_id is None

        again = await webhooks.handle("fastbike", body, ts, signature, now=NOW)
        assert again.duplicate is True
