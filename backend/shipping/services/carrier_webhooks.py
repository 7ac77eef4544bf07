"""
Carrier webhook ingestion.

Carriers push status callbacks signed with a per-carrier secret
(HMAC-SHA256 over "timestamp.body"). Each callback is stored once per
(provider_code, event_id); redelivery returns the stored outcome.
Callbacks may arrive out of order: an update behind the order's current
progress is recorded as stale and changes nothing.
"""
import json
import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.config import settings
from shipping.core.exceptions import InvalidFieldException, WebhookSignatureException
from shipping.models.base import as_naive_utc, utcnow
from shipping.models.carrier_webhook import CarrierWebhookEvent, WebhookOutcome
from shipping.models.delivery_order import (
    ALLOWED_TRANSITIONS,
    STATUS_RANK,
    TERMINAL_STATUSES,
    DeliveryOrder,
    DeliveryStatus,
)
from shipping.models.snapshot import SnapshotType
from shipping.schemas.snapshot import ProviderUpdatedDetails
from shipping.schemas.webhook import CarrierWebhookPayload, CarrierWebhookResult
from shipping.services.delivery_cache import DeliveryCache
from shipping.services.delivery_service import STATUS_EVENTS, DeliveryService
from shipping.services.event_publisher import EventPublisher
from shipping.services.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)

CARRIER_STATUSES = {
    "accepted": None,
    "booked": None,
    "picked_up": DeliveryStatus.DISPATCHED,
    "dispatched": DeliveryStatus.DISPATCHED,
    "in_transit": DeliveryStatus.IN_TRANSIT,
    "out_for_delivery": DeliveryStatus.IN_TRANSIT,
    "delivered": DeliveryStatus.DELIVERED,
    "failed": DeliveryStatus.FAILED,
    "delivery_failed": DeliveryStatus.FAILED,
    "returned": DeliveryStatus.FAILED,
    "cancelled": DeliveryStatus.CANCELLED,
}


def map_carrier_status(raw: str) -> Optional[DeliveryStatus]:
    """Carrier status code to delivery status; None for tracking-only updates."""
    key = raw.strip().lower().replace("-", "_").replace(" ", "_")
    if key not in CARRIER_STATUSES:
        raise InvalidFieldException("status", "unknown carrier status", raw)
    return CARRIER_STATUSES[key]


def transition_path(current: DeliveryStatus, target: DeliveryStatus) -> Optional[list[DeliveryStatus]]:
    """
    Shortest chain of allowed transitions from current to target.

    Intermediate steps never pass through a terminal status.
    """
    if current == target:
        return []
    queue = deque([(current, [])])
    seen = {current}
    while queue:
        status, path = queue.popleft()
        # Rank ties resolve by name: dispatched before planned
        for nxt in sorted(ALLOWED_TRANSITIONS[status], key=lambda s: (STATUS_RANK[s], s.value)):
            if nxt in seen:
                continue
            if nxt == target:
                return path + [nxt]
            if nxt in TERMINAL_STATUSES:
                continue
            seen.add(nxt)
            queue.append((nxt, path + [nxt]))
    return None


class CarrierWebhookService:
    """Verifies, deduplicates and applies carrier callbacks."""

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[EventPublisher] = None,
        cache: Optional[DeliveryCache] = None,
    ):
        self.db = db
        self.registry = ProviderRegistry(db)
        self.deliveries = DeliveryService(db, publisher=publisher, cache=cache)

    @staticmethod
    def verify(provider_code: str, body: bytes, timestamp: Optional[str], signature: Optional[str]) -> None:
        secret = settings.CARRIER_WEBHOOK_SECRETS.get(provider_code)
        if not secret or not timestamp or not signature:
            raise WebhookSignatureException(provider_code)
        try:
            ts = int(timestamp)
        except ValueError:
            raise WebhookSignatureException(provider_code) from None
        if not EventPublisher.verify_signature(
            secret,
            body.decode("utf-8"),
            ts,
            signature,
            tolerance_seconds=settings.CARRIER_WEBHOOK_TOLERANCE_SECONDS,
        ):
            raise WebhookSignatureException(provider_code)

    @staticmethod
    def parse(body: bytes) -> CarrierWebhookPayload:
        try:
            return CarrierWebhookPayload.model_validate(json.loads(body))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidFieldException("body", f"invalid JSON: {e}")
        except ValidationError as e:
            raise InvalidFieldException("body", str(e.errors()[0].get("msg", "invalid payload")))

    async def _find_event(self, provider_code: str, event_id: str) -> Optional[CarrierWebhookEvent]:
        result = await self.db.execute(
            select(CarrierWebhookEvent).where(
                CarrierWebhookEvent.provider_code == provider_code,
                CarrierWebhookEvent.event_id == event_id,
            )
        )
        return result.scalar_one_or_none()

    async def _find_order(self, provider_code: str, payload: CarrierWebhookPayload) -> Optional[DeliveryOrder]:
        refs = []
        if payload.tracking_number:
            refs.append(DeliveryOrder.tracking_number == payload.tracking_number)
        if payload.provider_order_id:
            refs.append(DeliveryOrder.provider_order_id == payload.provider_order_id)
        if not refs:
            return None
        result = await self.db.execute(
            select(DeliveryOrder).where(DeliveryOrder.provider_code == provider_code, or_(*refs))
        )
        return result.scalars().first()

    async def handle(
        self,
        provider_code: str,
        body: bytes,
        timestamp: Optional[str],
        signature: Optional[str],
        now: Optional[datetime] = None,
    ) -> CarrierWebhookResult:
        self.verify(provider_code, body, timestamp, signature)
        await self.registry.get(provider_code)
        payload = self.parse(body)
        target = map_carrier_status(payload.status)
        now = now or utcnow()

        existing = await self._find_event(provider_code, payload.event_id)
        if existing is not None:
            return self._result(existing, duplicate=True)

        order = await self._find_order(provider_code, payload)
        outcome = WebhookOutcome.UNKNOWN_DELIVERY
        previous = None
        if order is not None:
            previous = order.status
            outcome = await self._apply(order, payload, target, now)

        event = CarrierWebhookEvent(
            id=uuid.uuid4(),
            provider_code=provider_code,
            event_id=payload.event_id,
            tracking_number=payload.tracking_number,
            reported_status=payload.status,
            payload=json.loads(body),
            outcome=outcome,
            delivery_id=order.id if order is not None else None,
            received_at=now,
        )
        self.db.add(event)
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent redelivery won the insert
            await self.db.rollback()
            existing = await self._find_event(provider_code, payload.event_id)
            if existing is None:
                raise
            return self._result(existing, duplicate=True)

        logger.info(
            f"Carrier webhook {provider_code}:{payload.event_id} status={payload.status} -> {outcome.value}",
            extra={"delivery_id": str(order.id) if order is not None else None},
        )
        if order is not None and outcome == WebhookOutcome.APPLIED:
            await self.deliveries.after_commit(
                order,
                STATUS_EVENTS.get(order.status, "delivery.status_updated"),
                previous_status=previous.value,
                source=f"carrier:{provider_code}",
            )
        return self._result(event)

    async def _apply(
        self,
        order: DeliveryOrder,
        payload: CarrierWebhookPayload,
        target: Optional[DeliveryStatus],
        now: datetime,
    ) -> WebhookOutcome:
        triggered_event = f"carrier.{payload.status}"
        triggered_by = f"carrier:{order.provider_code}"
        when = as_naive_utc(payload.occurred_at) if payload.occurred_at else now

        tracking_changed = False
        if not order.is_terminal:
            tracking_changed = order.set_tracking_info(payload.tracking_number, payload.provider_order_id)
        if tracking_changed:
            await self.deliveries.recorder.record(
                order,
                SnapshotType.PROVIDER_UPDATED,
                ProviderUpdatedDetails(
                    provider_code=order.provider_code,
                    tracking_number=order.tracking_number,
                    provider_order_id=order.provider_order_id,
                    source="carrier_webhook",
                ),
                triggered_by=triggered_by,
                triggered_event=triggered_event,
                now=when,
            )

        if target is None or target == order.status:
            return WebhookOutcome.APPLIED if tracking_changed else WebhookOutcome.NO_CHANGE

        if order.is_terminal or STATUS_RANK[target] < STATUS_RANK[order.status]:
            logger.info(f"Stale carrier update for delivery {order.id}: {order.status.value} vs {target.value}")
            return WebhookOutcome.STALE

        path = transition_path(order.status, target)
        if path is None:
            logger.warning(f"Carrier update {order.status.value} -> {target.value} not allowed for {order.id}")
            return WebhookOutcome.REJECTED

        for step in path:
            await self.deliveries.apply_status(
                order,
                step,
                reason=payload.reason if step == target else None,
                triggered_by=triggered_by,
                triggered_event=triggered_event,
                now=when,
            )
        return WebhookOutcome.APPLIED

    @staticmethod
    def _result(event: CarrierWebhookEvent, duplicate: bool = False) -> CarrierWebhookResult:
        return CarrierWebhookResult(
            event_id=event.event_id,
            outcome=event.outcome.value,
            duplicate=duplicate,
            delivery_id=event.delivery_id,
        )
