"""
Delivery tracking and reporting.

Lookup by carrier tracking number, deliveries running past their
estimate, and delivery performance over a date range.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import InvalidFieldException, TrackingNumberNotFoundException
from shipping.models.base import as_naive_utc, utcnow
from shipping.models.delivery_order import (
    TERMINAL_STATUSES,
    DeliveryMethod,
    DeliveryOrder,
    DeliveryStatus,
)
from shipping.models.provider import to_decimal
from shipping.models.snapshot import SnapshotType
from shipping.services.snapshot_recorder import SnapshotRecorder

logger = logging.getLogger(__name__)

UPDATE_DESCRIPTIONS = {
    SnapshotType.CREATED: "Delivery order created",
    SnapshotType.ASSIGNED: "Assigned for delivery",
    SnapshotType.PICKED_UP: "Picked up",
    SnapshotType.IN_TRANSIT: "In transit",
    SnapshotType.DELIVERED: "Delivered",
    SnapshotType.FAILED: "Delivery failed",
    SnapshotType.CANCELLED: "Delivery cancelled",
    SnapshotType.STATUS_UPDATED: "Status updated",
    SnapshotType.PROVIDER_UPDATED: "Carrier details updated",
}


def is_delayed(order: DeliveryOrder, now: datetime) -> bool:
    return (
        not order.is_terminal
        and order.estimated_delivery_time is not None
        and order.estimated_delivery_time < now
    )


@dataclass
class DeliveryMetrics:
    """Delivery performance for orders created in [start, end)."""

    start: datetime
    end: datetime
    total_deliveries: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    by_method: dict[str, int] = field(default_factory=dict)
    total_delivery_fees: Decimal = Decimal("0")
    success_rate: float = 0.0
    on_time_rate: float = 0.0
    average_delivery_hours: Optional[float] = None


class TrackingService:
    """Read-side views over delivery orders and their snapshots."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.recorder = SnapshotRecorder(db)

    async def track(self, tracking_number: str, now: Optional[datetime] = None) -> dict[str, Any]:
        """Current state and snapshot history of the delivery carrying `tracking_number`."""
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise InvalidFieldException("tracking_number", "tracking number is required")
        result = await self.db.execute(
            select(DeliveryOrder)
            .where(DeliveryOrder.tracking_number == tracking_number)
            .order_by(DeliveryOrder.created_at.desc())
        )
        order = result.scalars().first()
        if order is None:
            raise TrackingNumberNotFoundException(tracking_number)

        snapshots = await self.recorder.get_delivery_timeline(order.id)
        return {
            "delivery_id": order.id,
            "tracking_number": order.tracking_number,
            "provider_code": order.provider_code,
            "status": order.status,
            "estimated_delivery_time": order.estimated_delivery_time,
            "actual_delivery_time": order.actual_delivery_time,
            "last_updated": order.updated_at,
            "is_delayed": is_delayed(order, now or utcnow()),
            "updates": [
                {
                    "timestamp": s.created_at,
                    "status": s.status,
                    "snapshot_type": s.snapshot_type.value,
                    "description": UPDATE_DESCRIPTIONS[s.snapshot_type],
                }
                for s in snapshots
            ],
        }

    async def list_delayed(self, now: Optional[datetime] = None, limit: int = 100) -> list[DeliveryOrder]:
        """Open deliveries whose estimated delivery time has passed, most late first."""
        now = now or utcnow()
        result = await self.db.execute(
            select(DeliveryOrder)
            .where(
                DeliveryOrder.status.not_in(list(TERMINAL_STATUSES)),
                DeliveryOrder.estimated_delivery_time.is_not(None),
                DeliveryOrder.estimated_delivery_time < now,
            )
            .order_by(DeliveryOrder.estimated_delivery_time)
            .limit(limit)
        )
        orders = list(result.scalars().all())
        logger.debug(f"{len(orders)} delayed deliveries as of {now}")
        return orders

    async def get_metrics(self, start: datetime, end: datetime) -> DeliveryMetrics:
        """
        Counts by status and method, fee total, success rate and on-time
        rate for orders created in the window.

        On-time rate is the share of delivered orders whose actual
        delivery time is at or before their estimate.
        """
        start, end = as_naive_utc(start), as_naive_utc(end)
        if end <= start:
            raise InvalidFieldException("end", "end must be after start")
        in_window = (DeliveryOrder.created_at >= start, DeliveryOrder.created_at < end)
        metrics = DeliveryMetrics(start=start, end=end)

        result = await self.db.execute(
            select(DeliveryOrder.status, func.count()).where(*in_window).group_by(DeliveryOrder.status)
        )
        metrics.by_status = {s.value: 0 for s in DeliveryStatus}
        for status, count in result.all():
            metrics.by_status[DeliveryStatus(status).value] = count
        metrics.total_deliveries = sum(metrics.by_status.values())

        result = await self.db.execute(
            select(DeliveryOrder.delivery_method, func.count())
            .where(*in_window)
            .group_by(DeliveryOrder.delivery_method)
        )
        metrics.by_method = {m.value: 0 for m in DeliveryMethod}
        for method, count in result.all():
            metrics.by_method[DeliveryMethod(method).value] = count

        fees = await self.db.scalar(
            select(func.sum(DeliveryOrder.delivery_fee)).where(
                *in_window, DeliveryOrder.status != DeliveryStatus.CANCELLED,
            )
        )
        metrics.total_delivery_fees = to_decimal(fees)

        result = await self.db.execute(
            select(
                DeliveryOrder.created_at,
                DeliveryOrder.estimated_delivery_time,
                DeliveryOrder.actual_delivery_time,
            ).where(*in_window, DeliveryOrder.status == DeliveryStatus.DELIVERED)
        )
        delivered = [row for row in result.all() if row.actual_delivery_time is not None]
        if metrics.total_deliveries:
            metrics.success_rate = metrics.by_status[DeliveryStatus.DELIVERED.value] / metrics.total_deliveries * 100
        if delivered:
            on_time = sum(
                1 for row in delivered
                if row.estimated_delivery_time is not None and row.actual_delivery_time <= row.estimated_delivery_time
            )
            metrics.on_time_rate = on_time / len(delivered) * 100
            hours = [(row.actual_delivery_time - row.created_at).total_seconds() / 3600 for row in delivered]
            metrics.average_delivery_hours = sum(hours) / len(hours)
        return metrics
