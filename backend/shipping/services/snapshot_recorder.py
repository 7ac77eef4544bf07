"""
Delivery snapshot recorder.

Append-only audit trail for delivery orders. Snapshots are written in
the caller's transaction (flush, no commit) so the audit row commits or
rolls back together with the order mutation it describes.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.config import settings
from shipping.core.exceptions import InvalidFieldException, SnapshotNotFoundException
from shipping.models.base import utcnow
from shipping.models.delivery_order import DeliveryOrder, DeliveryStatus
from shipping.models.snapshot import DeliverySnapshot, SnapshotType
from shipping.schemas.snapshot import snapshot_details_adapter

logger = logging.getLogger(__name__)

SNAPSHOT_TYPE_FOR_STATUS = {
    DeliveryStatus.PENDING: SnapshotType.STATUS_UPDATED,
    DeliveryStatus.PLANNED: SnapshotType.STATUS_UPDATED,
    DeliveryStatus.DISPATCHED: SnapshotType.PICKED_UP,
    DeliveryStatus.IN_TRANSIT: SnapshotType.IN_TRANSIT,
    DeliveryStatus.DELIVERED: SnapshotType.DELIVERED,
    DeliveryStatus.FAILED: SnapshotType.FAILED,
    DeliveryStatus.CANCELLED: SnapshotType.CANCELLED,
}

# Quick-access columns compared between consecutive snapshots
TRACKED_FIELDS = ("status", "vehicle_id", "delivery_fee", "provider_code")


def business_date_for(moment: datetime) -> date:
    """Calendar date of a naive-UTC moment in the business time zone."""
    aware = moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment
    return aware.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE)).date()


def compare_with_previous(
    current: DeliverySnapshot,
    previous: Optional[DeliverySnapshot],
) -> dict[str, Any]:
    """Change-set over the tracked fields plus elapsed minutes."""
    if previous is None:
        return {
            "snapshot_id": current.id,
            "previous_snapshot_id": None,
            "has_changes": False,
            "changes": [],
            "time_diff_minutes": 0.0,
        }

    changes = []
    for field in TRACKED_FIELDS:
        before = getattr(previous, field)
        after = getattr(current, field)
        if before != after:
            changes.append({"field": field, "previous": before, "current": after})

    elapsed = (current.created_at - previous.created_at).total_seconds() / 60
    return {
        "snapshot_id": current.id,
        "previous_snapshot_id": previous.id,
        "has_changes": bool(changes),
        "changes": changes,
        "time_diff_minutes": round(elapsed, 2),
    }


class SnapshotRecorder:
    """Writes and reads delivery snapshots."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        order: DeliveryOrder,
        snapshot_type: SnapshotType,
        details: Union[BaseModel, dict[str, Any]],
        triggered_by: str = "system",
        triggered_event: Optional[str] = None,
        triggered_by_user_id: Optional[uuid.UUID] = None,
        previous_snapshot_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> DeliverySnapshot:
        """
        Capture the order's full state plus typed transition details.

        Chains to the latest existing snapshot unless a previous id is given.
        """
        snapshot_type = SnapshotType(snapshot_type)
        raw = details.model_dump(mode="json") if isinstance(details, BaseModel) else dict(details)
        raw.setdefault("snapshot_type", snapshot_type.value)
        if raw["snapshot_type"] != snapshot_type.value:
            raise InvalidFieldException(
                "details", f"details are for '{raw['snapshot_type']}', not '{snapshot_type.value}'",
            )
        typed = snapshot_details_adapter.validate_python(raw)

        # Order id and version must be assigned before capture
        await self.db.flush()

        latest = await self.get_latest(order.id)
        if previous_snapshot_id is None and latest is not None:
            previous_snapshot_id = latest.id
        now = now or utcnow()

        snapshot = DeliverySnapshot(
            id=uuid.uuid4(),
            delivery_id=order.id,
            sequence=(latest.sequence + 1) if latest else 1,
            snapshot_type=snapshot_type,
            snapshot_data=order.to_snapshot_dict(),
            details=typed.model_dump(mode="json"),
            previous_snapshot_id=previous_snapshot_id,
            triggered_by=triggered_by,
            triggered_by_user_id=triggered_by_user_id,
            triggered_event=triggered_event,
            status=order.status.value,
            customer_id=order.customer_id,
            order_id=order.order_id,
            vehicle_id=order.vehicle_id,
            province=order.destination_province,
            delivery_fee=order.delivery_fee,
            provider_code=order.provider_code,
            created_at=now,
            business_date=business_date_for(now),
        )
        self.db.add(snapshot)
        await self.db.flush()

        logger.debug(
            f"Snapshot #{snapshot.sequence} {snapshot_type.value} for delivery {order.id}",
            extra={"delivery_id": str(order.id), "triggered_by": triggered_by},
        )
        return snapshot

    async def get_latest(self, delivery_id: uuid.UUID) -> Optional[DeliverySnapshot]:
        result = await self.db.execute(
            select(DeliverySnapshot)
            .where(DeliverySnapshot.delivery_id == delivery_id)
            .order_by(DeliverySnapshot.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_delivery_timeline(self, delivery_id: uuid.UUID) -> list[DeliverySnapshot]:
        """All snapshots of a delivery, oldest first."""
        result = await self.db.execute(
            select(DeliverySnapshot)
            .where(DeliverySnapshot.delivery_id == delivery_id)
            .order_by(DeliverySnapshot.sequence)
        )
        return list(result.scalars().all())

    async def diff_latest(self, delivery_id: uuid.UUID) -> dict[str, Any]:
        """Compare the latest snapshot with the one it chains to."""
        latest = await self.get_latest(delivery_id)
        if latest is None:
            raise SnapshotNotFoundException(delivery_id)
        previous = None
        if latest.previous_snapshot_id is not None:
            previous = await self.db.get(DeliverySnapshot, latest.previous_snapshot_id)
        return compare_with_previous(latest, previous)

    async def list_by_business_date(
        self,
        business_date: date,
        provider_code: Optional[str] = None,
    ) -> list[DeliverySnapshot]:
        query = select(DeliverySnapshot).where(DeliverySnapshot.business_date == business_date)
        if provider_code:
            query = query.where(DeliverySnapshot.provider_code == provider_code)
        result = await self.db.execute(query.order_by(DeliverySnapshot.created_at))
        return list(result.scalars().all())

    async def list_by_provider(self, provider_code: str, limit: int = 100) -> list[DeliverySnapshot]:
        result = await self.db.execute(
            select(DeliverySnapshot)
            .where(DeliverySnapshot.provider_code == provider_code)
            .order_by(DeliverySnapshot.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_customer(self, customer_id: uuid.UUID, limit: int = 100) -> list[DeliverySnapshot]:
        result = await self.db.execute(
            select(DeliverySnapshot)
            .where(DeliverySnapshot.customer_id == customer_id)
            .order_by(DeliverySnapshot.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def purge_older_than(self, cutoff: datetime) -> int:
        """Retention: the only path that removes snapshots."""
        result = await self.db.execute(
            delete(DeliverySnapshot).where(DeliverySnapshot.created_at < cutoff)
        )
        await self.db.commit()
        purged = result.rowcount or 0
        logger.info(f"Purged {purged} snapshots created before {cutoff.isoformat()}")
        return purged
