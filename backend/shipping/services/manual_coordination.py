"""
Manual coordination task engine.

Carriers without a booking API are booked by a person over phone, LINE,
an app or e-mail. Each such delivery gets a task whose reminders back
off exponentially per the escalation policy. A periodic sweep sends due
reminders and raises a single alert when a task runs past its SLA.
"""
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import DeliveryNotFoundException, InvalidFieldException, TaskNotFoundException
from shipping.core.metrics import OVERDUE_TASKS, REMINDERS_SENT, SWEEP_DURATION
from shipping.models.base import utcnow
from shipping.models.delivery_order import DeliveryOrder
from shipping.models.manual_task import (
    ACTIVE_TASK_STATUSES,
    ManualCoordinationTask,
    TaskStatus,
    TaskType,
)
from shipping.models.provider import DeliveryProvider
from shipping.models.snapshot import SnapshotType
from shipping.schemas.snapshot import ProviderUpdatedDetails
from shipping.services.delivery_cache import DeliveryCache, delivery_cache
from shipping.services.escalation_policy import EscalationPolicy, get_escalation_policy
from shipping.services.event_publisher import EventPublisher, event_publisher
from shipping.services.snapshot_recorder import SnapshotRecorder

logger = logging.getLogger(__name__)

# Preferred channel first
CHANNEL_TASK_TYPES = (
    ("phone", TaskType.PHONE_COORDINATION),
    ("line_id", TaskType.LINE_MESSAGE),
    ("app_name", TaskType.APP_BOOKING),
    ("email", TaskType.EMAIL_COORDINATION),
)


def task_type_for_provider(provider: DeliveryProvider) -> TaskType:
    channels = provider.contact_channels()
    for channel, task_type in CHANNEL_TASK_TYPES:
        if channels.get(channel):
            return task_type
    return TaskType.PHONE_COORDINATION


def build_instructions(order: DeliveryOrder, provider: DeliveryProvider, task_type: TaskType) -> str:
    lines = [
        f"Book {provider.name} ({provider.code}) for order {order.order_id}.",
        f"Destination province: {order.destination_province or 'unknown'}.",
        f"Package weight: {order.package_weight_kg} kg.",
    ]
    if order.same_day_required:
        lines.append("Same-day delivery required.")
    if order.cod_required:
        lines.append(f"Collect on delivery: {order.cod_amount}.")
    if task_type == TaskType.PICKUP_SCHEDULE:
        lines.append("Agree a pickup slot with the carrier.")
    if provider.coordination_notes:
        lines.append(provider.coordination_notes)
    lines.append("Record the carrier's booking reference when completing this task.")
    return "\n".join(lines)


def task_event(task: ManualCoordinationTask) -> dict[str, Any]:
    return {
        "task_id": str(task.id),
        "delivery_id": str(task.delivery_id),
        "provider_code": task.provider_code,
        "task_type": task.task_type.value,
        "task_status": task.task_status.value,
        "reminder_count": task.reminder_count,
        "assigned_to_user_id": str(task.assigned_to_user_id) if task.assigned_to_user_id else None,
    }


class ManualCoordinationService:
    """Task lifecycle, reminders and the periodic sweep."""

    def __init__(
        self,
        db: AsyncSession,
        publisher: Optional[EventPublisher] = None,
        cache: Optional[DeliveryCache] = None,
        policy: Optional[EscalationPolicy] = None,
    ):
        self.db = db
        self.publisher = publisher or event_publisher
        self.cache = cache or delivery_cache
        self.policy = policy or get_escalation_policy()
        self.recorder = SnapshotRecorder(db)

    # Creation

    def open_task(
        self,
        order: DeliveryOrder,
        provider: DeliveryProvider,
        task_type: Optional[TaskType] = None,
        instructions: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ManualCoordinationTask:
        """
        Add a pending task for `order` to the session without committing,
        so it lands in the same transaction as the order itself.
        """
        now = now or utcnow()
        task_type = TaskType(task_type) if task_type else task_type_for_provider(provider)
        task = ManualCoordinationTask(
            id=uuid.uuid4(),
            delivery_id=order.id,
            provider_code=provider.code,
            task_type=task_type,
            task_status=TaskStatus.PENDING,
            contact_information=provider.contact_channels(),
            reminder_count=0,
            created_at=now,
            updated_at=now,
        )
        task.update_instructions(instructions or build_instructions(order, provider, task_type))
        task.schedule_first_reminder(self.policy.for_type(task_type), now)
        self.db.add(task)
        return task

    async def create_task(
        self,
        delivery_id: uuid.UUID,
        task_type: TaskType,
        instructions: str,
        provider_code: Optional[str] = None,
        contact_information: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ManualCoordinationTask:
        """Open an extra task by hand (e.g. a pickup slot after booking)."""
        order = await self.db.get(DeliveryOrder, delivery_id)
        if not order:
            raise DeliveryNotFoundException(delivery_id)
        code = provider_code or order.provider_code
        if not code:
            raise InvalidFieldException("provider_code", "delivery has no provider to coordinate with")

        now = now or utcnow()
        task_type = TaskType(task_type)
        task = ManualCoordinationTask(
            id=uuid.uuid4(),
            delivery_id=order.id,
            provider_code=code,
            task_type=task_type,
            task_status=TaskStatus.PENDING,
            contact_information=dict(contact_information or {}),
            reminder_count=0,
            created_at=now,
            updated_at=now,
        )
        task.update_instructions(instructions)
        task.schedule_first_reminder(self.policy.for_type(task_type), now)
        self.db.add(task)
        await self.db.commit()

        logger.info(f"Opened {task_type.value} task {task.id} for delivery {order.id}")
        await self.publisher.publish("manual_task.created", task_event(task))
        return task

    # Lookup

    async def get_task(self, task_id: uuid.UUID) -> ManualCoordinationTask:
        task = await self.db.get(ManualCoordinationTask, task_id)
        if not task:
            raise TaskNotFoundException(task_id)
        return task

    async def list_for_delivery(self, delivery_id: uuid.UUID) -> list[ManualCoordinationTask]:
        result = await self.db.execute(
            select(ManualCoordinationTask)
            .where(ManualCoordinationTask.delivery_id == delivery_id)
            .order_by(ManualCoordinationTask.created_at)
        )
        return list(result.scalars().all())

    async def list_for_assignee(self, user_id: uuid.UUID, active_only: bool = True) -> list[ManualCoordinationTask]:
        query = select(ManualCoordinationTask).where(ManualCoordinationTask.assigned_to_user_id == user_id)
        if active_only:
            query = query.where(ManualCoordinationTask.task_status.in_(ACTIVE_TASK_STATUSES))
        result = await self.db.execute(query.order_by(ManualCoordinationTask.created_at))
        return list(result.scalars().all())

    async def list_pending(self, provider_code: Optional[str] = None) -> list[ManualCoordinationTask]:
        query = select(ManualCoordinationTask).where(ManualCoordinationTask.task_status == TaskStatus.PENDING)
        if provider_code:
            query = query.where(ManualCoordinationTask.provider_code == provider_code)
        result = await self.db.execute(query.order_by(ManualCoordinationTask.created_at))
        return list(result.scalars().all())

    async def _list_active(self) -> list[ManualCoordinationTask]:
        result = await self.db.execute(
            select(ManualCoordinationTask)
            .where(ManualCoordinationTask.task_status.in_(ACTIVE_TASK_STATUSES))
            .order_by(ManualCoordinationTask.created_at)
        )
        return list(result.scalars().all())

    async def list_overdue(self, now: Optional[datetime] = None) -> list[ManualCoordinationTask]:
        # Thresholds differ per task type, so filter in Python
        now = now or utcnow()
        return [
            t for t in await self._list_active()
            if t.is_overdue(self.policy.for_type(t.task_type), now)
        ]

    async def get_statistics(self, now: Optional[datetime] = None) -> dict[str, int]:
        result = await self.db.execute(
            select(ManualCoordinationTask.task_status, func.count())
            .group_by(ManualCoordinationTask.task_status)
        )
        counts = {status.value: 0 for status in TaskStatus}
        for status, count in result.all():
            counts[TaskStatus(status).value] = count
        overdue = await self.list_overdue(now)
        return {
            "pending": counts[TaskStatus.PENDING.value],
            "in_progress": counts[TaskStatus.IN_PROGRESS.value],
            "overdue": len(overdue),
            "completed": counts[TaskStatus.COMPLETED.value],
            "failed": counts[TaskStatus.FAILED.value],
            "cancelled": counts[TaskStatus.CANCELLED.value],
            "total": sum(counts.values()),
        }

    # Lifecycle

    async def assign(self, task_id: uuid.UUID, user_id: uuid.UUID) -> ManualCoordinationTask:
        task = await self.get_task(task_id)
        task.assign_to_user(user_id)
        await self.db.commit()
        logger.info(f"Task {task_id} assigned to {user_id}")
        return task

    async def send_reminder(self, task_id: uuid.UUID, now: Optional[datetime] = None) -> ManualCoordinationTask:
        task = await self.get_task(task_id)
        self._remind(task, now or utcnow())
        await self.db.commit()
        await self.publisher.publish("manual_task.reminder", task_event(task))
        return task

    def _remind(self, task: ManualCoordinationTask, now: datetime) -> None:
        task.send_reminder(self.policy.for_type(task.task_type), now)
        REMINDERS_SENT.labels(task_type=task.task_type.value).inc()

    async def complete(
        self,
        task_id: uuid.UUID,
        notes: str,
        external_reference: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> ManualCoordinationTask:
        """
        Close the task. A carrier booking reference becomes the
        delivery's tracking number in the same transaction.
        """
        now = now or utcnow()
        task = await self.get_task(task_id)
        task.complete(notes, external_reference, now)

        tracking_changed = False
        if task.external_reference:
            order = await self.db.get(DeliveryOrder, task.delivery_id)
            if order is not None and not order.is_terminal:
                tracking_changed = order.set_tracking_info(task.external_reference)
                if tracking_changed:
                    await self.recorder.record(
                        order,
                        SnapshotType.PROVIDER_UPDATED,
                        ProviderUpdatedDetails(
                            provider_code=order.provider_code,
                            tracking_number=order.tracking_number,
                            provider_order_id=order.provider_order_id,
                            external_reference=task.external_reference,
                            source="manual_task",
                        ),
                        triggered_by="user" if user_id else "system",
                        triggered_event="manual_task.completed",
                        triggered_by_user_id=user_id,
                        now=now,
                    )
            elif order is not None:
                logger.warning(
                    f"Task {task_id} completed on terminal delivery {order.id}; tracking not updated"
                )

        await self.db.commit()
        logger.info(f"Task {task_id} completed (reference={task.external_reference})")

        if tracking_changed:
            await self.cache.invalidate_delivery(task.delivery_id)
        await self.publisher.publish("manual_task.completed", {
            **task_event(task),
            "external_reference": task.external_reference,
        })
        return task

    async def fail(self, task_id: uuid.UUID, reason: str, now: Optional[datetime] = None) -> ManualCoordinationTask:
        task = await self.get_task(task_id)
        task.fail(reason, now)
        await self.db.commit()
        logger.info(f"Task {task_id} failed: {reason}")
        return task

    async def cancel(self, task_id: uuid.UUID, reason: str, now: Optional[datetime] = None) -> ManualCoordinationTask:
        task = await self.get_task(task_id)
        task.cancel(reason, now)
        await self.db.commit()
        logger.info(f"Task {task_id} cancelled: {reason}")
        return task

    async def cancel_active_for_delivery(
        self,
        delivery_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
        keep_provider_code: Optional[str] = None,
    ) -> list[uuid.UUID]:
        """
        Cancel open tasks of a delivery inside the caller's transaction.

        Tasks for `keep_provider_code` are left open.
        """
        now = now or utcnow()
        cancelled = []
        for task in await self.list_for_delivery(delivery_id):
            if task.is_active and task.provider_code != keep_provider_code:
                task.cancel(reason, now)
                cancelled.append(task.id)
        return cancelled

    async def update_instructions(self, task_id: uuid.UUID, instructions: str) -> ManualCoordinationTask:
        task = await self.get_task(task_id)
        task.update_instructions(instructions)
        await self.db.commit()
        return task

    async def add_contact_info(self, task_id: uuid.UUID, key: str, value: Any) -> ManualCoordinationTask:
        task = await self.get_task(task_id)
        task.add_contact_info(key, value)
        await self.db.commit()
        return task

    # Sweep

    async def run_sweep(self, now: Optional[datetime] = None) -> dict[str, int]:
        """
        Send due reminders and flag newly overdue tasks.

        Safe to run repeatedly for the same `now`: a reminder pushes
        `next_reminder_due` past `now`, and the overdue alert is stamped
        once per task. Tasks are never failed here.
        """
        started = time.perf_counter()
        now = now or utcnow()
        reminded: list[ManualCoordinationTask] = []
        overdue: list[ManualCoordinationTask] = []

        for task in await self._list_active():
            if task.needs_reminder(now):
                self._remind(task, now)
                reminded.append(task)
            if task.overdue_notified_at is None and task.is_overdue(self.policy.for_type(task.task_type), now):
                task.overdue_notified_at = now
                OVERDUE_TASKS.labels(task_type=task.task_type.value).inc()
                overdue.append(task)

        await self.db.commit()

        for task in reminded:
            await self.publisher.publish("manual_task.reminder", task_event(task))
        for task in overdue:
            logger.warning(
                f"Manual task {task.id} ({task.task_type.value}) for delivery {task.delivery_id} is overdue",
                extra={"delivery_id": str(task.delivery_id)},
            )
            await self.publisher.publish("manual_task.overdue", task_event(task))

        SWEEP_DURATION.observe(time.perf_counter() - started)
        logger.info(f"Task sweep at {now.isoformat()}: {len(reminded)} reminders, {len(overdue)} overdue")
        return {"reminders_sent": len(reminded), "overdue_alerts": len(overdue)}
