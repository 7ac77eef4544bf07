"""
Manual coordination task model.
"""
import enum
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shipping.core.database import Base
from shipping.core.exceptions import (
    InvalidFieldException,
    TaskAlreadyCompletedException,
    TaskNotActiveException,
    TaskNotPendingException,
)
from shipping.models.base import TimestampMixin, UUIDMixin, utcnow


class TaskType(str, enum.Enum):
    PHONE_COORDINATION = "phone_coordination"
    APP_BOOKING = "app_booking"
    LINE_MESSAGE = "line_message"
    EMAIL_COORDINATION = "email_coordination"
    PICKUP_SCHEDULE = "pickup_schedule"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class ReminderPolicy(Protocol):
    """Escalation settings for one task type."""

    base_interval: timedelta
    overdue_after: timedelta

    def interval_after(self, reminder_count: int) -> timedelta:
        ...


class ManualCoordinationTask(Base, UUIDMixin, TimestampMixin):
    """
    Human work needed to book a carrier that has no booking API.

    Reminder timing is persisted in `next_reminder_due` so a periodic
    sweep can pick up where it left off after a restart.
    """

    __tablename__ = "manual_coordination_tasks"

    delivery_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("delivery_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    task_type: Mapped[TaskType] = mapped_column(Enum(TaskType), nullable=False)
    task_status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus),
        default=TaskStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Work
    assigned_to_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True, index=True)
    task_instructions: Mapped[str] = mapped_column(Text, nullable=False)
    contact_information: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Outcome
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Reminders
    reminder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reminder_sent: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    next_reminder_due: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    overdue_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.task_status in ACTIVE_TASK_STATUSES

    def schedule_first_reminder(self, policy: ReminderPolicy, now: Optional[datetime] = None) -> None:
        self.next_reminder_due = (now or utcnow()) + policy.base_interval

    def assign_to_user(self, user_id: uuid.UUID) -> None:
        if self.task_status != TaskStatus.PENDING:
            raise TaskNotPendingException(self.id, self.task_status)
        self.assigned_to_user_id = user_id
        self.task_status = TaskStatus.IN_PROGRESS

    def needs_reminder(self, now: Optional[datetime] = None) -> bool:
        if not self.is_active or self.next_reminder_due is None:
            return False
        return self.next_reminder_due <= (now or utcnow())

    def send_reminder(self, policy: ReminderPolicy, now: Optional[datetime] = None) -> None:
        """Record a reminder; the next one backs off exponentially up to the policy cap."""
        if not self.is_active:
            raise TaskNotActiveException(self.id, self.task_status)
        now = now or utcnow()
        self.reminder_count = (self.reminder_count or 0) + 1
        self.last_reminder_sent = now
        self.next_reminder_due = now + policy.interval_after(self.reminder_count)

    def _ensure_open(self) -> None:
        if self.task_status == TaskStatus.COMPLETED:
            raise TaskAlreadyCompletedException(self.id)
        if not self.is_active:
            raise TaskNotActiveException(self.id, self.task_status)

    def complete(
        self,
        notes: str,
        external_reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        self._ensure_open()
        if not notes or not notes.strip():
            raise InvalidFieldException("completion_notes", "completion notes are required")
        self.task_status = TaskStatus.COMPLETED
        self.completed_at = now or utcnow()
        self.completion_notes = notes.strip()
        self.external_reference = (external_reference or "").strip() or None
        self.next_reminder_due = None

    def fail(self, reason: str, now: Optional[datetime] = None) -> None:
        self._ensure_open()
        self.task_status = TaskStatus.FAILED
        self.completion_notes = reason
        self.completed_at = now or utcnow()
        self.next_reminder_due = None

    def cancel(self, reason: str, now: Optional[datetime] = None) -> None:
        self._ensure_open()
        self.task_status = TaskStatus.CANCELLED
        self.completion_notes = reason
        self.completed_at = now or utcnow()
        self.next_reminder_due = None

    def is_overdue(self, policy: ReminderPolicy, now: Optional[datetime] = None) -> bool:
        """SLA signal only; overdue tasks are surfaced, never failed automatically."""
        if not self.is_active or self.created_at is None:
            return False
        return (now or utcnow()) - self.created_at > policy.overdue_after

    def get_duration(self, now: Optional[datetime] = None) -> timedelta:
        end = self.completed_at or now or utcnow()
        return end - self.created_at

    def update_instructions(self, instructions: str) -> None:
        if not instructions or not instructions.strip():
            raise InvalidFieldException("task_instructions", "instructions are required")
        self.task_instructions = instructions.strip()

    def add_contact_info(self, key: str, value: Any) -> None:
        # Reassign so the JSON column is flagged dirty
        self.contact_information = {**(self.contact_information or {}), key: value}

    def get_contact_info(self, key: str) -> Any:
        return (self.contact_information or {}).get(key)

    def __repr__(self) -> str:
        return f"<ManualCoordinationTask {self.task_type.value} {self.task_status.value}>"
