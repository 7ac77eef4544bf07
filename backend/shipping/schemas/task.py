"""
Manual coordination task schemas.
"""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from shipping.models.manual_task import TaskStatus, TaskType
from shipping.schemas.validators import NonEmptyStr


class TaskCreate(BaseModel):
    """Schema for opening a task by hand."""
    delivery_id: UUID
    task_type: TaskType
    task_instructions: NonEmptyStr
    provider_code: Optional[str] = Field(None, max_length=50)
    contact_information: dict[str, Any] = Field(default_factory=dict)


class TaskAssign(BaseModel):
    user_id: UUID


class TaskComplete(BaseModel):
    completion_notes: NonEmptyStr
    external_reference: Optional[str] = Field(None, max_length=100, description="Carrier booking reference")
    user_id: Optional[UUID] = None


class TaskClose(BaseModel):
    """Reason for failing or cancelling a task."""
    reason: NonEmptyStr


class TaskResponse(BaseModel):
    """Schema for task response."""
    id: UUID
    delivery_id: UUID
    provider_code: str
    task_type: TaskType
    task_status: TaskStatus
    assigned_to_user_id: Optional[UUID] = None
    task_instructions: str
    contact_information: dict[str, Any]
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    external_reference: Optional[str] = None
    reminder_count: int
    last_reminder_sent: Optional[datetime] = None
    next_reminder_due: Optional[datetime] = None
    overdue_notified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaskStatistics(BaseModel):
    pending: int
    in_progress: int
    overdue: int
    completed: int
    failed: int
    cancelled: int
    total: int
