"""
Manual coordination task API routes.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from shipping.api.deps import get_task_service
from shipping.schemas.task import (
    TaskAssign,
    TaskClose,
    TaskComplete,
    TaskCreate,
    TaskResponse,
    TaskStatistics,
)
from shipping.services.manual_coordination import ManualCoordinationService

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("/overdue", response_model=list[TaskResponse])
async def list_overdue_tasks(
    service: ManualCoordinationService = Depends(get_task_service),
) -> list[TaskResponse]:
    """Active tasks past their SLA."""
    return [TaskResponse.model_validate(t) for t in await service.list_overdue()]


@router.get("/pending", response_model=list[TaskResponse])
async def list_pending_tasks(
    provider_code: Optional[str] = Query(None),
    service: ManualCoordinationService = Depends(get_task_service),
) -> list[TaskResponse]:
    return [TaskResponse.model_validate(t) for t in await service.list_pending(provider_code)]


@router.get("/statistics", response_model=TaskStatistics)
async def get_task_statistics(
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskStatistics:
    return TaskStatistics(**await service.get_statistics())


@router.get("/assigned/{user_id}", response_model=list[TaskResponse])
async def list_assigned_tasks(
    user_id: UUID,
    active_only: bool = Query(True),
    service: ManualCoordinationService = Depends(get_task_service),
) -> list[TaskResponse]:
    return [TaskResponse.model_validate(t) for t in await service.list_for_assignee(user_id, active_only)]


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    data: TaskCreate,
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskResponse:
    task = await service.create_task(
        delivery_id=data.delivery_id,
        task_type=data.task_type,
        instructions=data.task_instructions,
        provider_code=data.provider_code,
        contact_information=data.contact_information,
    )
    return TaskResponse.model_validate(task)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskResponse:
    return TaskResponse.model_validate(await service.get_task(task_id))


@router.post("/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    task_id: UUID,
    data: TaskAssign,
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskResponse:
    return TaskResponse.model_validate(await service.assign(task_id, data.user_id))


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: UUID,
    data: TaskComplete,
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskResponse:
    """Complete a task; a booking reference becomes the delivery's tracking number."""
    task = await service.complete(task_id, data.completion_notes, data.external_reference, data.user_id)
    return TaskResponse.model_validate(task)


@router.post("/{task_id}/fail", response_model=TaskResponse)
async def fail_task(
    task_id: UUID,
    data: TaskClose,
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskResponse:
    return TaskResponse.model_validate(await service.fail(task_id, data.reason))


@router.post("/{task_id}/cancel", response_model=TaskResponse)
async def cancel_task(
    task_id: UUID,
    data: TaskClose,
    service: ManualCoordinationService = Depends(get_task_service),
) -> TaskResponse:
    return TaskResponse.model_validate(await service.cancel(task_id, data.reason))
