"""Tasks API endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import AdminUser, CurrentUser, Publisher
from taskhub.db.session import get_db_session
from taskhub.models.task import Task
from taskhub.services.reporting import DashboardService
from taskhub.services.task_lifecycle import TaskLifecycleService

router = APIRouter()
logger = structlog.get_logger()


# Request/Response Models
class ChecklistItem(BaseModel):
    text: str
    completed: bool = False


class DependencyItem(BaseModel):
    task_id: str
    type: str


class TaskCreate(BaseModel):
    """Create a new task."""

    title: str
    description: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    assigned_to: list[UUID] = Field(default_factory=list)
    todo_checklist: list[ChecklistItem] = Field(default_factory=list)
    attachments: list[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Partial update; empty values leave the field unchanged."""

    title: str | None = None
    description: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    assigned_to: list[UUID] | None = None
    todo_checklist: list[ChecklistItem] | None = None
    attachments: list[str] | None = None


class TaskStatusUpdate(BaseModel):
    status: str


class TaskChecklistUpdate(BaseModel):
    todo_checklist: list[ChecklistItem]


class DependencyCreate(BaseModel):
    depends_on_task_id: UUID
    type: str | None = None


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    title: str
    description: str | None
    priority: str
    status: str
    progress: int
    due_date: datetime
    created_by_id: UUID | None
    assigned_to: list[UUID]
    todo_checklist: list[ChecklistItem]
    dependencies: list[DependencyItem]
    attachments: list[str]
    time_tracked: int
    template_id: UUID | None
    viewed_by: list[UUID]
    comment_ids: list[UUID]
    last_viewed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StatusSummary(BaseModel):
    all: int
    pending_tasks: int
    in_progress_tasks: int
    completed_tasks: int


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    status_summary: StatusSummary


def get_lifecycle(
    publisher: Publisher,
    db: AsyncSession = Depends(get_db_session),
) -> TaskLifecycleService:
    return TaskLifecycleService(db, publisher)


Lifecycle = Depends(get_lifecycle)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    current_user: CurrentUser,
    status_filter: str | None = Query(None, alias="status"),
    service: TaskLifecycleService = Lifecycle,
) -> dict:
    """List tasks visible to the caller with per-status counts."""
    return await service.list_tasks(current_user.id, current_user.role, status=status_filter)


@router.get("/overdue", response_model=list[TaskResponse])
async def list_overdue_tasks(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[Task]:
    """Tasks past due and not completed."""
    return await DashboardService(db).list_overdue(current_user.id, current_user.role)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: AdminUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    """Create a new task."""
    return await service.create_task(
        title=task_data.title,
        due_date=task_data.due_date,
        creator_id=current_user.id,
        assigned_to=task_data.assigned_to,
        description=task_data.description,
        priority=task_data.priority,
        todo_checklist=task_data.todo_checklist,
        attachments=task_data.attachments,
    )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    return await service.get_task(task_id)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    task_data: TaskUpdate,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    """Merge the provided fields into the task."""
    return await service.update_task(
        task_id, task_data.model_dump(exclude_unset=True), actor_id=current_user.id
    )


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: AdminUser,
    service: TaskLifecycleService = Lifecycle,
) -> None:
    """Delete a task."""
    await service.delete_task(task_id, actor_id=current_user.id)


@router.put("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: UUID,
    data: TaskStatusUpdate,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    return await service.set_status(task_id, data.status, actor_id=current_user.id)


@router.put("/{task_id}/checklist", response_model=TaskResponse)
async def update_task_checklist(
    task_id: UUID,
    data: TaskChecklistUpdate,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    """Replace the checklist; progress and status follow from it."""
    return await service.replace_checklist(
        task_id,
        data.todo_checklist,
        actor_id=current_user.id,
        actor_role=current_user.role,
    )


@router.put("/{task_id}/view", response_model=TaskResponse)
async def mark_task_viewed(
    task_id: UUID,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    return await service.mark_viewed(task_id, current_user.id)


@router.post("/{task_id}/dependencies", response_model=TaskResponse)
async def add_dependency(
    task_id: UUID,
    data: DependencyCreate,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    return await service.add_dependency(task_id, data.depends_on_task_id, data.type)


@router.delete("/{task_id}/dependencies/{depends_on_task_id}", response_model=TaskResponse)
async def remove_dependency(
    task_id: UUID,
    depends_on_task_id: UUID,
    current_user: CurrentUser,
    service: TaskLifecycleService = Lifecycle,
) -> Task:
    return await service.remove_dependency(task_id, depends_on_task_id)
