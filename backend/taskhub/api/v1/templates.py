"""Task template endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import CurrentUser, Page, Publisher
from taskhub.api.v1.tasks import ChecklistItem, TaskResponse
from taskhub.db.session import get_db_session
from taskhub.models.task import Task
from taskhub.models.template import TaskTemplate
from taskhub.services.task_lifecycle import TaskLifecycleService
from taskhub.services.template import TemplateService

router = APIRouter()


class TemplateCreate(BaseModel):
    """Create a task template."""

    name: str
    description: str | None = None
    category: str = "Custom"
    default_priority: str = "Medium"
    default_due_days: int | None = None
    todo_checklist: list[ChecklistItem] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    attachment_template: list[str] = Field(default_factory=list)
    is_public: bool = False


class TemplateUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    default_priority: str | None = None
    default_due_days: int | None = None
    todo_checklist: list[ChecklistItem] | None = None
    tags: list[str] | None = None
    attachment_template: list[str] | None = None
    is_public: bool | None = None


class TemplateResponse(BaseModel):
    """Task template response."""

    id: UUID
    name: str
    description: str | None
    category: str
    default_priority: str
    default_due_days: int
    todo_checklist: list[ChecklistItem]
    tags: list[str]
    attachment_template: list[str]
    created_by_id: UUID
    is_public: bool
    usage_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TemplatePage(BaseModel):
    templates: list[TemplateResponse]
    total: int
    pages: int


class TaskFromTemplate(BaseModel):
    title: str | None = None
    due_date: datetime | None = None
    assigned_to: list[UUID] | None = None


def get_templates(
    publisher: Publisher,
    db: AsyncSession = Depends(get_db_session),
) -> TemplateService:
    return TemplateService(db, TaskLifecycleService(db, publisher))


Templates = Depends(get_templates)


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    current_user: CurrentUser,
    service: TemplateService = Templates,
) -> TaskTemplate:
    return await service.create(current_user.id, **data.model_dump(exclude_none=True))


@router.get("", response_model=TemplatePage)
async def list_templates(
    current_user: CurrentUser,
    page: Page,
    category: str | None = Query(None),
    service: TemplateService = Templates,
) -> dict:
    """The caller's templates and all public ones."""
    return await service.list_templates(
        current_user.id, category=category, page=page.page, limit=page.limit
    )


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: UUID,
    current_user: CurrentUser,
    service: TemplateService = Templates,
) -> TaskTemplate:
    return await service.get(template_id, current_user.id, current_user.role)


@router.put("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    current_user: CurrentUser,
    service: TemplateService = Templates,
) -> TaskTemplate:
    return await service.update(
        template_id,
        data.model_dump(exclude_none=True),
        caller_id=current_user.id,
        caller_role=current_user.role,
    )


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    current_user: CurrentUser,
    service: TemplateService = Templates,
) -> None:
    await service.delete(template_id, current_user.id, current_user.role)


@router.post(
    "/{template_id}/create-task",
    response_model=TaskResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_task_from_template(
    template_id: UUID,
    data: TaskFromTemplate,
    current_user: CurrentUser,
    service: TemplateService = Templates,
) -> Task:
    return await service.create_task_from_template(
        template_id,
        current_user.id,
        current_user.role,
        title=data.title,
        due_date=data.due_date,
        assigned_to=data.assigned_to,
    )
