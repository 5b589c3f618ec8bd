"""Activity feed endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import AdminUser, CurrentUser, Page
from taskhub.db.session import get_db_session
from taskhub.services.activity import ActivityService

router = APIRouter()


class ActivityResponse(BaseModel):
    id: UUID
    task_id: UUID
    user_id: UUID
    action: str
    description: str | None
    changes: dict[str, Any] | None
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityPage(BaseModel):
    activities: list[ActivityResponse]
    total: int
    pages: int


def get_activity(db: AsyncSession = Depends(get_db_session)) -> ActivityService:
    return ActivityService(db)


Activity = Depends(get_activity)


@router.get("", response_model=ActivityPage)
async def list_all_activity(
    current_user: AdminUser,
    page: Page,
    action: str | None = Query(None),
    user_id: UUID | None = Query(None),
    task_id: UUID | None = Query(None),
    service: ActivityService = Activity,
) -> dict:
    """Every activity record, filterable. Admin only."""
    return await service.list_all(
        current_user.role,
        action=action,
        user_id=user_id,
        task_id=task_id,
        page=page.page,
        limit=page.limit,
    )


@router.get("/user", response_model=ActivityPage)
async def list_user_activity(
    current_user: CurrentUser,
    page: Page,
    service: ActivityService = Activity,
) -> dict:
    return await service.list_for_user(current_user.id, page=page.page, limit=page.limit)


@router.get("/task/{task_id}", response_model=ActivityPage)
async def list_task_activity(
    task_id: UUID,
    current_user: CurrentUser,
    page: Page,
    service: ActivityService = Activity,
) -> dict:
    return await service.list_for_task(task_id, page=page.page, limit=page.limit)
