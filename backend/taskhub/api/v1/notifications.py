"""Notification endpoints, always scoped to the caller."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import CurrentUser, Page
from taskhub.db.session import get_db_session
from taskhub.models.activity import Notification
from taskhub.services.notification import NotificationService

router = APIRouter()


class NotificationResponse(BaseModel):
    """Notification response."""

    id: UUID
    user_id: UUID
    task_id: UUID | None
    sender_id: UUID | None
    title: str
    message: str
    notification_type: str
    priority: str
    action_url: str | None
    read: bool
    read_at: datetime | None
    send_email: bool
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationPage(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    pages: int


class NotificationPreferences(BaseModel):
    email_notifications: bool | None = None
    task_reminders: bool | None = None
    comment_notifications: bool | None = None
    assignment_notifications: bool | None = None


def get_notifications(db: AsyncSession = Depends(get_db_session)) -> NotificationService:
    return NotificationService(db)


Notifications = Depends(get_notifications)


@router.get("", response_model=NotificationPage)
async def list_notifications(
    current_user: CurrentUser,
    page: Page,
    read: bool | None = Query(None),
    service: NotificationService = Notifications,
) -> dict:
    return await service.list_for_user(current_user.id, read=read, page=page.page, limit=page.limit)


@router.put("/mark-all-read")
async def mark_all_read(
    current_user: CurrentUser,
    service: NotificationService = Notifications,
) -> dict[str, int]:
    return {"updated": await service.mark_all_read(current_user.id)}


@router.delete("/clear-all")
async def clear_all(
    current_user: CurrentUser,
    service: NotificationService = Notifications,
) -> dict[str, int]:
    return {"deleted": await service.clear_all(current_user.id)}


@router.get("/preferences")
async def get_preferences(
    current_user: CurrentUser,
    service: NotificationService = Notifications,
) -> dict[str, bool]:
    return await service.get_preferences(current_user.id)


@router.put("/preferences")
async def update_preferences(
    data: NotificationPreferences,
    current_user: CurrentUser,
    service: NotificationService = Notifications,
) -> dict[str, bool]:
    return await service.update_preferences(
        current_user.id, data.model_dump(exclude_none=True)
    )


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: UUID,
    current_user: CurrentUser,
    service: NotificationService = Notifications,
) -> Notification:
    return await service.mark_read(notification_id, current_user.id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    current_user: CurrentUser,
    service: NotificationService = Notifications,
) -> None:
    await service.delete(notification_id, current_user.id)
