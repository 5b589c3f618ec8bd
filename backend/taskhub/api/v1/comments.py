"""Task comment endpoints."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import CurrentUser, Page, Publisher
from taskhub.db.session import get_db_session
from taskhub.models.comment import TaskComment
from taskhub.services.comment import CommentService

router = APIRouter()


class CommentCreate(BaseModel):
    content: str
    mentions: list[UUID] = Field(default_factory=list)


class CommentUpdate(BaseModel):
    content: str


class ReplyCreate(BaseModel):
    content: str


class CommentResponse(BaseModel):
    """Task comment response."""

    id: UUID
    task_id: UUID
    author_id: UUID
    content: str
    mentions: list[str]
    likes: list[str]
    replies: list[dict[str, Any]]
    edited: bool
    edited_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CommentPage(BaseModel):
    comments: list[CommentResponse]
    total: int
    pages: int


def get_comments(
    publisher: Publisher,
    db: AsyncSession = Depends(get_db_session),
) -> CommentService:
    return CommentService(db, publisher)


Comments = Depends(get_comments)


@router.post(
    "/tasks/{task_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    task_id: UUID,
    data: CommentCreate,
    current_user: CurrentUser,
    service: CommentService = Comments,
) -> TaskComment:
    return await service.create(task_id, current_user.id, data.content, mentions=data.mentions)


@router.get("/tasks/{task_id}/comments", response_model=CommentPage)
async def list_comments(
    task_id: UUID,
    current_user: CurrentUser,
    page: Page,
    service: CommentService = Comments,
) -> dict:
    return await service.list_for_task(task_id, page=page.page, limit=page.limit)


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: UUID,
    data: CommentUpdate,
    current_user: CurrentUser,
    service: CommentService = Comments,
) -> TaskComment:
    return await service.update(comment_id, data.content, current_user.id)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: UUID,
    current_user: CurrentUser,
    service: CommentService = Comments,
) -> None:
    await service.delete(comment_id, current_user.id, current_user.role)


@router.put("/comments/{comment_id}/like", response_model=CommentResponse)
async def toggle_like(
    comment_id: UUID,
    current_user: CurrentUser,
    service: CommentService = Comments,
) -> TaskComment:
    return await service.toggle_like(comment_id, current_user.id)


@router.post("/comments/{comment_id}/reply", response_model=CommentResponse)
async def add_reply(
    comment_id: UUID,
    data: ReplyCreate,
    current_user: CurrentUser,
    service: CommentService = Comments,
) -> TaskComment:
    return await service.add_reply(comment_id, current_user.id, data.content)
