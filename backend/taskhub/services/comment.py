"""Task comments: posting, editing, likes and replies."""

import math
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.session import commit_or_raise
from taskhub.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskhub.models.comment import TaskComment
from taskhub.models.task import Task
from taskhub.services.events import CommentAdded, EventPublisher
from taskhub.utils import clock

logger = structlog.get_logger()

EXCERPT_LENGTH = 50


def _validate_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Comment content is required", field="content")
    return content.strip()


def _parse_mentions(value: Any) -> list[UUID]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("mentions must be an array of user IDs", field="mentions")
    try:
        ids = [v if isinstance(v, UUID) else UUID(str(v)) for v in value]
    except ValueError:
        raise ValidationError("mentions must contain valid user IDs", field="mentions")
    return list(dict.fromkeys(ids))


class CommentService:
    def __init__(self, db: AsyncSession, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or EventPublisher()

    async def create(
        self,
        task_id: UUID,
        author_id: UUID,
        content: str,
        mentions: Any = None,
    ) -> TaskComment:
        """Post a comment; mentioned users are told through ``CommentAdded``."""
        content = _validate_content(content)
        mentioned = _parse_mentions(mentions)

        task = await self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        comment = TaskComment(
            task_id=task_id,
            author_id=author_id,
            content=content,
            mentions=[str(m) for m in mentioned],
            likes=[],
            replies=[],
            edited=False,
        )
        self.db.add(comment)
        await commit_or_raise(self.db, entity="Comment")

        logger.info("comment_created", comment_id=str(comment.id), task_id=str(task_id))
        await self.publisher.publish(
            CommentAdded(
                task.id,
                task.title,
                author_id,
                comment_id=comment.id,
                excerpt=content[:EXCERPT_LENGTH],
                mentioned_ids=tuple(mentioned),
            )
        )
        return comment

    async def list_for_task(self, task_id: UUID, page: int = 1, limit: int = 20) -> dict:
        if await self.db.get(Task, task_id) is None:
            raise NotFoundError("Task", task_id)

        total = await self.db.scalar(
            select(func.count(TaskComment.id)).where(TaskComment.task_id == task_id)
        ) or 0
        result = await self.db.execute(
            select(TaskComment)
            .where(TaskComment.task_id == task_id)
            .order_by(TaskComment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "comments": list(result.scalars().all()),
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        }

    async def update(self, comment_id: UUID, content: str, caller_id: UUID) -> TaskComment:
        comment = await self.get(comment_id)
        if comment.author_id != caller_id:
            raise ForbiddenError("Only the author can edit this comment")

        comment.content = _validate_content(content)
        comment.edited = True
        comment.edited_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Comment")

        logger.info("comment_updated", comment_id=str(comment_id))
        return comment

    async def delete(self, comment_id: UUID, caller_id: UUID, caller_role: str) -> None:
        comment = await self.get(comment_id)
        if comment.author_id != caller_id and caller_role != "admin":
            raise ForbiddenError("Not authorized to delete this comment")

        await self.db.delete(comment)
        await commit_or_raise(self.db, entity="Comment")
        logger.info("comment_deleted", comment_id=str(comment_id))

    async def toggle_like(self, comment_id: UUID, user_id: UUID) -> TaskComment:
        """Like the comment, or take the like back if already given."""
        comment = await self.get(comment_id)
        key = str(user_id)
        if key in comment.likes:
            comment.likes = [u for u in comment.likes if u != key]
        else:
            comment.likes = [*comment.likes, key]
        await commit_or_raise(self.db, entity="Comment")
        return comment

    async def add_reply(self, comment_id: UUID, author_id: UUID, content: str) -> TaskComment:
        comment = await self.get(comment_id)
        reply = {
            "author_id": str(author_id),
            "content": _validate_content(content),
            "created_at": clock.utcnow().isoformat(),
        }
        comment.replies = [*comment.replies, reply]
        await commit_or_raise(self.db, entity="Comment")

        logger.info("comment_reply_added", comment_id=str(comment_id))
        return comment

    async def get(self, comment_id: UUID) -> TaskComment:
        comment = await self.db.get(TaskComment, comment_id)
        if comment is None:
            raise NotFoundError("Comment", comment_id)
        return comment
