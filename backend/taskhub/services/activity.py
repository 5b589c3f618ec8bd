"""Activity log: append-only audit trail of task events."""

import math
from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskhub.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskhub.models.activity import ACTIVITY_ACTIONS, ActivityRecord
from taskhub.models.task import Task
from taskhub.services.events import (
    CommentAdded,
    DomainEvent,
    FieldChange,
    TaskAssigned,
    TaskCompleted,
    TaskCreated,
    TaskDeleted,
    TaskReopened,
    TaskStatusChanged,
    TaskUpdated,
)

logger = structlog.get_logger()

# Field-specific actions; any other field change is recorded as "updated"
FIELD_ACTIONS = {
    "priority": "priority_changed",
    "due_date": "due_date_changed",
    "description": "description_updated",
    "attachments": "attachment_added",
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class ActivityRecorder:
    """Best-effort writer of activity records.

    ``record`` never raises: a failed write is logged and dropped.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        task_id: UUID,
        user_id: UUID,
        action: str,
        description: str,
        changes: FieldChange | None = None,
    ) -> ActivityRecord | None:
        try:
            if action not in ACTIVITY_ACTIONS:
                raise ValidationError(f"Unknown activity action: {action}")

            record = ActivityRecord(
                task_id=task_id,
                user_id=user_id,
                action=action,
                description=description,
                changes=(
                    {
                        "field_name": changes.field_name,
                        "old_value": _jsonable(changes.old_value),
                        "new_value": _jsonable(changes.new_value),
                    }
                    if changes
                    else None
                ),
            )
            async with self.session_factory() as session:
                session.add(record)
                await session.commit()
            return record
        except Exception:
            logger.warning(
                "activity_record_failed",
                task_id=str(task_id),
                action=action,
                exc_info=True,
            )
            return None

    async def handle(self, event: DomainEvent) -> None:
        title = event.task_title

        if isinstance(event, TaskCreated):
            await self.record(event.task_id, event.actor_id, "created", f"Created task '{title}'")
        elif isinstance(event, TaskAssigned):
            await self.record(
                event.task_id,
                event.actor_id,
                "assigned",
                f"Assigned '{title}' to user {event.assignee_id}",
                FieldChange("assigned_to", None, event.assignee_id),
            )
        elif isinstance(event, TaskUpdated):
            for change in event.changes:
                action = FIELD_ACTIONS.get(change.field_name, "updated")
                await self.record(
                    event.task_id,
                    event.actor_id,
                    action,
                    f"Updated {change.field_name} of '{title}'",
                    change,
                )
        elif isinstance(event, TaskStatusChanged):
            await self.record(
                event.task_id,
                event.actor_id,
                "status_changed",
                f"Changed status of '{title}' from {event.old_status} to {event.new_status}",
                FieldChange("status", event.old_status, event.new_status),
            )
        elif isinstance(event, TaskCompleted):
            await self.record(event.task_id, event.actor_id, "task_completed", f"Completed '{title}'")
        elif isinstance(event, TaskReopened):
            await self.record(
                event.task_id,
                event.actor_id,
                "task_reopened",
                f"Reopened '{title}' as {event.new_status}",
            )
        elif isinstance(event, TaskDeleted):
            await self.record(event.task_id, event.actor_id, "deleted", f"Deleted task '{title}'")
        elif isinstance(event, CommentAdded):
            await self.record(
                event.task_id,
                event.actor_id,
                "commented",
                f'Added a comment: "{event.excerpt}"',
            )


class ActivityService:
    """Read access to the activity log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_task(self, task_id: UUID, page: int = 1, limit: int = 20) -> dict:
        if await self.db.get(Task, task_id) is None:
            raise NotFoundError("Task", task_id)
        return await self._page(
            select(ActivityRecord).where(ActivityRecord.task_id == task_id), page, limit
        )

    async def list_for_user(self, user_id: UUID, page: int = 1, limit: int = 20) -> dict:
        return await self._page(
            select(ActivityRecord).where(ActivityRecord.user_id == user_id), page, limit
        )

    async def list_all(
        self,
        caller_role: str,
        action: str | None = None,
        user_id: UUID | None = None,
        task_id: UUID | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> dict:
        if caller_role != "admin":
            raise ForbiddenError("Only admins can view all activity logs")

        query = select(ActivityRecord)
        if action:
            query = query.where(ActivityRecord.action == action)
        if user_id:
            query = query.where(ActivityRecord.user_id == user_id)
        if task_id:
            query = query.where(ActivityRecord.task_id == task_id)
        return await self._page(query, page, limit)

    async def _page(self, query, page: int, limit: int) -> dict:
        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0
        result = await self.db.execute(
            query.order_by(ActivityRecord.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "activities": list(result.scalars().all()),
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        }
