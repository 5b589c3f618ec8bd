"""User management for admins."""

from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.session import commit_or_raise
from taskhub.exceptions import ConflictError, NotFoundError, ValidationError
from taskhub.models.task import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    Task,
    TaskAssignee,
)
from taskhub.models.user import USER_ROLES, User

logger = structlog.get_logger()

COUNT_KEYS = {
    STATUS_PENDING: "pending_tasks",
    STATUS_IN_PROGRESS: "in_progress_tasks",
    STATUS_COMPLETED: "completed_tasks",
}


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_members(self) -> list[dict]:
        """Every member with per-status counts of the tasks assigned to them."""
        result = await self.db.execute(
            select(User).where(User.role == "member").order_by(User.name)
        )
        members = list(result.scalars().all())
        counts = await self._task_counts([m.id for m in members])
        return [{"user": member, **counts[member.id]} for member in members]

    async def get(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def create(
        self,
        name: str,
        email: str,
        role: str | None = None,
        phone: str | None = None,
        address: str | None = None,
    ) -> User:
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email:
            raise ValidationError("Name and email are required")
        role = role or "member"
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of {', '.join(USER_ROLES)}", field="role")

        existing = await self.db.scalar(select(User.id).where(User.email == email))
        if existing is not None:
            raise ConflictError("User with this email already exists")

        user = User(name=name, email=email, role=role, phone=phone, address=address)
        self.db.add(user)
        await commit_or_raise(self.db, entity="User")

        logger.info("user_created", user_id=str(user.id), role=role)
        return user

    async def delete(self, user_id: UUID) -> None:
        user = await self.get(user_id)
        await self.db.delete(user)
        await commit_or_raise(self.db, entity="User")
        logger.info("user_deleted", user_id=str(user_id))

    async def _task_counts(self, user_ids: list[UUID]) -> dict[UUID, dict[str, int]]:
        counts = {user_id: dict.fromkeys(COUNT_KEYS.values(), 0) for user_id in user_ids}
        if not user_ids:
            return counts
        rows = await self.db.execute(
            select(TaskAssignee.user_id, Task.status, func.count(Task.id))
            .join(Task, Task.id == TaskAssignee.task_id)
            .where(TaskAssignee.user_id.in_(user_ids))
            .group_by(TaskAssignee.user_id, Task.status)
        )
        for user_id, task_status, count in rows.all():
            key = COUNT_KEYS.get(task_status)
            if key:
                counts[user_id][key] = count
        return counts
