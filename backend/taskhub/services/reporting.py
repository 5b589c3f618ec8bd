"""Dashboard statistics computed on demand from committed task rows."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models.task import (
    STATUS_COMPLETED,
    STATUS_PENDING,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Task,
    assigned_to_user,
)
from taskhub.utils import clock


class DashboardService:
    """Counts, distributions and recent tasks for the dashboard.

    Admins get figures over every task; any other caller gets figures over
    the tasks assigned to them. Nothing is cached.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _scope(self, user_id: UUID | None) -> list:
        return [] if user_id is None else [assigned_to_user(user_id)]

    async def get_dashboard(
        self,
        user_id: UUID | None = None,
        now: datetime | None = None,
        recent_limit: int = 10,
    ) -> dict:
        """Build dashboard data; ``user_id=None`` means all tasks."""
        now = now or clock.utcnow()
        scope = self._scope(user_id)

        status_counts = await self._count_by(Task.status, TASK_STATUSES, scope)
        priority_counts = await self._count_by(Task.priority, TASK_PRIORITIES, scope)

        overdue = await self.db.scalar(
            select(func.count(Task.id)).where(
                *scope,
                Task.due_date < now,
                Task.status != STATUS_COMPLETED,
            )
        ) or 0

        result = await self.db.execute(
            select(Task)
            .where(*scope)
            .order_by(Task.created_at.desc())
            .limit(recent_limit)
        )
        recent = list(result.scalars().all())

        total = sum(status_counts.values())
        return {
            "statistics": {
                "total_tasks": total,
                "pending_tasks": status_counts[STATUS_PENDING],
                "completed_tasks": status_counts[STATUS_COMPLETED],
                "overdue_tasks": overdue,
            },
            "charts": {
                "task_distribution": {**status_counts, "All": total},
                "task_priority_levels": priority_counts,
            },
            "recent_tasks": recent,
        }

    async def list_overdue(
        self,
        caller_id: UUID,
        caller_role: str,
        now: datetime | None = None,
    ) -> list[Task]:
        """Tasks past their due date and not completed, soonest due first."""
        now = now or clock.utcnow()
        scope = [] if caller_role == "admin" else self._scope(caller_id)
        result = await self.db.execute(
            select(Task)
            .where(*scope, Task.due_date < now, Task.status != STATUS_COMPLETED)
            .order_by(Task.due_date.asc())
        )
        return list(result.scalars().all())

    async def _count_by(self, column, values: tuple[str, ...], scope: list) -> dict[str, int]:
        # Every enum value is present, defaulting to 0
        counts = dict.fromkeys(values, 0)
        rows = await self.db.execute(
            select(column, func.count(Task.id)).where(*scope).group_by(column)
        )
        for value, count in rows.all():
            if value in counts:
                counts[value] = count
        return counts
