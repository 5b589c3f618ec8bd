"""Time tracking service.

Each user has at most one running timer. The rule is enforced by the
partial unique index ``uq_time_entries_user_running``: ``start`` stops the
user's running entries and inserts the new one in a single transaction,
and a concurrent ``start`` that slips in between fails on the index
instead of leaving two running timers.

``tasks.time_tracked`` is maintained with atomic increments, never by
rewriting the task row.
"""

import math
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.session import commit_or_raise
from taskhub.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskhub.models.task import Task
from taskhub.models.time_entry import TIME_CATEGORIES, TimeEntry
from taskhub.utils import clock

logger = structlog.get_logger()


def _validate_category(category: str | None) -> str:
    category = category or "Development"
    if category not in TIME_CATEGORIES:
        raise ValidationError(
            f"category must be one of {', '.join(TIME_CATEGORIES)}", field="category"
        )
    return category


def _day_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return clock.as_utc(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class TimeTrackingService:
    """Start/stop/pause/resume timers and manual entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def start(
        self,
        task_id: UUID,
        user_id: UUID,
        description: str | None = None,
        category: str | None = None,
    ) -> TimeEntry:
        """Start a timer on ``task_id``, stopping the user's other timer.

        A force-stopped entry gets ``end_time`` but keeps its duration;
        only ``stop`` computes a duration.
        """
        category = _validate_category(category)
        if await self.db.get(Task, task_id) is None:
            raise NotFoundError("Task", task_id)

        now = clock.utcnow()
        stopped = await self.db.execute(
            update(TimeEntry)
            .where(TimeEntry.user_id == user_id, TimeEntry.is_running.is_(True))
            .values(
                is_running=False,
                end_time=now,
                version_id=TimeEntry.version_id + 1,
            )
            .execution_options(synchronize_session="fetch")
        )

        entry = TimeEntry(
            task_id=task_id,
            user_id=user_id,
            start_time=now,
            duration=0,
            description=description or "",
            category=category,
            is_running=True,
        )
        self.db.add(entry)
        # A concurrent start for this user surfaces here as ConflictError
        await commit_or_raise(self.db, entity="TimeEntry")

        logger.info(
            "time_tracking_started",
            time_entry_id=str(entry.id),
            task_id=str(task_id),
            user_id=str(user_id),
            force_stopped=stopped.rowcount,
        )
        return entry

    async def stop(self, time_entry_id: UUID, caller_id: UUID, caller_role: str) -> TimeEntry:
        """Stop the entry and fold its duration into the task total.

        The task total moves by the difference from the entry's previously
        recorded duration, so stopping an entry twice does not count the
        same minutes twice.
        """
        entry = await self._get_authorized(time_entry_id, caller_id, caller_role)

        previous = entry.duration or 0
        entry.end_time = clock.utcnow()
        entry.duration = clock.minutes_between(entry.start_time, entry.end_time)
        entry.is_running = False

        delta = entry.duration - previous
        if delta:
            await self._increment_task_time(entry.task_id, delta)
        await commit_or_raise(self.db, entity="TimeEntry")

        logger.info(
            "time_tracking_stopped",
            time_entry_id=str(time_entry_id),
            task_id=str(entry.task_id),
            duration=entry.duration,
        )
        return entry

    async def pause(self, time_entry_id: UUID, caller_id: UUID, caller_role: str) -> TimeEntry:
        """Stop the clock without recording elapsed time."""
        entry = await self._get_authorized(time_entry_id, caller_id, caller_role)
        entry.is_running = False
        await commit_or_raise(self.db, entity="TimeEntry")

        logger.info("time_tracking_paused", time_entry_id=str(time_entry_id))
        return entry

    async def resume(self, time_entry_id: UUID, caller_id: UUID, caller_role: str) -> TimeEntry:
        """Restart the clock from now.

        Time before the pause is not carried over; the next ``stop``
        measures from this new start.
        """
        entry = await self._get_authorized(time_entry_id, caller_id, caller_role)
        if entry.is_running:
            return entry

        entry.start_time = clock.utcnow()
        entry.is_running = True
        # Fails on uq_time_entries_user_running if another timer is running
        await commit_or_raise(self.db, entity="TimeEntry")

        logger.info("time_tracking_resumed", time_entry_id=str(time_entry_id))
        return entry

    async def add_manual_entry(
        self,
        task_id: UUID,
        user_id: UUID,
        duration: int,
        description: str | None = None,
        category: str | None = None,
        start_time: datetime | None = None,
    ) -> TimeEntry:
        """Record time after the fact; counts toward the task immediately."""
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError("duration must be a positive number of minutes", field="duration")
        category = _validate_category(category)
        if await self.db.get(Task, task_id) is None:
            raise NotFoundError("Task", task_id)

        now = clock.utcnow()
        entry = TimeEntry(
            task_id=task_id,
            user_id=user_id,
            start_time=clock.as_utc(start_time) if start_time else now - timedelta(minutes=duration),
            end_time=now,
            duration=duration,
            description=description or "",
            category=category,
            is_running=False,
        )
        self.db.add(entry)
        await self._increment_task_time(task_id, duration)
        await commit_or_raise(self.db, entity="TimeEntry")

        logger.info(
            "time_entry_added",
            time_entry_id=str(entry.id),
            task_id=str(task_id),
            duration=duration,
        )
        return entry

    async def list_task_logs(self, task_id: UUID, page: int = 1, limit: int = 10) -> dict:
        return await self._page([TimeEntry.task_id == task_id], page, limit)

    async def list_user_logs(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 10,
        start_date: date | datetime | None = None,
        end_date: date | datetime | None = None,
    ) -> dict:
        criteria = [TimeEntry.user_id == user_id]
        if start_date:
            criteria.append(TimeEntry.created_at >= _day_start(start_date))
        if end_date:
            end = _day_start(end_date)
            if not isinstance(end_date, datetime):
                end += timedelta(days=1)
            criteria.append(TimeEntry.created_at < end)
        return await self._page(criteria, page, limit)

    async def _page(self, criteria: list, page: int, limit: int) -> dict:
        total = await self.db.scalar(
            select(func.count(TimeEntry.id)).where(*criteria)
        ) or 0
        total_minutes = await self.db.scalar(
            select(func.coalesce(func.sum(TimeEntry.duration), 0)).where(*criteria)
        ) or 0

        result = await self.db.execute(
            select(TimeEntry)
            .where(*criteria)
            .order_by(TimeEntry.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "time_logs": list(result.scalars().all()),
            "total": total,
            "total_time_in_minutes": int(total_minutes),
            "total_time_in_hours": round(total_minutes / 60, 2),
            "pages": math.ceil(total / limit) if limit else 0,
        }

    async def _get_authorized(
        self, time_entry_id: UUID, caller_id: UUID, caller_role: str
    ) -> TimeEntry:
        entry = await self.db.get(TimeEntry, time_entry_id)
        if entry is None:
            raise NotFoundError("Time tracking record", time_entry_id)
        if entry.user_id != caller_id and caller_role != "admin":
            raise ForbiddenError("Unauthorized")
        return entry

    async def _increment_task_time(self, task_id: UUID, minutes: int) -> None:
        # Atomic increment; leaves version_id alone so lifecycle writes
        # are not invalidated by time bookkeeping
        await self.db.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(time_tracked=Task.time_tracked + minutes)
            .execution_options(synchronize_session="fetch")
        )
