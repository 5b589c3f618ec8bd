"""Task lifecycle service.

The only code path that writes a task's status, progress, checklist,
assignees or dependencies. Every write goes through the progress
calculator before it is flushed, and every flush is a compare-and-swap on
``tasks.version_id``, so two concurrent writers can never leave a progress
value that disagrees with the checklist that won.
"""

from datetime import date, datetime, time, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.session import commit_or_raise
from taskhub.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from taskhub.models.task import (
    DEPENDENCY_TYPES,
    STATUS_COMPLETED,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Task,
    TaskAssignee,
    TaskView,
    assigned_to_user,
)
from taskhub.models.user import User
from taskhub.services import progress as calculator
from taskhub.services.events import (
    DomainEvent,
    EventPublisher,
    FieldChange,
    TaskAssigned,
    TaskCompleted,
    TaskCreated,
    TaskDeleted,
    TaskReopened,
    TaskStatusChanged,
    TaskUpdated,
)
from taskhub.utils import clock

logger = structlog.get_logger()

# Fields updatable through update_task, in the order they are applied
MERGEABLE_FIELDS = (
    "title",
    "description",
    "priority",
    "due_date",
    "todo_checklist",
    "attachments",
    "assigned_to",
)


def parse_due_date(value: Any) -> datetime:
    """Accept a datetime, a date or an ISO-8601 string; return aware UTC."""
    if isinstance(value, datetime):
        return clock.as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            return clock.as_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ValidationError("dueDate must be a valid date", field="due_date")


def normalize_assignees(value: Any) -> list[UUID]:
    """Validate an assignee list; drop duplicates keeping first occurrence."""
    if not isinstance(value, (list, tuple)):
        raise ValidationError("assignedTo must be an array of user IDs", field="assigned_to")
    try:
        ids = [v if isinstance(v, UUID) else UUID(str(v)) for v in value]
    except ValueError:
        raise ValidationError("assignedTo must contain valid user IDs", field="assigned_to")
    return list(dict.fromkeys(ids))


def _validate_title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Title is required", field="title")
    return value.strip()


def _validate_priority(value: Any) -> str:
    if value not in TASK_PRIORITIES:
        raise ValidationError(
            f"priority must be one of {', '.join(TASK_PRIORITIES)}", field="priority"
        )
    return value


def _validate_attachments(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError("attachments must be an array of strings", field="attachments")
    return list(value)


class TaskLifecycleService:
    """Create, read and mutate tasks while keeping their invariants."""

    def __init__(self, db: AsyncSession, publisher: EventPublisher | None = None):
        self.db = db
        self.publisher = publisher or EventPublisher()

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_task(self, task_id: UUID) -> Task:
        result = await self.db.execute(select(Task).where(Task.id == task_id))
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def list_tasks(
        self,
        caller_id: UUID,
        caller_role: str,
        status: str | None = None,
    ) -> dict:
        """Tasks visible to the caller plus per-status counts.

        Admins see every task, members only the tasks assigned to them. The
        summary covers the caller's whole scope, ignoring ``status``.
        """
        if status is not None and status not in TASK_STATUSES:
            raise ValidationError("Invalid status value", field="status")

        scope = [] if caller_role == "admin" else [assigned_to_user(caller_id)]

        query = select(Task).where(*scope).order_by(Task.created_at.desc())
        if status:
            query = query.where(Task.status == status)
        tasks = list((await self.db.execute(query)).scalars().all())

        counts = dict.fromkeys(TASK_STATUSES, 0)
        rows = await self.db.execute(
            select(Task.status, func.count(Task.id)).where(*scope).group_by(Task.status)
        )
        for row_status, count in rows.all():
            counts[row_status] = count

        return {
            "tasks": tasks,
            "status_summary": {
                "all": sum(counts.values()),
                "pending_tasks": counts["Pending"],
                "in_progress_tasks": counts["In-Progress"],
                "completed_tasks": counts["Completed"],
            },
        }

    # =========================================================================
    # Create / update / delete
    # =========================================================================

    async def create_task(
        self,
        title: str,
        due_date: Any,
        creator_id: UUID,
        assigned_to: Any,
        description: str | None = None,
        priority: str | None = None,
        todo_checklist: Any = None,
        attachments: Any = None,
        template_id: UUID | None = None,
    ) -> Task:
        """Create a task; progress and status come from the checklist."""
        title = _validate_title(title)
        if due_date is None:
            raise ValidationError("dueDate is required", field="due_date")
        due = parse_due_date(due_date)
        assignee_ids = normalize_assignees(assigned_to)
        priority = _validate_priority(priority or "Medium")
        checklist = calculator.normalize_checklist(todo_checklist)
        attachments = _validate_attachments(attachments or [])
        await self._ensure_users_exist(assignee_ids)

        progress, status = calculator.compute_progress(checklist)

        task = Task(
            title=title,
            description=description,
            priority=priority,
            status=status,
            progress=progress,
            due_date=due,
            created_by_id=creator_id,
            todo_checklist=checklist,
            dependencies=[],
            attachments=attachments,
            time_tracked=0,
            template_id=template_id,
            assignees=[
                TaskAssignee(user_id=user_id, position=position)
                for position, user_id in enumerate(assignee_ids)
            ],
            views=[],
            comments=[],
        )
        self.db.add(task)
        await commit_or_raise(self.db, entity="Task")

        logger.info(
            "task_created",
            task_id=str(task.id),
            assignee_count=len(assignee_ids),
            template_id=str(template_id) if template_id else None,
        )

        events: list[DomainEvent] = [
            TaskCreated(task.id, task.title, creator_id, template_id=template_id)
        ]
        events.extend(
            TaskAssigned(task.id, task.title, creator_id, assignee_id=user_id, due_date=due)
            for user_id in assignee_ids
        )
        await self.publisher.publish(*events)
        return task

    async def update_task(self, task_id: UUID, fields: dict, actor_id: UUID) -> Task:
        """Shallow-merge ``fields`` into the task.

        Falsy values (``None``, ``""``, ``[]``) mean "leave unchanged"; a
        field cannot be cleared through this call. Assignment changes only
        announce the newly added users.
        """
        task = await self.get_task(task_id)

        # Validate everything before touching the task
        provided: dict[str, Any] = {}
        for name in MERGEABLE_FIELDS:
            value = fields.get(name)
            if not value:
                continue
            if name == "title":
                provided[name] = _validate_title(value)
            elif name == "priority":
                provided[name] = _validate_priority(value)
            elif name == "due_date":
                provided[name] = parse_due_date(value)
            elif name == "todo_checklist":
                provided[name] = calculator.normalize_checklist(value)
            elif name == "attachments":
                provided[name] = _validate_attachments(value)
            elif name == "assigned_to":
                provided[name] = normalize_assignees(value)
            else:
                provided[name] = value

        if "assigned_to" in provided:
            await self._ensure_users_exist(provided["assigned_to"])

        changes: list[FieldChange] = []
        old_status = task.status
        old_assignees = task.assigned_to
        added_assignees: list[UUID] = []

        for name, value in provided.items():
            if name == "assigned_to":
                if value != old_assignees:
                    self._set_assignees(task, value)
                    added_assignees = [u for u in value if u not in set(old_assignees)]
                    changes.append(FieldChange("assigned_to", old_assignees, value))
                continue

            current = getattr(task, name)
            if name == "due_date":
                current = clock.as_utc(current)
            if value == current:
                continue
            changes.append(FieldChange(name, current, value))
            setattr(task, name, value)

            if name == "todo_checklist":
                task.progress, task.status = calculator.compute_progress(value)

        if not changes:
            return task

        task.updated_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Task")

        logger.info(
            "task_updated",
            task_id=str(task_id),
            fields=[c.field_name for c in changes],
            added_assignees=len(added_assignees),
        )

        events: list[DomainEvent] = [TaskUpdated(task.id, task.title, actor_id, tuple(changes))]
        events.extend(
            TaskAssigned(task.id, task.title, actor_id, assignee_id=user_id, due_date=task.due_date)
            for user_id in added_assignees
        )
        events.extend(self._status_events(task, old_status, actor_id))
        await self.publisher.publish(*events)
        return task

    async def delete_task(self, task_id: UUID, actor_id: UUID) -> None:
        """Delete a task and its comments.

        Time entries, notifications and activity records referencing the
        task are kept.
        """
        task = await self.get_task(task_id)
        title = task.title

        await self.db.delete(task)
        await commit_or_raise(self.db, entity="Task")

        logger.info("task_deleted", task_id=str(task_id))
        await self.publisher.publish(TaskDeleted(task_id, title, actor_id))

    # =========================================================================
    # Status and checklist
    # =========================================================================

    async def set_status(self, task_id: UUID, new_status: str, actor_id: UUID) -> Task:
        """Set the status directly.

        Completed forces every checklist item done and progress to 100.
        Other values are stored as given, checklist and progress untouched.
        """
        if new_status not in TASK_STATUSES:
            raise ValidationError("Invalid status value", field="status")

        task = await self.get_task(task_id)
        old_status = task.status

        if new_status == STATUS_COMPLETED:
            task.todo_checklist = calculator.complete_all(task.todo_checklist)
            task.progress = 100
        task.status = new_status

        task.updated_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Task")

        logger.info(
            "task_status_set",
            task_id=str(task_id),
            old_status=old_status,
            new_status=new_status,
        )
        await self.publisher.publish(*self._status_events(task, old_status, actor_id))
        return task

    async def replace_checklist(
        self,
        task_id: UUID,
        checklist: Any,
        actor_id: UUID,
        actor_role: str,
    ) -> Task:
        """Replace the checklist; progress and status are re-derived from it."""
        task = await self.get_task(task_id)

        if not task.is_assigned(actor_id) and actor_role != "admin":
            raise ForbiddenError("Not authorized to update checklist")

        items = calculator.normalize_checklist(checklist)
        old_status = task.status

        task.todo_checklist = items
        task.progress, task.status = calculator.compute_progress(items)

        task.updated_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Task")

        logger.info(
            "task_checklist_replaced",
            task_id=str(task_id),
            items=len(items),
            progress=task.progress,
            status=task.status,
        )
        await self.publisher.publish(*self._status_events(task, old_status, actor_id))
        return task

    # =========================================================================
    # Dependencies
    # =========================================================================

    async def add_dependency(
        self,
        task_id: UUID,
        depends_on_task_id: UUID,
        dependency_type: str | None = None,
    ) -> Task:
        """Link another task. Cycles are not detected."""
        dependency_type = dependency_type or "blockedBy"
        if dependency_type not in DEPENDENCY_TYPES:
            raise ValidationError(
                f"type must be one of {', '.join(DEPENDENCY_TYPES)}", field="type"
            )

        task = await self.get_task(task_id)
        if any(d["task_id"] == str(depends_on_task_id) for d in task.dependencies):
            raise ConflictError("Dependency already exists")
        if await self.db.get(Task, depends_on_task_id) is None:
            raise NotFoundError("Task", depends_on_task_id)

        task.dependencies = [
            *task.dependencies,
            {"task_id": str(depends_on_task_id), "type": dependency_type},
        ]
        task.updated_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Task")

        logger.info(
            "task_dependency_added",
            task_id=str(task_id),
            depends_on=str(depends_on_task_id),
            type=dependency_type,
        )
        return task

    async def remove_dependency(self, task_id: UUID, depends_on_task_id: UUID) -> Task:
        """Remove a dependency; absent entries are ignored."""
        task = await self.get_task(task_id)
        remaining = [d for d in task.dependencies if d["task_id"] != str(depends_on_task_id)]
        if len(remaining) == len(task.dependencies):
            return task

        task.dependencies = remaining
        task.updated_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Task")

        logger.info(
            "task_dependency_removed",
            task_id=str(task_id),
            depends_on=str(depends_on_task_id),
        )
        return task

    # =========================================================================
    # Views
    # =========================================================================

    async def mark_viewed(self, task_id: UUID, user_id: UUID) -> Task:
        """Record that ``user_id`` opened the task and stamp lastViewedAt."""
        task = await self.get_task(task_id)

        if user_id not in task.viewed_by:
            try:
                async with self.db.begin_nested():
                    self.db.add(TaskView(task_id=task_id, user_id=user_id))
            except IntegrityError:
                # Recorded by a concurrent request; set semantics hold
                logger.debug("task_view_exists", task_id=str(task_id), user_id=str(user_id))

        # Plain column write: no version bump, never conflicts with edits
        await self.db.execute(
            update(Task)
            .where(Task.id == task_id)
            .values(last_viewed_at=clock.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        await commit_or_raise(self.db, entity="Task")
        return await self._reload(task_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _set_assignees(self, task: Task, user_ids: list[UUID]) -> None:
        # Reuse existing rows so retained users are never deleted and
        # re-inserted (which would trip uq_task_assignee mid-flush)
        existing = {a.user_id: a for a in task.assignees}
        rows = []
        for position, user_id in enumerate(user_ids):
            row = existing.get(user_id) or TaskAssignee(user_id=user_id)
            row.position = position
            rows.append(row)
        task.assignees = rows

    def _status_events(self, task: Task, old_status: str, actor_id: UUID) -> list[DomainEvent]:
        if task.status == old_status:
            return []
        events: list[DomainEvent] = [
            TaskStatusChanged(
                task.id,
                task.title,
                actor_id,
                old_status=old_status,
                new_status=task.status,
                assignee_ids=tuple(task.assigned_to),
            )
        ]
        if task.status == STATUS_COMPLETED:
            events.append(TaskCompleted(task.id, task.title, actor_id))
        elif old_status == STATUS_COMPLETED:
            events.append(TaskReopened(task.id, task.title, actor_id, new_status=task.status))
        return events

    async def _ensure_users_exist(self, user_ids: list[UUID]) -> None:
        if not user_ids:
            return
        result = await self.db.execute(select(User.id).where(User.id.in_(user_ids)))
        missing = set(user_ids) - set(result.scalars().all())
        if missing:
            raise NotFoundError("User", sorted(str(m) for m in missing)[0])

    async def _reload(self, task_id: UUID) -> Task:
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
