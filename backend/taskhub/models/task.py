"""Task model and the rows it owns."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    select,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskhub.db.base import BaseModel, JSONType

if TYPE_CHECKING:
    from taskhub.models.comment import TaskComment

TASK_STATUSES = ("Pending", "In-Progress", "Completed")
TASK_PRIORITIES = ("Low", "Medium", "High")
DEPENDENCY_TYPES = ("blocks", "blockedBy", "relatedTo")

STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED = TASK_STATUSES


class Task(BaseModel):
    """A unit of work assigned to one or more users.

    ``todo_checklist`` and ``dependencies`` are embedded JSON lists owned by
    the task. Assignees live in ``task_assignees`` so that membership
    queries and the no-duplicates rule are enforced by the store.
    """

    __tablename__ = "tasks"

    # Basic info
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status and priority
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Medium", index=True
    )  # Low, Medium, High
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=STATUS_PENDING, index=True
    )  # Pending, In-Progress, Completed
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timeline
    due_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )

    # Ownership
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Embedded documents: [{"text": str, "completed": bool}]
    todo_checklist: Mapped[list[dict]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    # [{"task_id": str, "type": "blocks" | "blockedBy" | "relatedTo"}]
    dependencies: Mapped[list[dict]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    attachments: Mapped[list[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    # Minutes; cache of stopped + manual time entries
    time_tracked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Origin template, if any
    template_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("task_templates.id", ondelete="SET NULL"),
        nullable=True,
    )

    last_viewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    assignees: Mapped[list["TaskAssignee"]] = relationship(
        "TaskAssignee",
        order_by="TaskAssignee.position",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    views: Mapped[list["TaskView"]] = relationship(
        "TaskView",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comments: Mapped[list["TaskComment"]] = relationship(
        "TaskComment",
        back_populates="task",
        order_by="TaskComment.created_at",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Compare-and-swap guard for every ORM flush of this row
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def assigned_to(self) -> list[UUID]:
        return [a.user_id for a in self.assignees]

    @property
    def viewed_by(self) -> list[UUID]:
        return [v.user_id for v in self.views]

    @property
    def comment_ids(self) -> list[UUID]:
        return [c.id for c in self.comments]

    def is_assigned(self, user_id: UUID) -> bool:
        return any(a.user_id == user_id for a in self.assignees)

    def __repr__(self) -> str:
        try:
            return f"<Task {self.title[:30]}>"
        except Exception:
            try:
                return f"<Task id={self.id}>"
            except Exception:
                return "<Task detached>"


class TaskAssignee(BaseModel):
    """Ordered assignment of a user to a task."""

    __tablename__ = "task_assignees"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_assignee"),
    )

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class TaskView(BaseModel):
    """A user has opened the task at least once."""

    __tablename__ = "task_views"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_view"),
    )

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def assigned_to_user(user_id: UUID):
    """SQL criterion: task has ``user_id`` among its assignees."""
    return Task.id.in_(
        select(TaskAssignee.task_id).where(TaskAssignee.user_id == user_id)
    )
