"""Activity and notification models for tracking user actions and alerts."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskhub.db.base import BaseModel, JSONType

ACTIVITY_ACTIONS = (
    "created",
    "updated",
    "deleted",
    "status_changed",
    "assigned",
    "commented",
    "attachment_added",
    "priority_changed",
    "due_date_changed",
    "description_updated",
    "task_completed",
    "task_reopened",
)

NOTIFICATION_TYPES = (
    "task_assigned",
    "task_due_soon",
    "task_overdue",
    "task_completed",
    "comment_mention",
    "task_status_changed",
    "task_reminder",
    "team_assignment",
    "general",
)

NOTIFICATION_PRIORITIES = ("low", "medium", "high")


class ActivityRecord(BaseModel):
    """
    Append-only audit entry for something that happened to a task.

    Records are never updated or deleted, and outlive the task they
    reference (``task_id`` carries no foreign key).
    """

    __tablename__ = "activity_records"

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Task the activity happened on",
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Actor",
    )
    action: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
        comment="Action verb (created, status_changed, assigned, ...)",
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Human-readable description of the activity",
    )
    changes: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="{field_name, old_value, new_value}",
    )


class Notification(BaseModel):
    """
    Per-user projection of a domain event.

    Only the read state changes after creation; the owner may delete it.
    """

    __tablename__ = "notifications"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        comment="Weak reference to the task the notification is about",
    )
    sender_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="general", index=True
    )
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")
    action_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Status
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Email delivery is handled elsewhere; these are only written here
    send_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_error: Mapped[str | None] = mapped_column(Text, nullable=True)
