"""Time tracking entries."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskhub.db.base import BaseModel

TIME_CATEGORIES = ("Development", "Testing", "Documentation", "Review", "Other")


class TimeEntry(BaseModel):
    """One tracking session or manual entry for a (task, user) pair.

    ``task_id`` is a weak reference: deleting the task leaves its entries in
    place.
    """

    __tablename__ = "time_entries"
    __table_args__ = (
        # At most one running timer per user, enforced by the store
        Index(
            "uq_time_entries_user_running",
            "user_id",
            unique=True,
            postgresql_where=text("is_running"),
            sqlite_where=text("is_running"),
        ),
    )

    task_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Minutes; authoritative once stopped
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(
        String(30), nullable=False, default="Development"
    )
    is_running: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}
