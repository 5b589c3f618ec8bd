"""Task comments."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskhub.db.base import BaseModel, JSONType

if TYPE_CHECKING:
    from taskhub.models.task import Task


class TaskComment(BaseModel):
    """Comment on a task; removed together with its task."""

    __tablename__ = "task_comments"

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # User id strings
    mentions: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    likes: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    # [{"author_id": str, "content": str, "created_at": iso8601}]
    replies: Mapped[list[dict]] = mapped_column(JSONType, nullable=False, default=list)

    edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    task: Mapped["Task"] = relationship("Task", back_populates="comments")

    __mapper_args__ = {"version_id_col": version_id}
