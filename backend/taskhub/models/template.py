"""Reusable task templates."""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskhub.db.base import BaseModel, JSONType

TEMPLATE_CATEGORIES = ("Custom", "Default", "Team", "Standard")


class TaskTemplate(BaseModel):
    """Blueprint a task can be created from."""

    __tablename__ = "task_templates"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Custom", index=True
    )  # Custom, Default, Team, Standard
    default_priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="Medium"
    )
    default_due_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)

    todo_checklist: Mapped[list[dict]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    attachment_template: Mapped[list[str]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    created_by_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        try:
            return f"<TaskTemplate {self.name}>"
        except Exception:
            return "<TaskTemplate detached>"
