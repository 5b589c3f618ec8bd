"""User model.

Credentials live with the external authenticator; this table only keeps
what the task engine needs: identity, role and notification preferences.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from taskhub.db.base import BaseModel, JSONType

USER_ROLES = ("admin", "member")

DEFAULT_NOTIFICATION_PREFERENCES = {
    "email_notifications": True,
    "task_reminders": True,
    "comment_notifications": True,
    "assignment_notifications": True,
}


class User(BaseModel):
    """Application user."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    profile_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="member", index=True
    )  # admin, member

    notification_preferences: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=lambda: dict(DEFAULT_NOTIFICATION_PREFERENCES),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        try:
            return f"<User {self.email}>"
        except Exception:
            return "<User detached>"
