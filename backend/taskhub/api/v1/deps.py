"""Shared request dependencies: caller identity, pagination, publisher."""

from functools import lru_cache
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import get_settings
from taskhub.db.session import get_db_session, get_session_factory
from taskhub.models.user import User
from taskhub.services.events import EventPublisher, build_event_publisher

logger = structlog.get_logger()
settings = get_settings()

USER_ID_HEADER = "X-User-ID"


async def get_current_user(
    x_user_id: Annotated[str | None, Header(alias=USER_ID_HEADER)] = None,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Load the caller named by the upstream authenticator."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity",
        )

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


async def get_admin_user(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied, admin only",
        )
    return current_user


@lru_cache
def get_event_publisher() -> EventPublisher:
    """Process-wide publisher feeding the notification and activity projections."""
    return build_event_publisher(get_session_factory())


class Pagination:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    ):
        self.page = page
        self.limit = limit


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_admin_user)]
Publisher = Annotated[EventPublisher, Depends(get_event_publisher)]
Page = Annotated[Pagination, Depends()]
