"""Notification service and event dispatcher."""

import math
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskhub.db.session import commit_or_raise
from taskhub.exceptions import NotFoundError, ValidationError
from taskhub.models.activity import NOTIFICATION_PRIORITIES, NOTIFICATION_TYPES, Notification
from taskhub.models.user import DEFAULT_NOTIFICATION_PREFERENCES, User
from taskhub.services.events import (
    CommentAdded,
    DomainEvent,
    TaskAssigned,
    TaskCompleted,
    TaskStatusChanged,
)
from taskhub.utils import clock

logger = structlog.get_logger()


class NotificationService:
    """Creating notifications and managing their read state."""

    # Map notification types to preference fields
    TYPE_TO_PREFERENCE = {
        "task_assigned": "assignment_notifications",
        "team_assignment": "assignment_notifications",
        "comment_mention": "comment_notifications",
        "task_due_soon": "task_reminders",
        "task_overdue": "task_reminders",
        "task_reminder": "task_reminders",
    }

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: str = "general",
        task_id: UUID | None = None,
        action_url: str | None = None,
        priority: str = "medium",
        sender_id: UUID | None = None,
    ) -> Notification | None:
        """
        Create a notification for a user if their preferences allow.

        Returns:
            Created Notification, or None when the recipient is the sender,
            does not exist, or has muted this kind of notification.
        """
        if notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {notification_type}")
        if priority not in NOTIFICATION_PRIORITIES:
            raise ValidationError(f"Unknown notification priority: {priority}")

        # Don't notify users about their own actions
        if sender_id and sender_id == user_id:
            logger.debug(
                "skipping_self_notification",
                user_id=str(user_id),
                notification_type=notification_type,
            )
            return None

        user = await self.db.get(User, user_id)
        if user is None:
            logger.debug("notification_recipient_missing", user_id=str(user_id))
            return None

        prefs = {**DEFAULT_NOTIFICATION_PREFERENCES, **(user.notification_preferences or {})}
        pref_field = self.TYPE_TO_PREFERENCE.get(notification_type)
        if pref_field and not prefs.get(pref_field, True):
            logger.debug(
                "notification_type_disabled",
                user_id=str(user_id),
                notification_type=notification_type,
            )
            return None

        notification = Notification(
            user_id=user_id,
            task_id=task_id,
            sender_id=sender_id,
            title=title,
            message=message,
            notification_type=notification_type,
            priority=priority,
            action_url=action_url,
            send_email=bool(prefs.get("email_notifications")),
            read=False,
        )
        self.db.add(notification)
        await commit_or_raise(self.db, entity="Notification")

        logger.info(
            "notification_created",
            notification_id=str(notification.id),
            user_id=str(user_id),
            notification_type=notification_type,
        )
        return notification

    async def list_for_user(
        self,
        user_id: UUID,
        read: bool | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        query = select(Notification).where(Notification.user_id == user_id)
        if read is not None:
            query = query.where(Notification.read == read)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0
        unread_count = await self.db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
        ) or 0

        result = await self.db.execute(
            query.order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "notifications": list(result.scalars().all()),
            "total": total,
            "unread_count": unread_count,
            "pages": math.ceil(total / limit) if limit else 0,
        }

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        notification = await self._get_owned(notification_id, user_id)
        notification.read = True
        notification.read_at = clock.utcnow()
        await commit_or_raise(self.db, entity="Notification")
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read.is_(False))
            .values(read=True, read_at=clock.utcnow())
        )
        await commit_or_raise(self.db, entity="Notification")
        logger.info("notifications_marked_read", user_id=str(user_id), count=result.rowcount)
        return result.rowcount

    async def delete(self, notification_id: UUID, user_id: UUID) -> None:
        notification = await self._get_owned(notification_id, user_id)
        await self.db.delete(notification)
        await commit_or_raise(self.db, entity="Notification")

    async def clear_all(self, user_id: UUID) -> int:
        result = await self.db.execute(
            delete(Notification).where(Notification.user_id == user_id)
        )
        await commit_or_raise(self.db, entity="Notification")
        logger.info("notifications_cleared", user_id=str(user_id), count=result.rowcount)
        return result.rowcount

    async def get_preferences(self, user_id: UUID) -> dict:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return {**DEFAULT_NOTIFICATION_PREFERENCES, **(user.notification_preferences or {})}

    async def update_preferences(self, user_id: UUID, preferences: dict) -> dict:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        unknown = set(preferences) - set(DEFAULT_NOTIFICATION_PREFERENCES)
        if unknown:
            raise ValidationError(f"Unknown preference: {', '.join(sorted(unknown))}")

        merged = {**DEFAULT_NOTIFICATION_PREFERENCES, **(user.notification_preferences or {})}
        merged.update({key: bool(value) for key, value in preferences.items()})
        user.notification_preferences = merged
        await commit_or_raise(self.db, entity="User")
        return merged

    async def _get_owned(self, notification_id: UUID, user_id: UUID) -> Notification:
        # Other users' notifications are reported as missing
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        return notification


class NotificationDispatcher:
    """Best-effort projection of domain events into notifications.

    Every write happens in a session of its own. Failures are logged and
    swallowed, one recipient at a time.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        notification_type: str = "general",
        task_id: UUID | None = None,
        action_url: str | None = None,
        priority: str = "medium",
        sender_id: UUID | None = None,
    ) -> Notification | None:
        try:
            async with self.session_factory() as session:
                return await NotificationService(session).create(
                    user_id=user_id,
                    title=title,
                    message=message,
                    notification_type=notification_type,
                    task_id=task_id,
                    action_url=action_url,
                    priority=priority,
                    sender_id=sender_id,
                )
        except Exception:
            logger.warning(
                "notification_dispatch_failed",
                user_id=str(user_id),
                notification_type=notification_type,
                task_id=str(task_id) if task_id else None,
                exc_info=True,
            )
            return None

    async def notify_many(self, user_ids: list[UUID], **kwargs) -> list[Notification]:
        notifications = []
        for user_id in dict.fromkeys(user_ids):
            notification = await self.notify(user_id=user_id, **kwargs)
            if notification:
                notifications.append(notification)
        return notifications

    async def handle(self, event: DomainEvent) -> None:
        task_url = f"/tasks/{event.task_id}"

        if isinstance(event, TaskAssigned) and event.assignee_id:
            due = f" (due {event.due_date:%Y-%m-%d})" if event.due_date else ""
            await self.notify(
                user_id=event.assignee_id,
                title="New task assigned",
                message=f"You have been assigned to '{event.task_title}'{due}",
                notification_type="task_assigned",
                task_id=event.task_id,
                action_url=task_url,
                priority="high",
                sender_id=event.actor_id,
            )

        elif isinstance(event, TaskCompleted):
            admin_ids = await self._admin_ids()
            await self.notify_many(
                admin_ids,
                title="Task completed",
                message=f"'{event.task_title}' has been completed",
                notification_type="task_completed",
                task_id=event.task_id,
                action_url=task_url,
                sender_id=event.actor_id,
            )

        elif isinstance(event, TaskStatusChanged) and event.assignee_ids:
            await self.notify_many(
                list(event.assignee_ids),
                title="Task status changed",
                message=(
                    f"'{event.task_title}' moved from {event.old_status} "
                    f"to {event.new_status}"
                ),
                notification_type="task_status_changed",
                task_id=event.task_id,
                action_url=task_url,
                priority="low",
                sender_id=event.actor_id,
            )

        elif isinstance(event, CommentAdded) and event.mentioned_ids:
            await self.notify_many(
                list(event.mentioned_ids),
                title="You were mentioned",
                message=f"You were mentioned on '{event.task_title}': {event.excerpt}",
                notification_type="comment_mention",
                task_id=event.task_id,
                action_url=task_url,
                sender_id=event.actor_id,
            )

    async def _admin_ids(self) -> list[UUID]:
        async with self.session_factory() as session:
            result = await session.execute(select(User.id).where(User.role == "admin"))
            return list(result.scalars().all())
