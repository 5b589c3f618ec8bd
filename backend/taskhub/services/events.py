"""Domain events and the in-process publisher.

Managers publish events after their primary commit. Each subscriber is
awaited in turn and isolated: a failing projection is logged and skipped,
it never reaches the caller and never stops the other subscribers.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from taskhub.exceptions import ProjectionError

logger = structlog.get_logger()


@dataclass(frozen=True)
class DomainEvent:
    task_id: UUID
    task_title: str
    actor_id: UUID

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class TaskCreated(DomainEvent):
    template_id: UUID | None = None


@dataclass(frozen=True)
class TaskAssigned(DomainEvent):
    assignee_id: UUID | None = None
    due_date: datetime | None = None


@dataclass(frozen=True)
class FieldChange:
    field_name: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class TaskUpdated(DomainEvent):
    changes: tuple[FieldChange, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TaskStatusChanged(DomainEvent):
    old_status: str = ""
    new_status: str = ""
    assignee_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TaskCompleted(DomainEvent):
    pass


@dataclass(frozen=True)
class TaskReopened(DomainEvent):
    new_status: str = ""


@dataclass(frozen=True)
class TaskDeleted(DomainEvent):
    pass


@dataclass(frozen=True)
class CommentAdded(DomainEvent):
    comment_id: UUID | None = None
    excerpt: str = ""
    mentioned_ids: tuple[UUID, ...] = field(default_factory=tuple)


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventPublisher:
    """Synchronous fan-out of domain events to registered consumers."""

    def __init__(self) -> None:
        self._subscribers: list[tuple[str, EventHandler]] = []

    def subscribe(self, consumer: str, handler: EventHandler) -> None:
        self._subscribers.append((consumer, handler))

    async def publish(self, *events: DomainEvent) -> None:
        for event in events:
            for consumer, handler in self._subscribers:
                try:
                    await handler(event)
                except Exception as exc:
                    error = ProjectionError(consumer, event.name, exc)
                    logger.warning(
                        "projection_failed",
                        consumer=consumer,
                        event_name=event.name,
                        task_id=str(event.task_id),
                        error=error.message,
                        exc_info=True,
                    )


def build_event_publisher(
    session_factory, publisher: EventPublisher | None = None
) -> EventPublisher:
    """Wire the notification and activity projections onto a publisher."""
    from taskhub.services.activity import ActivityRecorder
    from taskhub.services.notification import NotificationDispatcher

    if publisher is None:
        publisher = EventPublisher()
    publisher.subscribe("notifications", NotificationDispatcher(session_factory).handle)
    publisher.subscribe("activity", ActivityRecorder(session_factory).handle)
    return publisher
