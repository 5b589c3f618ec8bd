# tests/fakes.py

from datetime import datetime, timedelta

from taskhub.services.events import DomainEvent, EventPublisher


class RecordingPublisher(EventPublisher):
    """
    Publisher that remembers every event it is asked to publish.

    Subscribers registered on it still run, so it can wrap the real
    projections as well.
    """

    def __init__(self) -> None:
        super().__init__()
        self.events: list[DomainEvent] = []

    async def publish(self, *events: DomainEvent) -> None:
        self.events.extend(events)
        await super().publish(*events)

    def named(self, name: str) -> list[DomainEvent]:
        return [e for e in self.events if e.name == name]

    def clear(self) -> None:
        self.events.clear()


class FakeClock:
    """Stand-in for ``clock.utcnow`` that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


def auth(user) -> dict[str, str]:
    """Headers the upstream authenticator would set for ``user``."""
    return {"X-User-ID": str(user.id)}
