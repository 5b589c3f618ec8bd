"""
Tests for timers, manual entries and the task time aggregate.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from taskhub.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from taskhub.models.task import Task
from taskhub.models.time_entry import TimeEntry
from taskhub.services.time_tracking import TimeTrackingService


@pytest.fixture()
def tracker(db) -> TimeTrackingService:
    return TimeTrackingService(db)


@pytest.fixture()
async def task(lifecycle, admin, alice) -> Task:
    return await lifecycle.create_task(
        title="Build the importer",
        due_date="2026-03-20",
        creator_id=admin.id,
        assigned_to=[alice.id],
    )


@pytest.fixture()
async def other_task(lifecycle, admin, alice) -> Task:
    return await lifecycle.create_task(
        title="Review the importer",
        due_date="2026-03-21",
        creator_id=admin.id,
        assigned_to=[alice.id],
    )


async def _running_count(db, user_id) -> int:
    return await db.scalar(
        select(func.count(TimeEntry.id)).where(
            TimeEntry.user_id == user_id, TimeEntry.is_running.is_(True)
        )
    )


async def _time_tracked(db, task_id) -> int:
    return await db.scalar(select(Task.time_tracked).where(Task.id == task_id))


async def test_start_stops_previous_timer(db, tracker, task, other_task, alice, fake_clock):
    """Scenario: a second start leaves one running entry, the first with duration 0."""
    first = await tracker.start(task.id, alice.id)
    fake_clock.advance(minutes=12)
    second = await tracker.start(other_task.id, alice.id)

    await db.refresh(first)
    assert first.is_running is False
    assert first.end_time is not None
    assert first.duration == 0
    assert second.is_running is True
    assert second.task_id == other_task.id
    assert await _running_count(db, alice.id) == 1


async def test_start_twice_on_same_task_keeps_single_timer(db, tracker, task, alice, fake_clock):
    await tracker.start(task.id, alice.id)
    await tracker.start(task.id, alice.id)

    assert await _running_count(db, alice.id) == 1


async def test_racing_starts_leave_one_running_timer(session_factory, task, other_task, alice, fake_clock):
    alice_id = alice.id

    async def start(task_id):
        async with session_factory() as session:
            return await TimeTrackingService(session).start(task_id, alice_id)

    results = await asyncio.gather(start(task.id), start(other_task.id), return_exceptions=True)

    # A losing start may only fail with ConflictError
    assert all(isinstance(r, (TimeEntry, ConflictError)) for r in results), results
    assert any(isinstance(r, TimeEntry) for r in results)
    async with session_factory() as check:
        assert await _running_count(check, alice_id) == 1


async def test_timers_of_different_users_are_independent(db, tracker, task, alice, bob, fake_clock):
    await tracker.start(task.id, alice.id)
    await tracker.start(task.id, bob.id)

    assert await _running_count(db, alice.id) == 1
    assert await _running_count(db, bob.id) == 1


async def test_stop_records_rounded_duration(db, tracker, task, alice, fake_clock):
    entry = await tracker.start(task.id, alice.id, description="parser", category="Development")
    fake_clock.advance(minutes=25, seconds=40)

    entry = await tracker.stop(entry.id, alice.id, alice.role)

    assert entry.duration == 26
    assert entry.is_running is False
    assert entry.end_time == fake_clock.now
    assert await _time_tracked(db, task.id) == 26


async def test_stopping_twice_does_not_double_count(db, tracker, task, alice, fake_clock):
    entry = await tracker.start(task.id, alice.id)
    fake_clock.advance(minutes=10)
    await tracker.stop(entry.id, alice.id, alice.role)

    fake_clock.advance(minutes=5)
    entry = await tracker.stop(entry.id, alice.id, alice.role)

    assert entry.duration == 15
    assert await _time_tracked(db, task.id) == 15


async def test_pause_and_resume_only_count_last_span(db, tracker, task, alice, fake_clock):
    entry = await tracker.start(task.id, alice.id)
    fake_clock.advance(minutes=10)
    entry = await tracker.pause(entry.id, alice.id, alice.role)
    assert entry.is_running is False
    assert entry.duration == 0
    assert entry.end_time is None

    fake_clock.advance(minutes=5)
    await tracker.resume(entry.id, alice.id, alice.role)
    fake_clock.advance(minutes=7)
    entry = await tracker.stop(entry.id, alice.id, alice.role)

    assert entry.duration == 7
    assert await _time_tracked(db, task.id) == 7


async def test_resume_is_rejected_while_another_timer_runs(db, tracker, task, other_task, alice, fake_clock):
    # The failed commit rolls back and expires everything in the session
    alice_id, role = alice.id, alice.role
    paused = await tracker.start(task.id, alice_id)
    paused_id = paused.id
    await tracker.pause(paused_id, alice_id, role)
    await tracker.start(other_task.id, alice_id)

    with pytest.raises(ConflictError):
        await tracker.resume(paused_id, alice_id, role)

    assert await _running_count(db, alice_id) == 1


async def test_only_owner_or_admin_may_control_timer(tracker, task, alice, bob, admin, fake_clock):
    entry = await tracker.start(task.id, alice.id)

    with pytest.raises(ForbiddenError):
        await tracker.stop(entry.id, bob.id, bob.role)
    with pytest.raises(ForbiddenError):
        await tracker.pause(entry.id, bob.id, bob.role)

    fake_clock.advance(minutes=3)
    stopped = await tracker.stop(entry.id, admin.id, admin.role)
    assert stopped.duration == 3


async def test_unknown_entry_and_task(tracker, alice):
    with pytest.raises(NotFoundError):
        await tracker.stop(uuid4(), alice.id, alice.role)
    with pytest.raises(NotFoundError):
        await tracker.start(uuid4(), alice.id)


async def test_invalid_category_is_rejected(tracker, task, alice):
    with pytest.raises(ValidationError):
        await tracker.start(task.id, alice.id, category="Meetings")


async def test_manual_entry_counts_immediately(db, tracker, task, alice, fake_clock):
    entry = await tracker.add_manual_entry(task.id, alice.id, 45, description="pairing")

    assert entry.is_running is False
    assert entry.duration == 45
    assert entry.end_time == fake_clock.now
    assert (fake_clock.now - entry.start_time).total_seconds() == 45 * 60
    assert await _time_tracked(db, task.id) == 45


async def test_manual_entry_keeps_given_start_time(tracker, task, alice, fake_clock):
    start = datetime(2026, 3, 1, 14, 0, tzinfo=timezone.utc)
    entry = await tracker.add_manual_entry(task.id, alice.id, 30, start_time=start)

    assert entry.start_time == start


@pytest.mark.parametrize("duration", [0, -5, True])
async def test_manual_entry_requires_positive_minutes(tracker, task, alice, duration):
    with pytest.raises(ValidationError):
        await tracker.add_manual_entry(task.id, alice.id, duration)


async def test_task_total_matches_sum_of_entries(db, tracker, task, alice, bob, fake_clock):
    entry = await tracker.start(task.id, alice.id)
    fake_clock.advance(minutes=20)
    await tracker.stop(entry.id, alice.id, alice.role)
    await tracker.add_manual_entry(task.id, bob.id, 15)

    logs = await tracker.list_task_logs(task.id)

    assert logs["total"] == 2
    assert logs["total_time_in_minutes"] == 35
    assert logs["total_time_in_hours"] == 0.58
    assert logs["pages"] == 1
    assert await _time_tracked(db, task.id) == 35


async def test_user_logs_are_paged_and_filtered(tracker, task, alice, bob):
    for minutes in (10, 20, 30):
        await tracker.add_manual_entry(task.id, alice.id, minutes)
    await tracker.add_manual_entry(task.id, bob.id, 99)

    page = await tracker.list_user_logs(alice.id, page=1, limit=2)
    assert page["total"] == 3
    assert page["pages"] == 2
    assert len(page["time_logs"]) == 2
    assert page["total_time_in_minutes"] == 60

    today = datetime.now(timezone.utc).date()
    assert (await tracker.list_user_logs(alice.id, start_date=today))["total"] == 3
    assert (await tracker.list_user_logs(alice.id, end_date=today - timedelta(days=1)))["total"] == 0