"""
Tests for dashboard aggregation.
"""
from datetime import datetime, timedelta, timezone

import pytest

from taskhub.services.reporting import DashboardService

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
async def seeded(lifecycle, admin, alice, bob):
    """Five tasks with a mix of states, priorities and due dates."""

    async def make(title, assignees, due, priority="Medium", done=0, total=0):
        return await lifecycle.create_task(
            title=title,
            due_date=due,
            creator_id=admin.id,
            assigned_to=[u.id for u in assignees],
            priority=priority,
            todo_checklist=[{"text": str(i), "completed": i < done} for i in range(total)],
        )

    return [
        await make("late pending", [alice], NOW - timedelta(days=2), "High"),
        await make("late but done", [alice], NOW - timedelta(days=1), done=1, total=1),
        await make("halfway", [alice, bob], NOW + timedelta(days=3), "Low", done=1, total=2),
        await make("bob late", [bob], NOW - timedelta(hours=1), "High"),
        await make("unassigned", [], NOW + timedelta(days=5)),
    ]


async def test_admin_dashboard_covers_all_tasks(db, seeded):
    data = await DashboardService(db).get_dashboard(now=NOW)

    assert data["statistics"] == {
        "total_tasks": 5,
        "pending_tasks": 3,
        "completed_tasks": 1,
        "overdue_tasks": 2,
    }
    assert data["charts"]["task_distribution"] == {
        "Pending": 3,
        "In-Progress": 1,
        "Completed": 1,
        "All": 5,
    }
    assert data["charts"]["task_priority_levels"] == {"Low": 1, "Medium": 2, "High": 2}


async def test_member_dashboard_is_scoped(db, seeded, alice):
    data = await DashboardService(db).get_dashboard(user_id=alice.id, now=NOW)

    assert data["statistics"] == {
        "total_tasks": 3,
        "pending_tasks": 1,
        "completed_tasks": 1,
        "overdue_tasks": 1,
    }
    # Every enum value is present even when zero
    assert data["charts"]["task_priority_levels"] == {"Low": 1, "Medium": 1, "High": 1}
    assert {t.title for t in data["recent_tasks"]} == {"late pending", "late but done", "halfway"}


async def test_empty_dashboard_has_zeroed_distributions(db, bob):
    data = await DashboardService(db).get_dashboard(user_id=bob.id, now=NOW)

    assert data["statistics"]["total_tasks"] == 0
    assert data["charts"]["task_distribution"] == {
        "Pending": 0,
        "In-Progress": 0,
        "Completed": 0,
        "All": 0,
    }
    assert data["recent_tasks"] == []


async def test_recent_tasks_are_newest_first_and_limited(db, seeded):
    data = await DashboardService(db).get_dashboard(now=NOW, recent_limit=2)

    assert [t.title for t in data["recent_tasks"]] == ["unassigned", "bob late"]


async def test_dashboard_reflects_latest_state(db, lifecycle, seeded, admin):
    await lifecycle.set_status(seeded[0].id, "Completed", admin.id)

    data = await DashboardService(db).get_dashboard(now=NOW)

    assert data["statistics"]["completed_tasks"] == 2
    assert data["statistics"]["overdue_tasks"] == 1


async def test_overdue_list_is_scoped_and_sorted(db, seeded, admin, alice, bob):
    service = DashboardService(db)

    everyone = await service.list_overdue(admin.id, admin.role, now=NOW)
    assert [t.title for t in everyone] == ["late pending", "bob late"]

    assert [t.title for t in await service.list_overdue(bob.id, bob.role, now=NOW)] == ["bob late"]
    assert [t.title for t in await service.list_overdue(alice.id, alice.role, now=NOW)] == [
        "late pending"
    ]
