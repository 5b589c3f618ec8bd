"""
Tests for the task lifecycle service: invariants, events and authorization.
"""
import pytest
from sqlalchemy import select

from taskhub.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from taskhub.models.task import Task
from taskhub.services.task_lifecycle import TaskLifecycleService

from .fakes import RecordingPublisher


def _items(done: int, total: int) -> list[dict]:
    return [{"text": f"item {i}", "completed": i < done} for i in range(total)]


async def _make_task(lifecycle, creator, assignees, checklist=None, due=None, **kwargs) -> Task:
    return await lifecycle.create_task(
        title=kwargs.pop("title", "Write quarterly report"),
        due_date=due or "2026-03-09T17:00:00Z",
        creator_id=creator.id,
        assigned_to=[u.id for u in assignees],
        todo_checklist=checklist,
        **kwargs,
    )


# --- createTask ---


async def test_create_task_starts_pending_and_announces_assignees(lifecycle, events, admin, alice, bob):
    task = await _make_task(lifecycle, admin, [alice, bob], checklist=_items(0, 4))

    assert task.status == "Pending"
    assert task.progress == 0
    assert task.assigned_to == [alice.id, bob.id]
    assert task.time_tracked == 0
    assert task.dependencies == []

    assert len(events.named("TaskCreated")) == 1
    assigned = events.named("TaskAssigned")
    assert [e.assignee_id for e in assigned] == [alice.id, bob.id]


async def test_create_task_progress_comes_from_checklist(lifecycle, admin, alice):
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(1, 3))

    assert task.progress == 33
    assert task.status == "In-Progress"


async def test_create_task_drops_duplicate_assignees(lifecycle, admin, alice):
    task = await lifecycle.create_task(
        title="Dedupe",
        due_date="2026-03-09",
        creator_id=admin.id,
        assigned_to=[alice.id, alice.id],
    )
    assert task.assigned_to == [alice.id]


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"title": "  "}, "title"),
        ({"due_date": None}, "due_date"),
        ({"due_date": "next tuesday"}, "due_date"),
        ({"assigned_to": "not-a-list"}, "assigned_to"),
        ({"priority": "Urgent"}, "priority"),
    ],
)
async def test_create_task_validation(lifecycle, admin, overrides, field):
    args = {
        "title": "Valid title",
        "due_date": "2026-03-09",
        "creator_id": admin.id,
        "assigned_to": [],
        **overrides,
    }
    with pytest.raises(ValidationError) as exc_info:
        await lifecycle.create_task(**args)
    assert exc_info.value.field == field


async def test_create_task_with_unknown_assignee_fails(lifecycle, admin):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await lifecycle.create_task(
            title="Ghost", due_date="2026-03-09", creator_id=admin.id, assigned_to=[uuid4()]
        )


# --- replaceChecklist / setStatus ---


async def test_checklist_progression_completes_task_once(lifecycle, events, admin, alice):
    """Scenario: 0/4 -> 2/4 -> 4/4 with a single completion event."""
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(0, 4))

    task = await lifecycle.replace_checklist(task.id, _items(2, 4), alice.id, alice.role)
    assert (task.progress, task.status) == (50, "In-Progress")

    task = await lifecycle.replace_checklist(task.id, _items(4, 4), alice.id, alice.role)
    assert (task.progress, task.status) == (100, "Completed")

    assert len(events.named("TaskCompleted")) == 1


async def test_replace_checklist_reopens_completed_task(lifecycle, events, admin, alice):
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(2, 2))
    assert task.status == "Completed"

    task = await lifecycle.replace_checklist(task.id, _items(1, 2), alice.id, alice.role)

    assert (task.progress, task.status) == (50, "In-Progress")
    reopened = events.named("TaskReopened")
    assert len(reopened) == 1
    assert reopened[0].new_status == "In-Progress"


async def test_replace_checklist_with_empty_list_resets_to_pending(lifecycle, admin, alice):
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(1, 2))

    task = await lifecycle.replace_checklist(task.id, [], alice.id, alice.role)

    assert (task.progress, task.status) == (0, "Pending")


async def test_replace_checklist_requires_assignee_or_admin(lifecycle, db, admin, alice, bob):
    """Scenario: a member outside assignedTo cannot touch the checklist."""
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(0, 2))

    with pytest.raises(ForbiddenError):
        await lifecycle.replace_checklist(task.id, _items(2, 2), bob.id, bob.role)

    stored = await lifecycle.get_task(task.id)
    assert stored.todo_checklist == _items(0, 2)
    assert stored.progress == 0

    # Admins may act without being assigned
    updated = await lifecycle.replace_checklist(task.id, _items(1, 2), admin.id, admin.role)
    assert updated.progress == 50


async def test_set_status_completed_forces_checklist(lifecycle, events, admin, alice):
    """Scenario: completing a 0/3 task marks all three items done."""
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(0, 3))

    task = await lifecycle.set_status(task.id, "Completed", alice.id)

    assert task.status == "Completed"
    assert task.progress == 100
    assert all(item["completed"] for item in task.todo_checklist)
    assert len(task.todo_checklist) == 3
    assert len(events.named("TaskCompleted")) == 1


async def test_set_status_other_values_leave_checklist_alone(lifecycle, admin, alice):
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(1, 4))

    task = await lifecycle.set_status(task.id, "Pending", alice.id)

    assert task.status == "Pending"
    assert task.progress == 25
    assert task.todo_checklist == _items(1, 4)


async def test_set_status_rejects_unknown_value(lifecycle, admin, alice):
    task = await _make_task(lifecycle, admin, [alice])

    with pytest.raises(ValidationError, match="Invalid status value"):
        await lifecycle.set_status(task.id, "Done", alice.id)


async def test_completing_twice_fires_one_completion(lifecycle, events, admin, alice):
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(0, 1))

    await lifecycle.set_status(task.id, "Completed", alice.id)
    await lifecycle.set_status(task.id, "Completed", alice.id)

    assert len(events.named("TaskCompleted")) == 1
    assert len(events.named("TaskStatusChanged")) == 1


# --- updateTask ---


async def test_update_task_announces_only_new_assignees(lifecycle, events, admin, alice, bob):
    """Scenario: [A] -> [A, B] produces exactly one assignment event, for B."""
    task = await _make_task(lifecycle, admin, [alice])
    events.clear()

    task = await lifecycle.update_task(task.id, {"assigned_to": [alice.id, bob.id]}, admin.id)

    assert task.assigned_to == [alice.id, bob.id]
    assigned = events.named("TaskAssigned")
    assert len(assigned) == 1
    assert assigned[0].assignee_id == bob.id


async def test_update_task_can_reorder_and_drop_assignees(lifecycle, events, admin, alice, bob):
    task = await _make_task(lifecycle, admin, [alice, bob])
    events.clear()

    task = await lifecycle.update_task(task.id, {"assigned_to": [bob.id]}, admin.id)

    assert task.assigned_to == [bob.id]
    assert events.named("TaskAssigned") == []


async def test_update_task_treats_falsy_values_as_unchanged(lifecycle, events, admin, alice):
    task = await _make_task(
        lifecycle, admin, [alice], checklist=_items(1, 2), description="Keep me"
    )
    events.clear()

    task = await lifecycle.update_task(
        task.id,
        {"title": "", "description": None, "todo_checklist": [], "assigned_to": []},
        admin.id,
    )

    assert task.title == "Write quarterly report"
    assert task.description == "Keep me"
    assert task.todo_checklist == _items(1, 2)
    assert task.assigned_to == [alice.id]
    assert events.events == []


async def test_update_task_merges_fields_and_records_changes(lifecycle, events, admin, alice):
    task = await _make_task(lifecycle, admin, [alice])
    events.clear()

    task = await lifecycle.update_task(
        task.id,
        {"priority": "High", "due_date": "2026-04-01", "attachments": ["brief.pdf"]},
        admin.id,
    )

    assert task.priority == "High"
    assert task.attachments == ["brief.pdf"]
    updated = events.named("TaskUpdated")
    assert len(updated) == 1
    assert {c.field_name for c in updated[0].changes} == {"priority", "due_date", "attachments"}


async def test_update_task_checklist_recomputes_progress(lifecycle, events, admin, alice):
    task = await _make_task(lifecycle, admin, [alice], checklist=_items(0, 2))

    task = await lifecycle.update_task(task.id, {"todo_checklist": _items(2, 2)}, admin.id)

    assert (task.progress, task.status) == (100, "Completed")
    assert len(events.named("TaskCompleted")) == 1


async def test_update_task_validates_before_mutating(lifecycle, admin, alice):
    task = await _make_task(lifecycle, admin, [alice])

    with pytest.raises(ValidationError):
        await lifecycle.update_task(
            task.id, {"title": "Renamed", "assigned_to": "alice"}, admin.id
        )

    stored = await lifecycle.get_task(task.id)
    assert stored.title == "Write quarterly report"


async def test_update_missing_task_fails(lifecycle, admin):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await lifecycle.update_task(uuid4(), {"title": "x"}, admin.id)


# --- dependencies ---


async def test_duplicate_dependency_is_rejected(lifecycle, admin, alice):
    """Scenario: second link to the same task fails and keeps the first type."""
    t1 = await _make_task(lifecycle, admin, [alice], title="First")
    t2 = await _make_task(lifecycle, admin, [alice], title="Second")

    await lifecycle.add_dependency(t1.id, t2.id, "blockedBy")
    with pytest.raises(ConflictError):
        await lifecycle.add_dependency(t1.id, t2.id, "relatedTo")

    stored = await lifecycle.get_task(t1.id)
    assert stored.dependencies == [{"task_id": str(t2.id), "type": "blockedBy"}]


async def test_dependency_type_defaults_and_validates(lifecycle, admin, alice):
    t1 = await _make_task(lifecycle, admin, [alice], title="First")
    t2 = await _make_task(lifecycle, admin, [alice], title="Second")

    with pytest.raises(ValidationError):
        await lifecycle.add_dependency(t1.id, t2.id, "dependsOn")

    task = await lifecycle.add_dependency(t1.id, t2.id)
    assert task.dependencies[0]["type"] == "blockedBy"


async def test_remove_dependency_is_idempotent(lifecycle, admin, alice):
    t1 = await _make_task(lifecycle, admin, [alice], title="First")
    t2 = await _make_task(lifecycle, admin, [alice], title="Second")
    await lifecycle.add_dependency(t1.id, t2.id, "blocks")

    task = await lifecycle.remove_dependency(t1.id, t2.id)
    assert task.dependencies == []

    task = await lifecycle.remove_dependency(t1.id, t2.id)
    assert task.dependencies == []


# --- views, reads and delete ---


async def test_mark_viewed_keeps_set_semantics(lifecycle, events, admin, alice):
    task = await _make_task(lifecycle, admin, [alice])
    events.clear()

    await lifecycle.mark_viewed(task.id, alice.id)
    task = await lifecycle.mark_viewed(task.id, alice.id)

    assert task.viewed_by == [alice.id]
    assert task.last_viewed_at is not None
    assert events.events == []


async def test_list_tasks_is_scoped_for_members(lifecycle, admin, alice, bob):
    await _make_task(lifecycle, admin, [alice], title="Alice only", checklist=_items(1, 2))
    await _make_task(lifecycle, admin, [bob], title="Bob only")
    await _make_task(lifecycle, admin, [alice, bob], title="Shared", checklist=_items(1, 1))

    mine = await lifecycle.list_tasks(alice.id, alice.role)
    assert {t.title for t in mine["tasks"]} == {"Alice only", "Shared"}
    assert mine["status_summary"] == {
        "all": 2,
        "pending_tasks": 0,
        "in_progress_tasks": 1,
        "completed_tasks": 1,
    }

    everything = await lifecycle.list_tasks(admin.id, admin.role, status="Pending")
    assert [t.title for t in everything["tasks"]] == ["Bob only"]
    # Summary ignores the status filter
    assert everything["status_summary"]["all"] == 3


async def test_delete_task_publishes_and_removes(lifecycle, events, admin, alice):
    task = await _make_task(lifecycle, admin, [alice])

    await lifecycle.delete_task(task.id, admin.id)

    with pytest.raises(NotFoundError):
        await lifecycle.get_task(task.id)
    deleted = events.named("TaskDeleted")
    assert len(deleted) == 1
    assert deleted[0].task_title == "Write quarterly report"


# --- concurrent writers ---


async def test_concurrent_checklist_writes_conflict_instead_of_corrupting(
    session_factory, admin, alice
):
    async with session_factory() as setup:
        task = await _make_task(
            TaskLifecycleService(setup), admin, [alice], checklist=_items(0, 4)
        )
        task_id = task.id

    async with session_factory() as first_db, session_factory() as second_db:
        first = TaskLifecycleService(first_db, RecordingPublisher())
        second = TaskLifecycleService(second_db, RecordingPublisher())

        # Both writers hold version 1 before either writes
        first_copy = await first.get_task(task_id)
        second_copy = await second.get_task(task_id)
        assert first_copy.version_id == second_copy.version_id

        await first.replace_checklist(task_id, _items(4, 4), alice.id, alice.role)
        with pytest.raises(ConflictError):
            await second.replace_checklist(task_id, _items(1, 4), alice.id, alice.role)

    async with session_factory() as check:
        stored = (await check.execute(select(Task).where(Task.id == task_id))).scalar_one()
        assert stored.todo_checklist == _items(4, 4)
        assert (stored.progress, stored.status) == (100, "Completed")
