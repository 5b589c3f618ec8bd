"""
Unit tests for checklist progress calculation.
"""
import pytest

from taskhub.exceptions import ValidationError
from taskhub.services import progress as calculator


def _checklist(done: int, total: int) -> list[dict]:
    return [{"text": f"step {i}", "completed": i < done} for i in range(total)]


@pytest.mark.parametrize(
    ("done", "total", "expected"),
    [
        (0, 4, 0),
        (2, 4, 50),
        (4, 4, 100),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds half-up
        (1, 200, 1),  # 0.5 rounds half-up
        (199, 200, 100),  # 99.5 rounds half-up
    ],
)
def test_progress_is_rounded_percentage(done, total, expected):
    assert calculator.progress_for(_checklist(done, total)) == expected


def test_empty_checklist_has_zero_progress():
    assert calculator.compute_progress([]) == (0, "Pending")


def test_status_follows_progress():
    assert calculator.status_for(0) == "Pending"
    assert calculator.status_for(1) == "In-Progress"
    assert calculator.status_for(99) == "In-Progress"
    assert calculator.status_for(100) == "Completed"


def test_status_is_completed_only_at_full_progress():
    """A 199/200 checklist rounds to 100 and therefore counts as completed."""
    assert calculator.compute_progress(_checklist(199, 200)) == (100, "Completed")
    assert calculator.compute_progress(_checklist(1, 201)) == (0, "Pending")


def test_complete_all_marks_every_item_without_mutating_input():
    checklist = _checklist(1, 3)
    completed = calculator.complete_all(checklist)

    assert all(item["completed"] for item in completed)
    assert [item["text"] for item in completed] == [item["text"] for item in checklist]
    assert checklist[1]["completed"] is False


def test_normalize_checklist_defaults_completed_to_false():
    assert calculator.normalize_checklist([{"text": "write docs"}]) == [
        {"text": "write docs", "completed": False}
    ]
    assert calculator.normalize_checklist(None) == []


@pytest.mark.parametrize(
    "bad",
    [
        "not a list",
        [{"completed": True}],
        [{"text": "   "}],
        ["plain string"],
    ],
)
def test_normalize_checklist_rejects_malformed_input(bad):
    with pytest.raises(ValidationError):
        calculator.normalize_checklist(bad)
