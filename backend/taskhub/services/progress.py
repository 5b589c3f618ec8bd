"""Checklist progress calculation.

Pure functions: no I/O, no state. Progress is derived from the checklist
and status is derived from progress, except when a caller forces
completion, in which case the checklist is derived from the status.
"""

from typing import Any, Iterable

from taskhub.exceptions import ValidationError
from taskhub.models.task import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_PENDING


def normalize_checklist(items: Iterable[Any] | None) -> list[dict]:
    """Validate checklist input and return plain ``{text, completed}`` dicts."""
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        raise ValidationError("todoChecklist must be an array", field="todo_checklist")

    normalized = []
    for item in items:
        if hasattr(item, "model_dump"):
            item = item.model_dump()
        if not isinstance(item, dict):
            raise ValidationError(
                "Checklist items must be objects with text and completed",
                field="todo_checklist",
            )
        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Checklist item text is required", field="todo_checklist")
        normalized.append({"text": text, "completed": bool(item.get("completed", False))})
    return normalized


def progress_for(checklist: list[dict]) -> int:
    """Integer percentage of completed items, rounded half-up; 0 when empty."""
    total = len(checklist)
    if total == 0:
        return 0
    completed = sum(1 for item in checklist if item.get("completed"))
    # round(100 * completed / total) with halves rounded up, in integers
    return (200 * completed + total) // (2 * total)


def status_for(progress: int) -> str:
    if progress >= 100:
        return STATUS_COMPLETED
    if progress <= 0:
        return STATUS_PENDING
    return STATUS_IN_PROGRESS


def compute_progress(checklist: list[dict]) -> tuple[int, str]:
    """Return ``(progress, derived_status)`` for a checklist."""
    progress = progress_for(checklist)
    return progress, status_for(progress)


def complete_all(checklist: list[dict]) -> list[dict]:
    """Copy of the checklist with every item marked completed."""
    return [{**item, "completed": True} for item in checklist]
