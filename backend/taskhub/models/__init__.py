"""SQLAlchemy models package."""

from taskhub.models.user import User
from taskhub.models.template import TaskTemplate
from taskhub.models.task import Task, TaskAssignee, TaskView
from taskhub.models.comment import TaskComment
from taskhub.models.time_entry import TimeEntry
from taskhub.models.activity import ActivityRecord, Notification

__all__ = [
    "User",
    "TaskTemplate",
    "Task",
    "TaskAssignee",
    "TaskView",
    "TaskComment",
    "TimeEntry",
    "ActivityRecord",
    "Notification",
]
