"""Services package."""

from taskhub.services.activity import ActivityRecorder, ActivityService
from taskhub.services.comment import CommentService
from taskhub.services.events import EventPublisher, build_event_publisher
from taskhub.services.notification import NotificationDispatcher, NotificationService
from taskhub.services.reporting import DashboardService
from taskhub.services.task_lifecycle import TaskLifecycleService
from taskhub.services.template import TemplateService
from taskhub.services.time_tracking import TimeTrackingService
from taskhub.services.user import UserService

__all__ = [
    "ActivityRecorder",
    "ActivityService",
    "CommentService",
    "DashboardService",
    "EventPublisher",
    "NotificationDispatcher",
    "NotificationService",
    "TaskLifecycleService",
    "TemplateService",
    "TimeTrackingService",
    "UserService",
    "build_event_publisher",
]
