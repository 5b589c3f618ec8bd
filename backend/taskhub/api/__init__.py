"""API router package."""

from fastapi import APIRouter

from taskhub.api.v1 import (
    activities,
    comments,
    dashboard,
    health,
    notifications,
    tasks,
    templates,
    time_tracking,
    users,
)

router = APIRouter()

router.include_router(health.router, tags=["Health"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(comments.router, tags=["Comments"])
router.include_router(time_tracking.router, prefix="/time-tracking", tags=["Time Tracking"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(activities.router, prefix="/activities", tags=["Activities"])
router.include_router(templates.router, prefix="/templates", tags=["Templates"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
router.include_router(users.router, prefix="/users", tags=["Users"])
