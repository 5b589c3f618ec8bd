"""Time tracking API endpoints."""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import CurrentUser, Page
from taskhub.db.session import get_db_session
from taskhub.models.time_entry import TimeEntry
from taskhub.services.time_tracking import TimeTrackingService

router = APIRouter()


class TimerStart(BaseModel):
    task_id: UUID
    description: str | None = None
    category: str | None = None


class ManualEntryCreate(BaseModel):
    task_id: UUID
    duration: int
    description: str | None = None
    category: str | None = None
    start_time: datetime | None = None


class TimeEntryResponse(BaseModel):
    """Time entry response."""

    id: UUID
    task_id: UUID
    user_id: UUID
    start_time: datetime
    end_time: datetime | None
    duration: int
    description: str
    category: str
    is_running: bool
    billable: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TimeLogPage(BaseModel):
    time_logs: list[TimeEntryResponse]
    total: int
    total_time_in_minutes: int
    total_time_in_hours: float
    pages: int


def get_time_tracking(db: AsyncSession = Depends(get_db_session)) -> TimeTrackingService:
    return TimeTrackingService(db)


Tracker = Depends(get_time_tracking)


@router.post("/start", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
async def start_timer(
    data: TimerStart,
    current_user: CurrentUser,
    service: TimeTrackingService = Tracker,
) -> TimeEntry:
    """Start a timer; any other running timer of the caller is stopped."""
    return await service.start(data.task_id, current_user.id, data.description, data.category)


@router.put("/{time_entry_id}/stop", response_model=TimeEntryResponse)
async def stop_timer(
    time_entry_id: UUID,
    current_user: CurrentUser,
    service: TimeTrackingService = Tracker,
) -> TimeEntry:
    return await service.stop(time_entry_id, current_user.id, current_user.role)


@router.put("/{time_entry_id}/pause", response_model=TimeEntryResponse)
async def pause_timer(
    time_entry_id: UUID,
    current_user: CurrentUser,
    service: TimeTrackingService = Tracker,
) -> TimeEntry:
    return await service.pause(time_entry_id, current_user.id, current_user.role)


@router.put("/{time_entry_id}/resume", response_model=TimeEntryResponse)
async def resume_timer(
    time_entry_id: UUID,
    current_user: CurrentUser,
    service: TimeTrackingService = Tracker,
) -> TimeEntry:
    return await service.resume(time_entry_id, current_user.id, current_user.role)


@router.post("/manual", response_model=TimeEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_manual_entry(
    data: ManualEntryCreate,
    current_user: CurrentUser,
    service: TimeTrackingService = Tracker,
) -> TimeEntry:
    return await service.add_manual_entry(
        data.task_id,
        current_user.id,
        data.duration,
        description=data.description,
        category=data.category,
        start_time=data.start_time,
    )


@router.get("/task/{task_id}", response_model=TimeLogPage)
async def get_task_time_logs(
    task_id: UUID,
    current_user: CurrentUser,
    page: Page,
    service: TimeTrackingService = Tracker,
) -> dict:
    return await service.list_task_logs(task_id, page=page.page, limit=page.limit)


@router.get("/user", response_model=TimeLogPage)
async def get_user_time_logs(
    current_user: CurrentUser,
    page: Page,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    service: TimeTrackingService = Tracker,
) -> dict:
    """The caller's own time logs, optionally bounded by creation date."""
    return await service.list_user_logs(
        current_user.id,
        page=page.page,
        limit=page.limit,
        start_date=start_date,
        end_date=end_date,
    )
