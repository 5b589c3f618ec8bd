"""Dashboard endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import CurrentUser
from taskhub.api.v1.tasks import TaskResponse
from taskhub.config import get_settings
from taskhub.db.session import get_db_session
from taskhub.services.reporting import DashboardService

router = APIRouter()
settings = get_settings()


# --- Schemas ---


class DashboardStatistics(BaseModel):
    total_tasks: int
    pending_tasks: int
    completed_tasks: int
    overdue_tasks: int


class DashboardCharts(BaseModel):
    task_distribution: dict[str, int]  # per status, plus "All"
    task_priority_levels: dict[str, int]


class DashboardData(BaseModel):
    """Complete dashboard payload."""
    statistics: DashboardStatistics
    charts: DashboardCharts
    recent_tasks: list[TaskResponse]


@router.get("", response_model=DashboardData)
async def get_dashboard(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Admins see every task; members see tasks assigned to them."""
    return await DashboardService(db).get_dashboard(
        user_id=None if current_user.is_admin else current_user.id,
        recent_limit=settings.dashboard_recent_limit,
    )


@router.get("/me", response_model=DashboardData)
async def get_my_dashboard(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Figures over the caller's assigned tasks, whatever their role."""
    return await DashboardService(db).get_dashboard(
        user_id=current_user.id,
        recent_limit=settings.dashboard_recent_limit,
    )
