"""User management endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.api.v1.deps import AdminUser, CurrentUser
from taskhub.db.session import get_db_session
from taskhub.models.user import User
from taskhub.services.user import UserService

router = APIRouter()


class UserCreate(BaseModel):
    """Create a user (admin only)."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    role: str | None = None
    phone: str | None = Field(None, max_length=50)
    address: str | None = Field(None, max_length=500)


class UserResponse(BaseModel):
    """User response."""

    id: UUID
    name: str
    email: str
    role: str
    phone: str | None
    address: str | None
    profile_image_url: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class MemberSummary(UserResponse):
    pending_tasks: int
    in_progress_tasks: int
    completed_tasks: int


class MemberList(BaseModel):
    users: list[MemberSummary]


def get_users(db: AsyncSession = Depends(get_db_session)) -> UserService:
    return UserService(db)


Users = Depends(get_users)


@router.get("", response_model=MemberList)
async def list_users(
    current_user: AdminUser,
    service: UserService = Users,
) -> dict:
    """Members with counts of their pending, in-progress and completed tasks."""
    rows = await service.list_members()
    return {
        "users": [
            MemberSummary(
                **UserResponse.model_validate(row["user"]).model_dump(),
                pending_tasks=row["pending_tasks"],
                in_progress_tasks=row["in_progress_tasks"],
                completed_tasks=row["completed_tasks"],
            )
            for row in rows
        ]
    }


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    current_user: AdminUser,
    service: UserService = Users,
) -> User:
    return await service.create(
        data.name, data.email, role=data.role, phone=data.phone, address=data.address
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    current_user: CurrentUser,
    service: UserService = Users,
) -> User:
    return await service.get(user_id)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    current_user: AdminUser,
    service: UserService = Users,
) -> None:
    await service.delete(user_id)
