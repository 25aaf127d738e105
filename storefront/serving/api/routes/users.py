"""
Users API Endpoints

Account administration: listing, creating accounts with a role, and removal.
Customers created here are what the dashboard counts as customers.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.database.connection import get_db_dependency
from storefront.database.models import UserRole
from storefront.database.stores import UserStore

router = APIRouter()
logger = structlog.get_logger(__name__)

STAFF_ROLES = [UserRole.ADMIN.value, UserRole.EMPLOYEE.value]


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    phone_number: str = Field(min_length=1, max_length=30)
    role: UserRole = UserRole.CUSTOMER


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    phone_number: str
    role: str
    created_at: datetime


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[UserResponse])
async def list_users(
    role: Optional[UserRole] = Query(None),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[UserResponse]:
    users = await UserStore(db).list(role=role.value if role else None)
    return [UserResponse.model_validate(u) for u in users]


@router.get("/staff", response_model=List[UserResponse])
async def list_staff(db: AsyncSession = Depends(get_db_dependency)) -> List[UserResponse]:
    """Admin and employee accounts."""
    users = await UserStore(db).list_by_roles(STAFF_ROLES)
    return [UserResponse.model_validate(u) for u in users]


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db_dependency),
) -> UserResponse:
    store = UserStore(db)
    username = payload.username.strip()
    if await store.get_by_username(username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")

    user = await store.create({
        "username": username,
        "phone_number": payload.phone_number.strip(),
        "role": payload.role.value,
    })
    logger.info("User created", user_id=str(user.id), role=user.role)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}")
async def delete_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_db_dependency),
) -> dict:
    store = UserStore(db)
    user = await store.get(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role == UserRole.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot delete admin accounts")

    await store.delete(user_id)
    logger.info("User deleted", user_id=str(user_id))
    return {"message": "User deleted successfully"}
