"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.schemas import UserResponse, UserPublic
from app.features.users.dependencies import get_current_user
from app.features.groups.schemas import MyGroupResponse
from app.features.permissions.dependencies import get_permission_engine
from app.features.permissions.engine import PermissionEngine


router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)],
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)],
):
    """Get current authenticated user's profile with their groups."""
    memberships = await engine.memberships.list_memberships(user.id)
    response = UserResponse.model_validate(user)
    response.groups = [
        MyGroupResponse(group_id=m.group_id, role_id=m.role_id, status=m.status, is_owner=m.is_owner)
        for m in memberships
    ]
    return response


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Get public user profile by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    
    return user
