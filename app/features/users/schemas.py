"""
Pydantic schemas for user-related responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.features.groups.schemas import MyGroupResponse


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserResponse(UserBase):
    """Schema for the current user's profile."""
    id: str
    rol_global: str
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    groups: list[MyGroupResponse] = []
    
    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    
    model_config = {"from_attributes": True}
