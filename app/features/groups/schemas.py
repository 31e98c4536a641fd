"""
Pydantic schemas for group and membership requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, Field

from app.core.database.base import RecordStatus


class GroupCreate(BaseModel):
    """Schema for creating a group. The creator becomes its owner."""
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)


class GroupResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    owner_id: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class MyGroupResponse(BaseModel):
    """A group seen from the current user's side."""
    group_id: str
    role_id: str | None = None
    status: str | None = None
    is_owner: bool


class MembershipCreate(BaseModel):
    """Schema for adding a member to a group."""
    user_id: str = Field(..., description="User ID")
    role_id: str = Field(..., description="Role ID")
    status: str = Field(default=RecordStatus.ACTIVO.value, max_length=20)


class MembershipUpdate(BaseModel):
    """Change a membership's status or role."""
    status: str | None = Field(None, min_length=1, max_length=20)
    role_id: str | None = None


class MembershipResponse(BaseModel):
    id: str
    user_id: str
    group_id: str
    role_id: str
    status: str
    joined_at: datetime
    assigned_by_id: str | None = None

    model_config = {"from_attributes": True}
