"""
Group feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.base import RecordStatus
from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user
from app.features.groups.models import Group, Membership
from app.features.groups.schemas import (
    GroupCreate,
    GroupResponse,
    MembershipCreate,
    MembershipResponse,
    MembershipUpdate,
    MyGroupResponse,
)
from app.features.groups.dependencies import get_group_by_id
from app.features.permissions.dependencies import get_permission_engine, require_permission
from app.features.permissions.engine import PermissionEngine
from app.features.permissions.exceptions import PermissionDenied
from app.features.permissions.models import Role
from app.features.permissions.services import create_audit_log
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["groups"])


async def ensure_role_assignable(engine: PermissionEngine, user: User, group: Group, role: Role) -> None:
    """
    Only the owner hands out roles freely. Other managers may only assign
    roles whose active grants they hold themselves in the group.

    Raises:
        PermissionDenied: the role grants a code the manager lacks
    """
    if await engine.is_owner(user.id, group.id):
        return
    codes = [p.codigo for p in role.permissions if p.activo]
    held = await engine.capabilities(user.id, codes, group.id)
    missing = [code for code, granted in held.items() if not granted]
    if missing:
        log.info(f"User {user.id} may not assign role {role.name} in group {group.id}: lacks {missing}")
        raise PermissionDenied(missing[0], group.id)


@router.post("/", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: GroupCreate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a group owned by the current user."""
    group = Group(**group_data.model_dump(), owner_id=user.id)
    db.add(group)
    await db.commit()
    await db.refresh(group)
    log.info(f"Group {group.id} created by {user.id}")
    return group


@router.get("/", response_model=list[MyGroupResponse])
async def list_my_groups(
    user: Annotated[User, Depends(get_current_user)],
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)],
):
    """Groups the current user owns or holds a membership in, whatever its status."""
    memberships = await engine.memberships.list_memberships(user.id)
    return [
        MyGroupResponse(
            group_id=m.group_id,
            role_id=m.role_id,
            status=m.status,
            is_owner=m.is_owner,
        )
        for m in memberships
    ]


@router.get("/{group_id}/members", response_model=list[MembershipResponse])
async def list_members(
    group: Annotated[Group, Depends(get_group_by_id)],
    user: Annotated[User, Depends(require_permission("grupos.ver_miembros"))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List every membership of a group."""
    result = await db.execute(
        select(Membership)
        .where(Membership.group_id == group.id)
        .order_by(Membership.joined_at)
    )
    return result.scalars().all()


@router.post("/{group_id}/members", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_member(
    membership_data: MembershipCreate,
    request: Request,
    group: Annotated[Group, Depends(get_group_by_id)],
    user: Annotated[User, Depends(require_permission("grupos.gestionar_miembros"))],
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Add a user to the group with a role."""
    member = await db.get(User, membership_data.user_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    role = await db.get(Role, membership_data.role_id)
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    await ensure_role_assignable(engine, user, group, role)

    membership = Membership(
        user_id=member.id,
        group_id=group.id,
        role_id=role.id,
        status=membership_data.status,
        assigned_by_id=user.id,
    )
    db.add(membership)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already has an active membership in this group"
        )
    await db.refresh(membership)

    await create_audit_log(
        db,
        user_id=user.id,
        action="add_member",
        resource_type="membership",
        resource_id=membership.id,
        group_id=group.id,
        details={"member_id": member.id, "role": role.name, "status": membership.status},
        ip_address=request.client.host if request.client else None,
    )
    return membership


@router.patch("/{group_id}/members/{membership_id}", response_model=MembershipResponse)
async def update_member(
    membership_id: str,
    update_data: MembershipUpdate,
    request: Request,
    group: Annotated[Group, Depends(get_group_by_id)],
    user: Annotated[User, Depends(require_permission("grupos.gestionar_miembros"))],
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Change a membership's status (e.g. retire it) or role."""
    membership = await db.get(Membership, membership_id)
    if membership is None or membership.group_id != group.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Membership not found")

    changes = update_data.model_dump(exclude_unset=True, exclude_none=True)
    if "role_id" in changes or changes.get("status") == RecordStatus.ACTIVO.value:
        role = await db.get(Role, changes.get("role_id", membership.role_id))
        if role is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
        await ensure_role_assignable(engine, user, group, role)

    for key, value in changes.items():
        setattr(membership, key, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already has an active membership in this group"
        )
    await db.refresh(membership)

    if membership.status != RecordStatus.ACTIVO.value:
        log.info(f"Membership {membership.id} in group {group.id} is now {membership.status!r}")

    await create_audit_log(
        db,
        user_id=user.id,
        action="update_member",
        resource_type="membership",
        resource_id=membership.id,
        group_id=group.id,
        details=changes,
        ip_address=request.client.host if request.client else None,
    )
    return membership
