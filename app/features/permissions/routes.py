"""
Permission management API routes.

Provides endpoints for the permission catalog, role permission sets,
special permissions, permission checks and the audit log.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.models import AtomicPermission, AuditLog, Role
from app.features.permissions.schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    CapabilitiesResponse,
    CatalogModule,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    RolePermissionsUpdate,
    RolePermissionsUpdated,
    RoleResponse,
    SpecialPermissionGrant,
    SpecialPermissionResponse,
)
from app.features.permissions.catalog import (
    get_permission_by_code,
    list_available_roles,
    list_catalog,
)
from app.features.permissions.dependencies import get_permission_engine, require_permission
from app.features.permissions.engine import PermissionEngine, PermissionScope
from app.features.permissions.services import (
    create_audit_log,
    get_role_permissions,
    grant_special_permission,
    list_special_permissions,
    replace_role_permissions,
    revoke_special_permission,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()
roles_router = APIRouter()

# The catalog, role definitions and special permissions are shared by every
# group: ownership or a role in some group never satisfies these.
manage_permissions = require_permission("permisos.gestionar", scope=PermissionScope.GLOBAL)
manage_roles = require_permission("roles.gestionar", scope=PermissionScope.GLOBAL)


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("/catalog", response_model=List[CatalogModule])
async def get_catalog(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """List active permission codes grouped by module."""
    modules = await list_catalog(db)
    return [
        CatalogModule(modulo=modulo, permisos=[PermissionResponse.model_validate(p) for p in permisos])
        for modulo, permisos in modules.items()
    ]


@router.post("/catalog", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(manage_permissions)],
):
    """Add a permission code to the catalog."""
    try:
        db_permission = AtomicPermission(**permission.model_dump())
        db.add(db_permission)
        await db.commit()
        await db.refresh(db_permission)
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Permission with this code already exists"
        )

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="permission",
        resource_id=db_permission.id,
        details=permission.model_dump(),
        ip_address=client_ip(request),
    )
    return db_permission


@router.patch("/catalog/{codigo}", response_model=PermissionResponse)
async def update_permission(
    codigo: str,
    permission_update: PermissionUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(manage_permissions)],
):
    """Update a catalog entry; deactivating it withdraws it from every role grant."""
    db_permission = await get_permission_by_code(db, codigo)

    update_data = permission_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(db_permission, key, value)

    await db.commit()
    await db.refresh(db_permission)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update",
        resource_type="permission",
        resource_id=db_permission.id,
        details=update_data,
        ip_address=client_ip(request),
    )
    return db_permission


# ============================================================================
# Permission Check Routes
# ============================================================================

@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Check if the current user has a specific permission."""
    decision = await engine.resolve(current_user.id, check_request.codigo, check_request.group_id)
    return PermissionCheckResponse(
        has_permission=decision.granted,
        reason=decision.source.value if decision.granted else None,
    )


@router.get("/me", response_model=CapabilitiesResponse)
async def get_my_capabilities(
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)],
    current_user: Annotated[User, Depends(get_current_user)],
    codes: List[str] = Query(default=[], description="Permission codes to resolve"),
    group_id: Optional[str] = None,
):
    """Resolve a set of codes for the current user, e.g. every action of one module."""
    return CapabilitiesResponse(
        user_id=current_user.id,
        group_id=group_id,
        is_owner=await engine.is_owner(current_user.id, group_id),
        permisos=await engine.capabilities(current_user.id, codes, group_id),
    )


# ============================================================================
# Special Permission Routes
# ============================================================================

async def get_user_or_404(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/users/{user_id}/special", response_model=List[SpecialPermissionResponse])
async def get_special_permissions(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(manage_permissions)],
):
    """List a user's special permissions, active and revoked."""
    await get_user_or_404(db, user_id)
    return await list_special_permissions(db, user_id)


@router.post(
    "/users/{user_id}/special",
    response_model=SpecialPermissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def grant_special(
    user_id: str,
    grant: SpecialPermissionGrant,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(manage_permissions)],
):
    """Grant a permission directly to a user."""
    await get_user_or_404(db, user_id)
    special = await grant_special_permission(db, user_id, grant.codigo, granted_by_id=current_user.id)
    await db.commit()
    await db.refresh(special)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="grant_special",
        resource_type="user",
        resource_id=user_id,
        details={"codigo": grant.codigo},
        ip_address=client_ip(request),
    )
    return special


@router.delete("/users/{user_id}/special/{codigo}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_special(
    user_id: str,
    codigo: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(manage_permissions)],
):
    """Revoke a user's special permission."""
    special = await revoke_special_permission(db, user_id, codigo)
    if special is None:
        raise HTTPException(status_code=404, detail="Special permission not found")
    await db.commit()

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="revoke_special",
        resource_type="user",
        resource_id=user_id,
        details={"codigo": codigo},
        ip_address=client_ip(request),
    )
    return None


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("auditoria_leer"))],
    group_id: str = Query(..., description="Group whose audit trail is listed"),
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
):
    """List one group's audit logs with optional filtering."""
    stmt = select(AuditLog).where(AuditLog.group_id == group_id)

    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total_result = await db.execute(count_stmt)
    total = total_result.scalar() or 0

    stmt = stmt.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages
    )


# ============================================================================
# Role Routes
# ============================================================================

async def get_role_or_404(db: AsyncSession, role_id: str) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalars().first()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


@roles_router.get("/available", response_model=List[RoleResponse])
async def get_available_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Active roles ordered by seniority."""
    return await list_available_roles(db)


@roles_router.get("/by-name/{role_name}/permissions", response_model=List[PermissionResponse])
async def get_role_permissions_by_name(
    role_name: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Active permissions of an active role, looked up by name."""
    result = await db.execute(select(Role).where(Role.name == role_name, Role.es_activo.is_(True)))
    role = result.scalars().first()
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return [p for p in await get_role_permissions(db, role.id) if p.activo]


@roles_router.get("/{role_id}/permissions", response_model=List[PermissionResponse])
async def get_role_permission_list(
    role_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Every permission granted to a role."""
    await get_role_or_404(db, role_id)
    return await get_role_permissions(db, role_id)


@roles_router.put("/{role_id}/permissions", response_model=RolePermissionsUpdated)
async def update_role_permissions(
    role_id: str,
    update: RolePermissionsUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(manage_roles)],
):
    """Replace every permission of a role in one transaction."""
    role = await get_role_or_404(db, role_id)
    applied = await replace_role_permissions(db, role.id, update.permisos, assigned_by_id=current_user.id)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="replace_permissions",
        resource_type="role",
        resource_id=role.id,
        details={"permisos": update.permisos, "aplicados": applied},
        ip_address=client_ip(request),
    )
    return RolePermissionsUpdated(
        message="Permisos actualizados correctamente",
        permisos_actualizados=applied,
    )
