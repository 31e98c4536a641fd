"""
Administrative mutations on the identity store.

Each function leaves the session uncommitted except where noted, so the
caller decides the transaction boundary.
"""
from typing import Any, Dict, Optional
from sqlalchemy import select, delete, insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.base import RecordStatus
from app.features.permissions.catalog import GLOBAL_ADMIN_CODES, get_permission_by_code
from app.features.permissions.models import (
    AtomicPermission,
    AuditLog,
    SpecialPermission,
    role_permissions,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def get_role_permissions(db: AsyncSession, role_id: str) -> list[AtomicPermission]:
    """All catalog entries granted to a role, active or not."""
    result = await db.execute(
        select(AtomicPermission)
        .join(role_permissions, role_permissions.c.permission_id == AtomicPermission.id)
        .where(role_permissions.c.role_id == role_id)
        .order_by(AtomicPermission.modulo, AtomicPermission.codigo)
    )
    return list(result.scalars().all())


async def replace_role_permissions(
    db: AsyncSession,
    role_id: str,
    codes: list[str],
    assigned_by_id: Optional[str] = None,
) -> int:
    """
    Replace every grant of a role with the given codes.

    Delete and insert run in one transaction, committed here, so a
    concurrent resolution never sees the role with an empty grant set.
    Codes missing from the catalog are skipped.

    Returns:
        Number of codes granted
    """
    try:
        await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))

        permission_ids = []
        if codes:
            result = await db.execute(
                select(AtomicPermission.id).where(AtomicPermission.codigo.in_(set(codes)))
            )
            permission_ids = list(result.scalars().all())

        if permission_ids:
            await db.execute(
                insert(role_permissions),
                [
                    {"role_id": role_id, "permission_id": permission_id, "asignado_por": assigned_by_id}
                    for permission_id in permission_ids
                ],
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    skipped = len(set(codes)) - len(permission_ids)
    if skipped:
        log.warning(f"Role {role_id}: {skipped} requested codes are not in the catalog")
    log.info(f"Role {role_id} permissions replaced with {len(permission_ids)} codes")
    return len(permission_ids)


async def grant_special_permission(
    db: AsyncSession,
    user_id: str,
    codigo: str,
    granted_by_id: Optional[str] = None,
) -> SpecialPermission:
    """
    Grant a permission directly to a user, re-activating a revoked row.

    Raises:
        UnknownPermissionCode: the code is not in the catalog
    """
    permission = await get_permission_by_code(db, codigo)

    result = await db.execute(
        select(SpecialPermission).where(
            SpecialPermission.user_id == user_id,
            SpecialPermission.permission_id == permission.id,
        )
    )
    special = result.scalars().first()

    if special is None:
        special = SpecialPermission(
            user_id=user_id,
            permission_id=permission.id,
            permission=permission,
            granted_by_id=granted_by_id,
        )
        db.add(special)
    else:
        special.status = RecordStatus.ACTIVO.value
        special.granted_by_id = granted_by_id

    await db.flush()
    log.info(f"Special permission {codigo} granted to user {user_id}")
    return special


async def revoke_special_permission(db: AsyncSession, user_id: str, codigo: str) -> Optional[SpecialPermission]:
    """
    Mark a user's special permission inactive.

    Returns:
        The revoked row, or None if the user never had it

    Raises:
        UnknownPermissionCode: the code is not in the catalog
    """
    permission = await get_permission_by_code(db, codigo)

    result = await db.execute(
        select(SpecialPermission).where(
            SpecialPermission.user_id == user_id,
            SpecialPermission.permission_id == permission.id,
        )
    )
    special = result.scalars().first()
    if special is None:
        return None

    special.status = RecordStatus.INACTIVO.value
    await db.flush()
    log.info(f"Special permission {codigo} revoked from user {user_id}")
    return special


async def list_special_permissions(db: AsyncSession, user_id: str) -> list[SpecialPermission]:
    result = await db.execute(
        select(SpecialPermission)
        .where(SpecialPermission.user_id == user_id)
        .order_by(SpecialPermission.created_at)
    )
    return list(result.scalars().all())


async def grant_global_admin(db: AsyncSession, email: str) -> Optional[User]:
    """
    Give the user with this email every global administration code as a
    special permission. Commits.

    Returns:
        The user, or None if nobody has that email yet
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalars().first()
    if user is None:
        log.warning(f"Global admin {email} not found, skipping")
        return None

    for codigo in GLOBAL_ADMIN_CODES:
        await grant_special_permission(db, user.id, codigo)
    await db.commit()
    log.info(f"User {user.id} ({email}) holds the global administration codes")
    return user


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    group_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "replace_permissions", "grant_special")
        resource_type: Type of resource (e.g., "role", "user", "membership")
        resource_id: ID of the resource
        group_id: Group context
        details: Additional details
        ip_address: Client IP address

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        group_id=group_id,
        details=details,
        ip_address=ip_address,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    log.info(
        f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id} group={group_id}"
    )

    return audit_log
