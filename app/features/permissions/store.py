"""
Identity store query interface.

The resolution engine only reads the identity store through the four
queries of ``IdentityStore``. ``SqlIdentityStore`` answers them from the
SQLAlchemy models; every database error is re-raised as ResolutionFailed.
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol
from sqlalchemy import select, exists
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.base import RecordStatus
from app.features.groups.models import Group, Membership
from app.features.permissions.exceptions import ResolutionFailed
from app.features.permissions.models import AtomicPermission, Role, SpecialPermission, role_permissions
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class GroupLink:
    """
    A group related to a user, either through a membership row or ownership.

    ``role_id`` and ``membership_status`` are None for a group the user owns
    without holding a membership row in it.
    """
    group_id: str
    owner_id: str
    role_id: str | None = None
    membership_status: str | None = None


class IdentityStore(Protocol):
    async def find_groups_owned_or_joined(self, user_id: str) -> list[GroupLink]:
        ...

    async def find_role_permission_codes(self, role_id: str) -> list[str]:
        ...

    async def find_special_permission_codes(self, user_id: str) -> list[str]:
        ...

    async def permission_code_exists(self, permission_code: str) -> bool:
        ...


@asynccontextmanager
async def store_errors(operation: str):
    """Translate database errors raised inside the block into ResolutionFailed."""
    try:
        yield
    except SQLAlchemyError as e:
        log.error("Identity store query %s failed: %s", operation, e)
        raise ResolutionFailed(f"Identity store query {operation} failed") from e


class SqlIdentityStore:
    """IdentityStore backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_groups_owned_or_joined(self, user_id: str) -> list[GroupLink]:
        async with store_errors("find_groups_owned_or_joined"):
            joined = await self.db.execute(
                select(Membership.group_id, Group.owner_id, Membership.role_id, Membership.status)
                .join(Group, Group.id == Membership.group_id)
                .where(Membership.user_id == user_id)
                .order_by(Membership.group_id)
            )
            owned = await self.db.execute(
                select(Group.id, Group.owner_id)
                .where(Group.owner_id == user_id)
                .order_by(Group.id)
            )

        links = [
            GroupLink(group_id=row[0], owner_id=row[1], role_id=row[2], membership_status=row[3])
            for row in joined.all()
        ]
        seen = {link.group_id for link in links}
        for group_id, owner_id in owned.all():
            if group_id not in seen:
                links.append(GroupLink(group_id=group_id, owner_id=owner_id))
        return links

    async def find_role_permission_codes(self, role_id: str) -> list[str]:
        async with store_errors("find_role_permission_codes"):
            result = await self.db.execute(
                select(AtomicPermission.codigo)
                .join(role_permissions, role_permissions.c.permission_id == AtomicPermission.id)
                .join(Role, Role.id == role_permissions.c.role_id)
                .where(
                    role_permissions.c.role_id == role_id,
                    Role.es_activo.is_(True),
                    AtomicPermission.activo.is_(True),
                )
                .distinct()
            )
            return list(result.scalars().all())

    async def find_special_permission_codes(self, user_id: str) -> list[str]:
        async with store_errors("find_special_permission_codes"):
            result = await self.db.execute(
                select(AtomicPermission.codigo)
                .join(SpecialPermission, SpecialPermission.permission_id == AtomicPermission.id)
                .where(
                    SpecialPermission.user_id == user_id,
                    SpecialPermission.status == RecordStatus.ACTIVO.value,
                )
                .distinct()
            )
            return list(result.scalars().all())

    async def permission_code_exists(self, permission_code: str) -> bool:
        async with store_errors("permission_code_exists"):
            result = await self.db.execute(
                select(exists().where(AtomicPermission.codigo == permission_code))
            )
            return bool(result.scalar())
