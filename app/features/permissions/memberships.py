"""
Membership resolution: which groups a user belongs to or owns.
"""
from dataclasses import dataclass

from app.core.database.base import RecordStatus
from app.features.permissions.exceptions import ResolutionFailed
from app.features.permissions.store import IdentityStore


@dataclass(frozen=True)
class MembershipInfo:
    group_id: str
    role_id: str | None
    status: str | None
    is_owner: bool

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVO.value


class MembershipResolver:
    """
    Lists a user's memberships together with group ownership.

    Every membership row is returned whatever its status, plus any group the
    user owns without a membership row. An unknown user yields an empty list.
    """

    def __init__(self, store: IdentityStore):
        self.store = store

    async def list_memberships(self, user_id: str) -> list[MembershipInfo]:
        if not user_id:
            return []

        memberships = []
        for link in await self.store.find_groups_owned_or_joined(user_id):
            if not link.group_id or not link.owner_id:
                raise ResolutionFailed(f"Malformed group row for user {user_id}: {link!r}")
            memberships.append(
                MembershipInfo(
                    group_id=link.group_id,
                    role_id=link.role_id,
                    status=link.membership_status,
                    is_owner=link.owner_id == user_id,
                )
            )
        return memberships
