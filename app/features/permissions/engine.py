"""
Permission resolution engine.

Decides whether a user may use a permission code, optionally inside one
group. Precedence:

1. Owner bypass: owning the group (any group when none is given) grants
   everything, whatever the code or membership status.
2. Catalog check: a code missing from the catalog is logged. Call sites
   that opt in with ``fail_open_if_unknown`` grant; all others deny.
3. Role grant: an active membership whose active role grants the code
   through an active permission.
4. Special permission: an active special permission row for the code,
   independent of groups.

Role grants and special permissions form a union; nothing revokes.
The engine keeps no state between calls and caches nothing.

Operations on data shared by every group (the catalog, role definitions,
special permissions) resolve with ``resolve_global``: no owner bypass and
no role grant, only a special permission counts.
"""
from dataclasses import dataclass
import enum
from typing import Iterable, Optional

from app.features.permissions.memberships import MembershipResolver
from app.features.permissions.store import IdentityStore
from app.utils import get_logger


log = get_logger(__name__)


class GrantSource(str, enum.Enum):
    OWNER = "owner"
    ROLE = "role"
    SPECIAL = "special"
    UNKNOWN_CODE = "unknown_code"


class PermissionScope(str, enum.Enum):
    GROUP = "group"
    GLOBAL = "global"


@dataclass(frozen=True)
class Decision:
    granted: bool
    source: GrantSource | None = None
    group_id: str | None = None
    # Set whenever the code was missing from the catalog, granted or not
    unknown_code: bool = False

    def __bool__(self) -> bool:
        return self.granted


DENIED = Decision(granted=False)


class PermissionEngine:
    def __init__(self, store: IdentityStore):
        self.store = store
        self.memberships = MembershipResolver(store)

    async def _check_catalog(
        self,
        user_id: str,
        permission_code: str,
        group_id: Optional[str],
        fail_open_if_unknown: bool,
    ) -> Decision | None:
        """Decision for a code missing from the catalog, None when the code is known."""
        if await self.store.permission_code_exists(permission_code):
            return None
        if fail_open_if_unknown:
            log.warning(
                "Permission code %r is not in the catalog, granting %s by default",
                permission_code, user_id,
            )
            return Decision(True, GrantSource.UNKNOWN_CODE, group_id, unknown_code=True)
        log.warning("Permission code %r is not in the catalog, denying %s", permission_code, user_id)
        return Decision(False, None, group_id, unknown_code=True)

    async def resolve(
        self,
        user_id: str,
        permission_code: str,
        group_id: Optional[str] = None,
        *,
        fail_open_if_unknown: bool = False,
    ) -> Decision:
        """
        Resolve a permission check and report which source granted it.

        Raises:
            ResolutionFailed: the identity store could not be queried
        """
        if not user_id or not permission_code:
            log.warning("Permission check without user id or permission code")
            return DENIED

        memberships = await self.memberships.list_memberships(user_id)

        for membership in memberships:
            if membership.is_owner and (group_id is None or membership.group_id == group_id):
                log.debug(
                    "User %s owns group %s - granted %s", user_id, membership.group_id, permission_code
                )
                return Decision(True, GrantSource.OWNER, membership.group_id)

        unknown = await self._check_catalog(user_id, permission_code, group_id, fail_open_if_unknown)
        if unknown is not None:
            return unknown

        role_codes: dict[str, list[str]] = {}
        for membership in memberships:
            if not membership.is_active or membership.role_id is None:
                continue
            if group_id is not None and membership.group_id != group_id:
                continue
            if membership.role_id not in role_codes:
                role_codes[membership.role_id] = await self.store.find_role_permission_codes(
                    membership.role_id
                )
            if permission_code in role_codes[membership.role_id]:
                log.debug(
                    "User %s granted %s via role %s in group %s",
                    user_id, permission_code, membership.role_id, membership.group_id,
                )
                return Decision(True, GrantSource.ROLE, membership.group_id)

        if permission_code in await self.store.find_special_permission_codes(user_id):
            log.debug("User %s granted %s via special permission", user_id, permission_code)
            return Decision(True, GrantSource.SPECIAL, group_id)

        log.debug("User %s denied %s in group %s", user_id, permission_code, group_id)
        return DENIED

    async def resolve_global(
        self,
        user_id: str,
        permission_code: str,
        *,
        fail_open_if_unknown: bool = False,
    ) -> Decision:
        """
        Resolve a check on data shared by every group.

        Owning a group or holding a role in one never satisfies it; only an
        active special permission does.

        Raises:
            ResolutionFailed: the identity store could not be queried
        """
        if not user_id or not permission_code:
            log.warning("Global permission check without user id or permission code")
            return DENIED

        unknown = await self._check_catalog(user_id, permission_code, None, fail_open_if_unknown)
        if unknown is not None:
            return unknown

        if permission_code in await self.store.find_special_permission_codes(user_id):
            log.debug("User %s granted global %s via special permission", user_id, permission_code)
            return Decision(True, GrantSource.SPECIAL)

        log.debug("User %s denied global %s", user_id, permission_code)
        return DENIED

    async def has_permission(
        self,
        user_id: str,
        permission_code: str,
        group_id: Optional[str] = None,
        *,
        fail_open_if_unknown: bool = False,
    ) -> bool:
        decision = await self.resolve(
            user_id, permission_code, group_id, fail_open_if_unknown=fail_open_if_unknown
        )
        return decision.granted

    async def capabilities(
        self,
        user_id: str,
        permission_codes: Iterable[str],
        group_id: Optional[str] = None,
    ) -> dict[str, bool]:
        """Resolve several codes for the same user, e.g. to drive a module's UI."""
        return {
            code: await self.has_permission(user_id, code, group_id)
            for code in dict.fromkeys(permission_codes)
        }

    async def is_owner(self, user_id: str, group_id: Optional[str] = None) -> bool:
        memberships = await self.memberships.list_memberships(user_id)
        return any(
            m.is_owner and (group_id is None or m.group_id == group_id)
            for m in memberships
        )
