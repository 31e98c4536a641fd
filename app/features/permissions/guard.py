"""
Authorization guard used at protected operation boundaries.
"""
from typing import Optional

from app.features.permissions.engine import PermissionEngine, PermissionScope
from app.features.permissions.exceptions import PermissionDenied


class AuthorizationGuard:
    def __init__(self, engine: PermissionEngine):
        self.engine = engine

    async def require_permission(
        self,
        user_id: str,
        permission_code: str,
        group_id: Optional[str] = None,
        *,
        fail_open_if_unknown: bool = False,
        scope: PermissionScope = PermissionScope.GROUP,
    ) -> None:
        """
        Raise unless the user holds the permission.

        With ``scope=PermissionScope.GLOBAL`` the group is ignored and only a
        special permission satisfies the check.

        Raises:
            PermissionDenied: resolution completed with a denial
            ResolutionFailed: the identity store could not be queried
        """
        if scope == PermissionScope.GLOBAL:
            decision = await self.engine.resolve_global(
                user_id, permission_code, fail_open_if_unknown=fail_open_if_unknown
            )
            group_id = None
        else:
            decision = await self.engine.resolve(
                user_id, permission_code, group_id, fail_open_if_unknown=fail_open_if_unknown
            )
        if not decision.granted:
            raise PermissionDenied(permission_code, group_id)
