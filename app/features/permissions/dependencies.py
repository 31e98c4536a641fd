"""
FastAPI dependencies wiring the resolution engine into routes.

Usage:
    @router.delete("/items/{item_id}")
    async def delete_item(
        item_id: str,
        user: User = Depends(require_permission("inventario_eliminar"))
    ):
        # User holds inventario_eliminar in the group named by ?group_id=
        ...
"""
from typing import Annotated
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.engine import PermissionEngine, PermissionScope
from app.features.permissions.guard import AuthorizationGuard
from app.features.permissions.store import SqlIdentityStore


async def get_permission_engine(db: Annotated[AsyncSession, Depends(get_db)]) -> PermissionEngine:
    return PermissionEngine(SqlIdentityStore(db))


async def get_authorization_guard(
    engine: Annotated[PermissionEngine, Depends(get_permission_engine)]
) -> AuthorizationGuard:
    return AuthorizationGuard(engine)


def get_request_group_id(request: Request) -> str | None:
    """Group scope of a request: the ``group_id`` path parameter, else the query parameter."""
    return request.path_params.get("group_id") or request.query_params.get("group_id") or None


def require_permission(
    permission_code: str,
    *,
    fail_open_if_unknown: bool = False,
    scope: PermissionScope = PermissionScope.GROUP,
):
    """
    FastAPI dependency to require a permission code.

    The check is scoped to the request's group when one is given, otherwise
    to any group of the user. Operations on data every group shares use
    ``scope=PermissionScope.GLOBAL``, which only a special permission
    satisfies. PermissionDenied and ResolutionFailed
    propagate to the handlers registered in app.main (403 and 500).

    Args:
        permission_code: Atomic permission code
        fail_open_if_unknown: Grant when the code is not in the catalog yet
        scope: GROUP for tenant data, GLOBAL for shared administration

    Returns:
        Dependency function that returns the current user if they have permission
    """
    async def permission_dependency(
        request: Request,
        guard: Annotated[AuthorizationGuard, Depends(get_authorization_guard)],
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        await guard.require_permission(
            current_user.id,
            permission_code,
            get_request_group_id(request),
            fail_open_if_unknown=fail_open_if_unknown,
            scope=scope,
        )
        return current_user

    return permission_dependency
