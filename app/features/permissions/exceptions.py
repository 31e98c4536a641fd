"""
Authorization errors.

PermissionDenied and ResolutionFailed are mapped to HTTP responses in
app.main; they must stay distinct so a store outage is never reported as a
plain "forbidden" and never treated as a grant.
"""
from typing import Optional


class AuthorizationError(Exception):
    """Base class for authorization errors."""


class PermissionDenied(AuthorizationError):
    """Resolution completed and the answer is no."""

    # The message is client visible and never names the rule that failed
    message = "No tienes permisos para realizar esta acción"

    def __init__(self, permission_code: str, group_id: Optional[str] = None):
        self.permission_code = permission_code
        self.group_id = group_id
        super().__init__(self.message)


class ResolutionFailed(AuthorizationError):
    """The identity store could not answer the query."""


class UnknownPermissionCode(AuthorizationError):
    """A permission code is not present in the catalog."""

    def __init__(self, permission_code: str):
        self.permission_code = permission_code
        super().__init__(f"Unknown permission code: {permission_code}")
