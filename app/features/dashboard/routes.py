"""
Photocopy dashboard routes.

Statistics are computed by the reporting service; this router owns the
access decision for them. ``fotocopia_leer`` is checked fail-open: while the
code is not seeded in the catalog every authenticated user gets in.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends

from app.features.users.models import User
from app.features.permissions.dependencies import require_permission


router = APIRouter(tags=["dashboard"])


@router.get("/estadisticas")
async def get_statistics_access(
    user: Annotated[User, Depends(require_permission("fotocopia_leer", fail_open_if_unknown=True))],
    group_id: Optional[str] = None,
):
    """Authorize access to photocopy statistics for the current user."""
    return {"usuario_id": user.id, "group_id": group_id, "acceso": "concedido"}
