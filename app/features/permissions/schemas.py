"""
Pydantic schemas for permission management.

Request and response models for the catalog, roles, special permissions,
permission checks and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# Catalog Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base atomic permission schema."""
    codigo: str = Field(..., min_length=1, max_length=100, description="Unique permission code, e.g. 'inventario_leer'")
    nombre: str = Field(..., min_length=1, max_length=100, description="Display name")
    modulo: str = Field(..., min_length=1, max_length=50, description="Module the code belongs to")
    descripcion: Optional[str] = Field(None, max_length=1000)


class PermissionCreate(PermissionBase):
    """Schema for adding a code to the catalog."""

    @field_validator('codigo')
    @classmethod
    def codigo_format(cls, v: str) -> str:
        """Validate permission code format."""
        if not v.replace('_', '').replace('.', '').isalnum():
            raise ValueError('Permission code must contain only alphanumeric characters, underscores and dots')
        return v.lower()


class PermissionUpdate(BaseModel):
    """Schema for updating a catalog entry."""
    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    descripcion: Optional[str] = Field(None, max_length=1000)
    activo: Optional[bool] = None


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: str
    activo: bool

    model_config = ConfigDict(from_attributes=True)


class CatalogModule(BaseModel):
    """Active permissions of one module."""
    modulo: str
    permisos: List[PermissionResponse] = []


# ============================================================================
# Role Schemas
# ============================================================================

class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    name: str
    description: Optional[str] = None
    es_activo: bool

    model_config = ConfigDict(from_attributes=True)


class RolePermissionsUpdate(BaseModel):
    """Replace-all payload for a role's permissions."""
    permisos: List[str] = Field(default_factory=list, description="Permission codes granted to the role")


class RolePermissionsUpdated(BaseModel):
    message: str
    permisos_actualizados: int


# ============================================================================
# Special Permission Schemas
# ============================================================================

class SpecialPermissionGrant(BaseModel):
    """Schema for granting a permission directly to a user."""
    codigo: str = Field(..., min_length=1, max_length=100)


class SpecialPermissionResponse(BaseModel):
    id: str
    user_id: str
    status: str
    permission: PermissionResponse
    granted_by_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckRequest(BaseModel):
    """Schema for checking if the current user has a permission."""
    codigo: str = Field(..., min_length=1, description="Permission code")
    group_id: Optional[str] = Field(None, description="Group scope (any group if omitted)")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    reason: Optional[str] = None


class CapabilitiesResponse(BaseModel):
    """What the current user may do, per requested code."""
    user_id: str
    group_id: Optional[str] = None
    is_owner: bool
    permisos: Dict[str, bool] = {}


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    group_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
