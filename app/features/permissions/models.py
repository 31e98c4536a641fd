"""
Permission catalog, role and special-permission models.

This module implements the flat permission model:
- Atomic permission codes (the catalog)
- Global roles granting zero or more atomic permissions
- Special permissions granted directly to a user, outside any role
- Audit log of administrative changes
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, Table, Column, JSON, Text, DateTime, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, RecordStatus, generate_ulid


# ============================================================================
# Association Tables
# ============================================================================

# Role-Permission grant edges. Replaced as a whole by the role permission editor.
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
    Column("asignado_por", String(26), ForeignKey("users.id"), nullable=True),
)


# ============================================================================
# Core Models
# ============================================================================

class AtomicPermission(Base, TimestampMixin):
    """
    A single capability code checked at one guard point.

    Codes are namespaced by module, e.g. ``inventario_leer`` or
    ``trabajadores.editar``. Inactive codes stay in the catalog but no
    longer flow through role grants.
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    codigo: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    nombre: Mapped[str] = mapped_column(String(100), nullable=False)
    modulo: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    descripcion: Mapped[str | None] = mapped_column(Text, nullable=True)
    activo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<AtomicPermission(id={self.id}, codigo={self.codigo!r}, activo={self.activo})>"


class Role(Base, TimestampMixin):
    """
    Role from the shared catalog.

    Roles are global; their grants are exercised through memberships,
    so a role only counts inside the group where the membership lives.
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    es_activo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    permissions: Mapped[list["AtomicPermission"]] = relationship(
        "AtomicPermission",
        secondary=role_permissions,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, es_activo={self.es_activo})>"


class SpecialPermission(Base, TimestampMixin):
    """
    Permission granted directly to a user, independent of groups and roles.

    Additive only: a row whose status is not ``activo`` contributes nothing
    and never revokes a role grant.
    """
    __tablename__ = "special_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "permission_id", name="uq_special_permissions_user_permission"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    permission_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RecordStatus.ACTIVO.value,
        index=True
    )
    granted_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)

    permission: Mapped["AtomicPermission"] = relationship("AtomicPermission", lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<SpecialPermission(id={self.id}, user_id={self.user_id}, "
            f"permission_id={self.permission_id}, status={self.status!r})>"
        )


class AuditLog(Base, TimestampMixin):
    """
    Audit log for permission-related administrative actions.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    # Context
    group_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
