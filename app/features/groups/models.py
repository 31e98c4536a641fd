"""
Group (tenant) and membership models.

A group is the unit of multi-tenancy: it has exactly one owner and many
members, each holding one role inside the group.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Boolean, DateTime, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, RecordStatus, generate_ulid


class Group(Base, TimestampMixin):
    """
    Tenant group.

    The owner holds every permission inside the group regardless of
    membership rows or group status.
    """
    __tablename__ = "groups"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    owner_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name!r}, owner_id={self.owner_id})>"


class Membership(Base, TimestampMixin):
    """
    User membership in a group with a role.

    Memberships are retired by changing ``status``; only ``activo``
    memberships contribute role grants. At most one active membership per
    (user, group) is allowed by the partial unique index below.
    """
    __tablename__ = "memberships"
    __table_args__ = (
        Index(
            "uq_memberships_active_user_group",
            "user_id",
            "group_id",
            unique=True,
            sqlite_where=text("status = 'activo'"),
            postgresql_where=text("status = 'activo'"),
        ),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    group_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RecordStatus.ACTIVO.value,
        index=True
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.now)
    assigned_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id"), nullable=True)
    
    def __repr__(self) -> str:
        return (
            f"<Membership(id={self.id}, user_id={self.user_id}, group_id={self.group_id}, "
            f"role_id={self.role_id}, status={self.status!r})>"
        )
