"""
User model with ULID primary keys.
"""
from datetime import datetime
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class User(Base, TimestampMixin):
    """
    User model representing authenticated users.

    ``rol_global`` is a coarse tag (propietario, miembro, ...) carried in the
    access token. It is informational only and never grants a permission;
    ownership is derived from ``Group.owner_id``.
    """
    __tablename__ = "users"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Opaque to this service; hashing happens at the login boundary
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)

    rol_global: Mapped[str] = mapped_column(String(50), nullable=False, default="miembro")
    
    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, rol_global={self.rol_global!r})>"
