"""
User model with ULID primary keys.
"""
from datetime import datetime
import enum
from sqlalchemy import String, Boolean, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from panodesk.core.database.base import Base, TimestampMixin, generate_ulid


class Role(str, enum.Enum):
    """Fixed set of roles; decides which operations a user may call."""
    SUPER_ADMIN = "SUPER_ADMIN"
    SYSTEM_USER = "SYSTEM_USER"
    ORGANIZATION_MANAGER = "ORGANIZATION_MANAGER"
    REVIEWER = "REVIEWER"


class User(Base, TimestampMixin):
    """
    User model representing people who sign in to the admin portal.

    Uses ULID instead of auto-incrementing integers for better distributed systems support.
    Secret columns (password hash, verification and reset tokens) never leave
    the API: response schemas simply don't declare them.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Identity
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[Role] = mapped_column(
        SQLEnum(Role),
        default=Role.REVIEWER,
        nullable=False,
        index=True
    )

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Single-use tokens for the email flows
    email_verification_token: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    password_reset_token: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    password_reset_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role})>"
