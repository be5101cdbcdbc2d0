"""
Invitation model.

An invitation grants a role (and optionally a project or organization) to an
email address or an existing user, through a single-use token.
"""
from datetime import datetime
import enum
from sqlalchemy import String, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from panodesk.core.database.base import Base, TimestampMixin, generate_ulid
from panodesk.features.users.models import Role


class InvitationStatus(str, enum.Enum):
    """PENDING is the only state that can change; the other three are final."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class Invitation(Base, TimestampMixin):
    __tablename__ = "invitations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # Who is invited: an address, an existing account, or both
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    invitee_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # What is granted
    role: Mapped[Role] = mapped_column(SQLEnum(Role), nullable=False)
    project_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    status: Mapped[InvitationStatus] = mapped_column(
        SQLEnum(InvitationStatus),
        default=InvitationStatus.PENDING,
        nullable=False,
        index=True
    )
    # Naive UTC
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)

    sender_id: Mapped[str] = mapped_column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    accepted_by_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    # Relationships
    sender: Mapped["User"] = relationship("User", foreign_keys=[sender_id], lazy="selectin")  # type: ignore
    project: Mapped["Project | None"] = relationship("Project", foreign_keys=[project_id], lazy="selectin")  # type: ignore
    organization: Mapped["Organization | None"] = relationship(  # type: ignore
        "Organization",
        foreign_keys=[organization_id],
        lazy="selectin"
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def effective_status(self, now: datetime) -> InvitationStatus:
        """Stored status, with PENDING reported as EXPIRED once past expiry."""
        if self.status == InvitationStatus.PENDING and self.is_expired(now):
            return InvitationStatus.EXPIRED
        return self.status

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, email={self.email!r}, role={self.role}, status={self.status})>"
