"""
Organization models for PanoDesk.

Organizations are the tenants: each is run by exactly one manager and owns
the projects whose tours get reviewed. Users can be members of several.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from panodesk.core.database.base import Base, TimestampMixin, generate_ulid


# Association table for many-to-many relationship between users and organizations
organization_members = Table(
    "organization_members",
    Base.metadata,
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("organization_id", String(26), ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class Organization(Base, TimestampMixin):
    """
    Organization model representing a customer tenant.

    ``manager_id`` is required: an organization always has one manager, and a
    user who manages an organization cannot be deleted.
    """
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)

    manager_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    manager: Mapped["User"] = relationship(  # type: ignore
        "User",
        foreign_keys=[manager_id],
        lazy="selectin"
    )

    members: Mapped[list["User"]] = relationship(  # type: ignore
        "User",
        secondary=organization_members,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r}, manager_id={self.manager_id})>"
