"""
Project models.

A project belongs to one organization, collects tour versions and has a
set of assigned reviewers.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from panodesk.core.database.base import Base, TimestampMixin, generate_ulid


# Reviewers assigned to a project
project_reviewers = Table(
    "project_reviewers",
    Base.metadata,
    Column("project_id", String(26), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # The tour version currently shown to reviewers; must belong to this project
    current_tour_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("tours.id", ondelete="SET NULL", use_alter=True, name="fk_projects_current_tour_id"),
        nullable=True
    )

    # Relationships
    organization: Mapped["Organization"] = relationship(  # type: ignore
        "Organization",
        lazy="selectin"
    )

    current_tour: Mapped["Tour | None"] = relationship(  # type: ignore
        "Tour",
        foreign_keys=[current_tour_id],
        post_update=True,
        lazy="selectin"
    )

    reviewers: Mapped[list["User"]] = relationship(  # type: ignore
        "User",
        secondary=project_reviewers,
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name={self.name!r}, org_id={self.organization_id})>"
