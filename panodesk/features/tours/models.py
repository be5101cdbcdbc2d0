"""
Tour model: one reviewable version of a project's tour content.
"""
from typing import Any
from sqlalchemy import String, ForeignKey, JSON, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from panodesk.core.database.base import Base, TimestampMixin, generate_ulid


class Tour(Base, TimestampMixin):
    """
    A versioned tour.

    ``version`` is fixed at creation; a new version is a new row with the same
    name. ``data`` holds the tour payload (scenes, hotspots, ...) as JSON.
    """
    __tablename__ = "tours"
    __table_args__ = (
        UniqueConstraint("project_id", "name", "version", name="uq_tours_project_name_version"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    version: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    data: Mapped[dict[str, Any] | list[Any] | None] = mapped_column(JSON, nullable=True)

    project_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    project: Mapped["Project"] = relationship(  # type: ignore
        "Project",
        foreign_keys=[project_id],
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, name={self.name!r}, version={self.version!r})>"
