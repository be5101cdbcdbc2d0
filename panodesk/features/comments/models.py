"""
Review comments left on tours.
"""
from sqlalchemy import String, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from panodesk.core.database.base import Base, TimestampMixin, generate_ulid


class Comment(Base, TimestampMixin):
    """
    A comment on a tour, or a reply to one.

    Replies are one level deep: ``parent_id`` always points at a top-level
    comment of the same tour.
    """
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    tour_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    # Authors with comments cannot be deleted
    author_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    parent_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # Relationships
    author: Mapped["User"] = relationship("User", foreign_keys=[author_id], lazy="selectin")  # type: ignore
    tour: Mapped["Tour"] = relationship("Tour", foreign_keys=[tour_id], lazy="selectin")  # type: ignore

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, tour_id={self.tour_id}, author_id={self.author_id})>"
