"""
Pydantic schemas for comment requests and responses.
"""
from datetime import datetime
from typing import TYPE_CHECKING
from pydantic import Field, field_validator

from panodesk.core.schemas import CamelModel

if TYPE_CHECKING:
    from panodesk.features.tours.schemas import TourSummary
    from panodesk.features.users.schemas import UserPublic


class CommentCreate(CamelModel):
    content: str = Field(..., min_length=1, max_length=10000)
    tour_id: str
    parent_id: str | None = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def blank_parent_is_none(cls, value):
        # The UI sends "" when the comment is not a reply
        if isinstance(value, str) and not value.strip():
            return None
        return value


class CommentUpdate(CamelModel):
    content: str = Field(..., min_length=1, max_length=10000)


class CommentResponse(CamelModel):
    id: str
    content: str
    tour_id: str
    tour: "TourSummary | None" = None
    author_id: str
    author: "UserPublic | None" = None
    parent_id: str | None = None
    reply_count: int = 0
    created_at: datetime
    updated_at: datetime


# Import at the end to avoid circular dependency issues
from panodesk.features.tours.schemas import TourSummary  # noqa: E402
from panodesk.features.users.schemas import UserPublic  # noqa: E402
CommentResponse.model_rebuild()
