"""
Pydantic schemas for tour requests and responses.
"""
from datetime import datetime
from typing import Any, TYPE_CHECKING
from pydantic import Field, field_validator

from panodesk.core.schemas import CamelModel, reject_null

if TYPE_CHECKING:
    from panodesk.features.projects.schemas import ProjectSummary


class TourBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    version: str = Field(..., min_length=1, max_length=50)
    description: str | None = Field(None, max_length=5000)
    data: dict[str, Any] | list[Any] | None = None


class TourCreate(TourBase):
    project_id: str


class TourUpdate(CamelModel):
    """
    Mutable tour fields.

    ``version`` is accepted only so that a client echoing the whole record
    back doesn't fail; it must equal the stored version.
    """
    name: str | None = Field(None, min_length=1, max_length=255)
    version: str | None = None
    description: str | None = Field(None, max_length=5000)
    data: dict[str, Any] | list[Any] | None = None

    _not_null = field_validator("name")(reject_null)


class TourSummary(CamelModel):
    id: str
    name: str
    version: str


class TourResponse(TourBase):
    id: str
    project_id: str
    project: "ProjectSummary | None" = None
    comment_count: int = 0
    created_at: datetime
    updated_at: datetime


# Import at the end to avoid circular dependency issues
from panodesk.features.projects.schemas import ProjectSummary  # noqa: E402
TourResponse.model_rebuild()
