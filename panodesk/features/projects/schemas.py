"""
Pydantic schemas for project requests and responses.
"""
from datetime import datetime
from pydantic import Field, field_validator
from typing import TYPE_CHECKING

from panodesk.core.schemas import CamelModel, reject_null

if TYPE_CHECKING:
    from panodesk.features.organizations.schemas import OrganizationSummary
    from panodesk.features.tours.schemas import TourSummary
    from panodesk.features.users.schemas import UserPublic


class ProjectBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)


class ProjectCreate(ProjectBase):
    organization_id: str


class ProjectUpdate(CamelModel):
    """
    Fields that can change after creation.

    ``currentTourId`` may be set to null to clear the current tour.
    Moving a project to another organization is not supported.
    """
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    current_tour_id: str | None = None

    _not_null = field_validator("name")(reject_null)


class ProjectSummary(CamelModel):
    id: str
    name: str
    organization_id: str


class ProjectResponse(ProjectBase):
    id: str
    organization_id: str
    organization: "OrganizationSummary | None" = None
    current_tour_id: str | None = None
    current_tour: "TourSummary | None" = None
    reviewers: list["UserPublic"] = Field(default_factory=list)
    tour_count: int = 0
    created_at: datetime
    updated_at: datetime


class AddReviewerRequest(CamelModel):
    user_id: str


# Import at the end to avoid circular dependency issues
from panodesk.features.organizations.schemas import OrganizationSummary  # noqa: E402
from panodesk.features.tours.schemas import TourSummary  # noqa: E402
from panodesk.features.users.schemas import UserPublic  # noqa: E402
ProjectResponse.model_rebuild()
