"""
Pydantic schemas for organization-related requests and responses.
"""
from datetime import datetime
from pydantic import Field, field_validator
from typing import TYPE_CHECKING

from panodesk.core.schemas import CamelModel, reject_null

if TYPE_CHECKING:
    from panodesk.features.users.schemas import UserPublic


class OrganizationBase(CamelModel):
    """Base organization schema."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    website: str | None = Field(None, max_length=255)


class OrganizationCreate(OrganizationBase):
    """Schema for creating a new organization (staff only)."""
    manager_id: str = Field(..., description="User who will manage the organization")


class OrganizationUpdate(CamelModel):
    """Schema for updating organization information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    website: str | None = Field(None, max_length=255)
    manager_id: str | None = None
    is_active: bool | None = None

    _not_null = field_validator("name", "is_active")(reject_null)


class OrganizationSummary(CamelModel):
    """Public organization information (limited fields)."""
    id: str
    name: str


class OrganizationResponse(OrganizationBase):
    """Schema for organization responses."""
    id: str
    manager_id: str
    manager: "UserPublic | None" = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    member_count: int = 0
    project_count: int = 0


class AddMemberRequest(CamelModel):
    """Schema for adding a user to an organization."""
    user_id: str = Field(..., description="ID of the user to add")


# Import at the end to avoid circular dependency issues
from panodesk.features.users.schemas import UserPublic  # noqa: E402
OrganizationResponse.model_rebuild()
