"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import EmailStr, Field, field_validator

from panodesk.core import config
from panodesk.core.schemas import CamelModel
from panodesk.features.users.models import Role


def _normalize_email(value):
    if isinstance(value, str):
        return value.strip().lower()
    return value


class UserBase(CamelModel):
    """Base user schema with common fields."""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)

    _email = field_validator("email", mode="before")(_normalize_email)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls, value):
        return value.strip() if isinstance(value, str) else value


class UserCreate(UserBase):
    """Schema for creating a user from the admin screens."""
    password: str = Field(..., min_length=config.PASSWORD_MIN_LENGTH, max_length=72)
    role: Role = Role.REVIEWER


class UserUpdate(CamelModel):
    """
    Schema for admin updates.

    Password and token fields are not accepted here; passwords change
    through ``PUT /users/{id}/password``.
    """
    email: EmailStr | None = None
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    role: Role | None = None
    is_active: bool | None = None

    _email = field_validator("email", mode="before")(_normalize_email)


class ProfileUpdate(CamelModel):
    """Schema for a user editing their own profile."""
    email: EmailStr | None = None
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)

    _email = field_validator("email", mode="before")(_normalize_email)


class PasswordChange(CamelModel):
    current_password: str | None = None
    new_password: str = Field(..., min_length=config.PASSWORD_MIN_LENGTH, max_length=72)


class UserPublic(CamelModel):
    """Public user information (limited fields)."""
    id: str
    email: str
    first_name: str
    last_name: str
    role: Role


class UserResponse(UserPublic):
    """Schema for user responses."""
    is_active: bool
    email_verified: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class UserDetail(UserResponse):
    """User with the organizations and projects they are attached to."""
    managed_organizations: list["OrganizationSummary"] = Field(default_factory=list)
    organizations: list["OrganizationSummary"] = Field(default_factory=list)
    reviewed_projects: list["ProjectSummary"] = Field(default_factory=list)


# Import at the end to avoid circular dependency issues
from panodesk.features.organizations.schemas import OrganizationSummary  # noqa: E402
from panodesk.features.projects.schemas import ProjectSummary  # noqa: E402
UserDetail.model_rebuild()
