"""
Pydantic schemas for invitation requests and responses.

Tokens only travel in the invitation mail; no response includes them.
"""
from datetime import datetime
from typing import TYPE_CHECKING
from pydantic import EmailStr, Field, field_validator

from panodesk.core.schemas import CamelModel
from panodesk.features.users.models import Role
from panodesk.features.invitations.models import InvitationStatus

if TYPE_CHECKING:
    from panodesk.features.organizations.schemas import OrganizationSummary
    from panodesk.features.projects.schemas import ProjectSummary
    from panodesk.features.users.schemas import UserPublic


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class InvitationCreate(CamelModel):
    """
    Invite by email address or by existing user id.

    The UI sends empty strings for fields it leaves blank.
    """
    email: EmailStr | None = None
    user_id: str | None = None
    role: Role = Role.REVIEWER
    project_id: str | None = None
    organization_id: str | None = None

    _blanks = field_validator("email", "user_id", "project_id", "organization_id", mode="before")(_blank_to_none)


class InvitationStatusUpdate(CamelModel):
    status: InvitationStatus


class InvitationResponse(CamelModel):
    id: str
    email: str
    invitee_id: str | None = None
    role: Role
    status: InvitationStatus
    project_id: str | None = None
    project: "ProjectSummary | None" = None
    organization_id: str | None = None
    organization: "OrganizationSummary | None" = None
    sender_id: str
    sender: "UserPublic | None" = None
    expires_at: datetime
    accepted_at: datetime | None = None
    accepted_by_id: str | None = None
    created_at: datetime
    updated_at: datetime


class TokenRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=255)


class VerifyInvitationResponse(CamelModel):
    needs_registration: bool
    email: str
    role: Role
    project: "ProjectSummary | None" = None
    organization: "OrganizationSummary | None" = None
    invited_by: "UserPublic | None" = None
    expires_at: datetime


class AcceptInvitationRequest(TokenRequest):
    """
    Registration fields are only needed when the invitee has no account yet;
    the service checks them so it can answer with field-level errors.
    """
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    password: str | None = Field(None, max_length=72)
    confirm_password: str | None = Field(None, max_length=72)


# Import at the end to avoid circular dependency issues
from panodesk.features.organizations.schemas import OrganizationSummary  # noqa: E402
from panodesk.features.projects.schemas import ProjectSummary  # noqa: E402
from panodesk.features.users.schemas import UserPublic  # noqa: E402
InvitationResponse.model_rebuild()
VerifyInvitationResponse.model_rebuild()
