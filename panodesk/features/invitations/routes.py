"""
Invitation feature routes (sender side).

The invitee side (verify / accept / decline by token) lives under /auth.
"""
from datetime import datetime
from typing import Annotated
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import NotFoundOrExpired, AccessDenied
from panodesk.core.schemas import Envelope, MessageResponse, Page, PageQuery, paginate
from panodesk.features.users.models import User
from panodesk.features.organizations.models import Organization
from panodesk.features.projects.models import Project
from panodesk.features.permissions.dependencies import require_capability, manages_organization
from panodesk.features.permissions.policy import Capability, is_staff
from panodesk.features.invitations import service
from panodesk.features.invitations.models import Invitation, InvitationStatus
from panodesk.features.invitations.schemas import (
    InvitationCreate,
    InvitationStatusUpdate,
    InvitationResponse,
)
from panodesk.utils import utcnow


router = APIRouter(tags=["invitations"])

Inviter = Annotated[User, Depends(require_capability(Capability.SEND_INVITATIONS))]


def to_response(invitation: Invitation, now: datetime | None = None) -> InvitationResponse:
    """Serialize with the effective status, so overdue PENDING rows read EXPIRED."""
    response = InvitationResponse.model_validate(invitation)
    response.status = invitation.effective_status(now or utcnow())
    return response


def _can_manage(user: User, invitation: Invitation) -> bool:
    if is_staff(user.role) or invitation.sender_id == user.id:
        return True
    organization = invitation.organization
    if organization is None and invitation.project is not None:
        organization = invitation.project.organization
    return organization is not None and manages_organization(user, organization)


async def get_managed_invitation(
    invitation_id: str,
    user: Inviter,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Invitation:
    """
    Get invitation and verify the user sent it or manages its target.

    Raises:
        NotFoundOrExpired: if invitation not found
        AccessDenied: if the invitation is outside the user's scope
    """
    invitation = await db.scalar(select(Invitation).where(Invitation.id == invitation_id))
    if invitation is None:
        raise NotFoundOrExpired("Invitation not found")
    if not _can_manage(user, invitation):
        raise AccessDenied("You do not have access to this invitation")
    return invitation


ManagedInvitation = Annotated[Invitation, Depends(get_managed_invitation)]


def _status_filter(wanted: InvitationStatus, now: datetime):
    """Filter on the effective status rather than the stored one."""
    live = and_(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at > now)
    if wanted == InvitationStatus.PENDING:
        return live
    if wanted == InvitationStatus.EXPIRED:
        return or_(
            Invitation.status == InvitationStatus.EXPIRED,
            and_(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at <= now),
        )
    return Invitation.status == wanted


@router.get("", response_model=Envelope[Page[InvitationResponse]])
async def list_invitations(
    user: Inviter,
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
    status_filter: Annotated[InvitationStatus | None, Query(alias="status")] = None,
):
    """
    List invitations, newest first.

    Staff see all of them; organization managers those they sent or that
    target an organization they manage.
    """
    now = utcnow()
    query = select(Invitation)

    if not is_staff(user.role):
        managed = select(Organization.id).where(Organization.manager_id == user.id)
        managed_projects = select(Project.id).where(Project.organization_id.in_(managed))
        query = query.where(
            or_(
                Invitation.sender_id == user.id,
                Invitation.organization_id.in_(managed),
                Invitation.project_id.in_(managed_projects),
            )
        )

    if status_filter is not None:
        query = query.where(_status_filter(status_filter, now))
    if params.search:
        query = query.where(Invitation.email.ilike(f"%{params.search}%"))

    query = query.order_by(Invitation.created_at.desc(), Invitation.id.desc())
    rows, pagination = await paginate(db, query, params)
    return Envelope(data=Page(items=[to_response(inv, now) for inv in rows], pagination=pagination))


@router.post("", response_model=Envelope[InvitationResponse], status_code=status.HTTP_201_CREATED)
@router.post("/send", response_model=Envelope[InvitationResponse], status_code=status.HTTP_201_CREATED,
             include_in_schema=False)
async def create_invitation(
    invitation_data: InvitationCreate,
    request: Request,
    user: Inviter,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Invite someone by email or user id, optionally to a project or organization."""
    invitation = await service.create_invitation(
        db,
        user,
        role=invitation_data.role,
        email=invitation_data.email,
        user_id=invitation_data.user_id,
        project_id=invitation_data.project_id,
        organization_id=invitation_data.organization_id,
        request=request,
    )
    return Envelope(message="Invitation sent successfully", data=to_response(invitation))


@router.get("/{invitation_id}", response_model=Envelope[InvitationResponse])
async def get_invitation(invitation: ManagedInvitation):
    """Get invitation by ID."""
    return Envelope(data=to_response(invitation))


@router.post("/{invitation_id}/resend", response_model=Envelope[InvitationResponse])
async def resend_invitation(
    invitation: ManagedInvitation,
    db: Annotated[AsyncSession, Depends(get_db)],
    rotate_token: Annotated[bool, Query(alias="rotateToken")] = False,
):
    """Extend a pending invitation and mail it again."""
    invitation = await service.resend_invitation(db, invitation, rotate_token=rotate_token)
    return Envelope(message="Invitation resent successfully", data=to_response(invitation))


@router.put("/{invitation_id}/status", response_model=Envelope[InvitationResponse])
async def update_invitation_status(
    update_data: InvitationStatusUpdate,
    invitation: ManagedInvitation,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Revoke a pending invitation (REJECTED or EXPIRED)."""
    invitation = await service.set_invitation_status(db, invitation, update_data.status)
    return Envelope(message="Invitation status updated successfully", data=to_response(invitation))


@router.delete("/{invitation_id}", response_model=MessageResponse)
async def delete_invitation(
    request: Request,
    invitation: ManagedInvitation,
    user: Inviter,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete an invitation."""
    await service.delete_invitation(db, invitation, user, request)
    return MessageResponse(message="Invitation deleted successfully")
