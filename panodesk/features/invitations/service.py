"""
Invitation workflow.

States: PENDING -> ACCEPTED | REJECTED | EXPIRED. Only PENDING rows change.
Expiry is lazy: a PENDING row past ``expires_at`` is treated as EXPIRED when
something reads it, and ``expire_stale_invitations`` can sweep the rest.

Every token-based entry point (verify, accept, decline) answers an unknown,
used or expired token with the same ``NotFoundOrExpired`` message.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from fastapi import Request
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core import config
from panodesk.core.errors import (
    AccessDenied,
    ConflictError,
    InvalidStateError,
    NotFoundOrExpired,
    ValidationError,
)
from panodesk.core.mail import send_mail, frontend_link
from panodesk.features.users.auth import generate_token, hash_password
from panodesk.features.users.models import Role, User
from panodesk.features.organizations.models import Organization, organization_members
from panodesk.features.projects.models import Project, project_reviewers
from panodesk.features.permissions.dependencies import create_audit_log, ensure_manages_organization
from panodesk.features.permissions.policy import Capability, can_grant, has_capability, outranks
from panodesk.features.invitations.models import Invitation, InvitationStatus
from panodesk.utils import get_logger, utcnow


log = get_logger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or expired invitation"


@dataclass
class VerifiedInvitation:
    invitation: Invitation
    needs_registration: bool


def _expiry(now: datetime) -> datetime:
    return now + timedelta(hours=config.INVITATION_TTL_HOURS)


def send_invitation_mail(invitation: Invitation) -> None:
    link = frontend_link("/accept-invitation", token=invitation.token)
    target = invitation.project.name if invitation.project else (
        invitation.organization.name if invitation.organization else "PanoDesk"
    )
    role = invitation.role.value.replace("_", " ").title()
    body = (
        f"{invitation.sender.full_name} invited you to join {target} as {role}.\n\n"
        f"Accept the invitation: {link}\n\n"
        f"This link expires on {invitation.expires_at:%Y-%m-%d %H:%M} UTC."
    )
    send_mail(invitation.email, "You're invited to PanoDesk", body)


async def _find_user(db: AsyncSession, invitation: Invitation) -> Optional[User]:
    if invitation.invitee_id is not None:
        user = await db.scalar(select(User).where(User.id == invitation.invitee_id))
        if user is not None:
            return user
    return await db.scalar(select(User).where(User.email == invitation.email))


# ============================================================================
# Sender side
# ============================================================================

async def create_invitation(
    db: AsyncSession,
    sender: User,
    role: Role,
    email: Optional[str] = None,
    user_id: Optional[str] = None,
    project_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    request: Optional[Request] = None,
) -> Invitation:
    """
    Create a PENDING invitation and mail its link.

    Raises:
        AccessDenied: sender may not invite, or targets an organization they don't manage
        ValidationError: no invitee, unknown user/project/organization, or a role the
            sender cannot grant (nothing is persisted)
        ConflictError: a live invitation for the same address and target already exists
    """
    if not has_capability(sender.role, Capability.SEND_INVITATIONS):
        raise AccessDenied("You do not have permission to send invitations")

    if not email and not user_id:
        raise ValidationError("Either an email or a user is required", errors={
            "email": "Either an email or a user is required",
        })

    if not can_grant(sender.role, role):
        raise ValidationError.for_field("role", f"You cannot grant the {role.value} role")

    invitee: Optional[User] = None
    if user_id:
        invitee = await db.scalar(select(User).where(User.id == user_id))
        if invitee is None:
            raise ValidationError.for_field("userId", "User not found")
        email = invitee.email
    else:
        email = email.strip().lower()
        invitee = await db.scalar(select(User).where(User.email == email))

    organization: Optional[Organization] = None
    if project_id:
        project = await db.scalar(select(Project).where(Project.id == project_id))
        if project is None:
            raise ValidationError.for_field("projectId", "Project not found")
        if organization_id and organization_id != project.organization_id:
            raise ValidationError.for_field("organizationId", "Project belongs to another organization")
        organization = project.organization
    elif organization_id:
        organization = await db.scalar(select(Organization).where(Organization.id == organization_id))
        if organization is None:
            raise ValidationError.for_field("organizationId", "Organization not found")

    if organization is not None:
        ensure_manages_organization(sender, organization)
    elif sender.role == Role.ORGANIZATION_MANAGER:
        raise ValidationError.for_field("organizationId", "Choose one of your organizations or projects")

    now = utcnow()
    duplicate = await db.scalar(
        select(Invitation.id).where(
            Invitation.email == email,
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at > now,
            Invitation.project_id.is_(None) if project_id is None else Invitation.project_id == project_id,
            Invitation.organization_id.is_(None) if organization is None
            else Invitation.organization_id == organization.id,
        )
    )
    if duplicate is not None:
        raise ConflictError("A pending invitation already exists for this email")

    invitation = Invitation(
        token=generate_token(),
        email=email,
        invitee_id=invitee.id if invitee is not None else None,
        role=role,
        project_id=project_id,
        organization_id=organization.id if organization is not None else None,
        status=InvitationStatus.PENDING,
        expires_at=_expiry(now),
        sender_id=sender.id,
    )
    db.add(invitation)
    await db.flush()

    create_audit_log(db, sender.id, "create", "invitation", invitation.id,
                     {"email": email, "role": role.value, "projectId": project_id}, request)
    await db.commit()
    await db.refresh(invitation)

    log.info("Invitation %s sent by %s to %s as %s", invitation.id, sender.id, email, role.value)
    send_invitation_mail(invitation)
    return invitation


async def resend_invitation(db: AsyncSession, invitation: Invitation, rotate_token: bool = False) -> Invitation:
    """
    Push the expiry out again and re-send the mail.

    An invitation past its expiry counts as EXPIRED and cannot be resent.

    Raises:
        InvalidStateError: the invitation is no longer PENDING
    """
    now = utcnow()
    current = invitation.effective_status(now)
    if current != InvitationStatus.PENDING:
        raise InvalidStateError(f"Only pending invitations can be resent (status is {current.value})")

    invitation.expires_at = _expiry(now)
    if rotate_token:
        invitation.token = generate_token()

    await db.commit()
    await db.refresh(invitation)

    log.info("Invitation %s resent (token rotated: %s)", invitation.id, rotate_token)
    send_invitation_mail(invitation)
    return invitation


async def set_invitation_status(db: AsyncSession, invitation: Invitation, status: InvitationStatus) -> Invitation:
    """
    Sender-side revoke: PENDING -> REJECTED or EXPIRED.

    Raises:
        ValidationError: target status is not REJECTED/EXPIRED
        InvalidStateError: the invitation is no longer PENDING
    """
    if status not in (InvitationStatus.REJECTED, InvitationStatus.EXPIRED):
        raise ValidationError.for_field("status", "Status can only be changed to REJECTED or EXPIRED")
    current = invitation.effective_status(utcnow())
    if current != InvitationStatus.PENDING:
        raise InvalidStateError(f"Invitation is already {current.value}")

    invitation.status = status
    await db.commit()
    await db.refresh(invitation)

    log.info("Invitation %s marked %s", invitation.id, status.value)
    return invitation


async def delete_invitation(db: AsyncSession, invitation: Invitation, actor: User,
                            request: Optional[Request] = None) -> None:
    """Hard delete, whatever the status."""
    invitation_id = invitation.id
    await db.delete(invitation)
    create_audit_log(db, actor.id, "delete", "invitation", invitation_id, {"email": invitation.email}, request)
    await db.commit()


async def expire_stale_invitations(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Persist EXPIRED for every PENDING invitation past its expiry.

    Safe to run repeatedly; returns how many rows changed.
    """
    now = now or utcnow()
    result = await db.execute(
        update(Invitation)
        .where(Invitation.status == InvitationStatus.PENDING, Invitation.expires_at <= now)
        .values(status=InvitationStatus.EXPIRED)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        log.info("Expired %d stale invitations", result.rowcount)
    return result.rowcount


# ============================================================================
# Invitee side
# ============================================================================

async def get_pending_invitation(db: AsyncSession, token: str, now: Optional[datetime] = None) -> Invitation:
    """
    Resolve a token to a usable invitation.

    A PENDING row found past its expiry is flipped to EXPIRED before failing.

    Raises:
        NotFoundOrExpired: unknown, resolved or expired token
    """
    now = now or utcnow()
    invitation = await db.scalar(select(Invitation).where(Invitation.token == token))

    if invitation is None or invitation.status != InvitationStatus.PENDING:
        raise NotFoundOrExpired(INVALID_TOKEN_MESSAGE)

    if invitation.is_expired(now):
        await db.execute(
            update(Invitation)
            .where(Invitation.id == invitation.id, Invitation.status == InvitationStatus.PENDING)
            .values(status=InvitationStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        log.info("Invitation %s expired on read", invitation.id)
        raise NotFoundOrExpired(INVALID_TOKEN_MESSAGE)

    return invitation


async def verify_invitation(db: AsyncSession, token: str) -> VerifiedInvitation:
    """Look a token up and say whether the invitee still has to register."""
    invitation = await get_pending_invitation(db, token)
    user = await _find_user(db, invitation)
    return VerifiedInvitation(invitation=invitation, needs_registration=user is None)


def _validate_registration(
    first_name: Optional[str],
    last_name: Optional[str],
    password: Optional[str],
    confirm_password: Optional[str],
) -> None:
    errors: dict[str, str] = {}
    if not first_name or not first_name.strip():
        errors["firstName"] = "First name is required"
    if not last_name or not last_name.strip():
        errors["lastName"] = "Last name is required"
    if not password or len(password) < config.PASSWORD_MIN_LENGTH:
        errors["password"] = f"Password must be at least {config.PASSWORD_MIN_LENGTH} characters"
    elif confirm_password is not None and confirm_password != password:
        errors["confirmPassword"] = "Passwords do not match"
    if errors:
        raise ValidationError("Validation errors", errors=errors)


async def _claim(db: AsyncSession, invitation: Invitation, status: InvitationStatus, now: datetime,
                 **values) -> None:
    """
    Atomically move a PENDING, unexpired invitation to ``status``.

    Exactly one of several concurrent callers succeeds; the rest see
    ``NotFoundOrExpired``.
    """
    result = await db.execute(
        update(Invitation)
        .where(and_(
            Invitation.id == invitation.id,
            Invitation.status == InvitationStatus.PENDING,
            Invitation.expires_at > now,
        ))
        .values(status=status, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        raise NotFoundOrExpired(INVALID_TOKEN_MESSAGE)


async def _attach(db: AsyncSession, user: User, invitation: Invitation) -> None:
    """Give an account what the invitation grants."""
    if outranks(invitation.role, user.role):
        log.info("Upgrading %s from %s to %s", user.id, user.role.value, invitation.role.value)
        user.role = invitation.role

    if invitation.organization_id is not None:
        is_member = await db.scalar(
            select(organization_members.c.user_id).where(
                organization_members.c.user_id == user.id,
                organization_members.c.organization_id == invitation.organization_id,
            )
        )
        if is_member is None:
            await db.execute(organization_members.insert().values(
                user_id=user.id, organization_id=invitation.organization_id
            ))

    if invitation.project_id is not None and invitation.role == Role.REVIEWER:
        is_reviewer = await db.scalar(
            select(project_reviewers.c.user_id).where(
                project_reviewers.c.user_id == user.id,
                project_reviewers.c.project_id == invitation.project_id,
            )
        )
        if is_reviewer is None:
            await db.execute(project_reviewers.insert().values(
                user_id=user.id, project_id=invitation.project_id
            ))


async def accept_invitation(
    db: AsyncSession,
    token: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    password: Optional[str] = None,
    confirm_password: Optional[str] = None,
    request: Optional[Request] = None,
) -> User:
    """
    Accept an invitation, registering the invitee if they have no account.

    The token is re-checked here rather than trusted from an earlier verify,
    and registration input is validated before anything is written.

    Raises:
        NotFoundOrExpired: unknown, resolved or expired token (also the losing
            side of two concurrent accepts)
        ValidationError: missing names, short or mismatched password
        AccessDenied: the invited account is deactivated
        ConflictError: the email was registered concurrently
    """
    now = utcnow()
    invitation = await get_pending_invitation(db, token, now)
    user = await _find_user(db, invitation)

    if user is None:
        _validate_registration(first_name, last_name, password, confirm_password)
    elif not user.is_active:
        raise AccessDenied("User account is deactivated")

    await _claim(db, invitation, InvitationStatus.ACCEPTED, now, accepted_at=now)

    if user is None:
        user = User(
            email=invitation.email,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            password_hash=hash_password(password),
            role=invitation.role,
            # The invitation mail already proved the address
            email_verified=True,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User already exists with this email")
        created = True
    else:
        created = False

    await _attach(db, user, invitation)

    await db.execute(
        update(Invitation)
        .where(Invitation.id == invitation.id)
        .values(accepted_by_id=user.id)
        .execution_options(synchronize_session=False)
    )
    create_audit_log(db, user.id, "accept", "invitation", invitation.id,
                     {"role": invitation.role.value, "registered": created}, request)
    await db.commit()
    await db.refresh(user)
    await db.refresh(invitation)

    log.info("Invitation %s accepted by %s (new account: %s)", invitation.id, user.id, created)
    return user


async def decline_invitation(db: AsyncSession, token: str, request: Optional[Request] = None) -> Invitation:
    """Invitee turns the invitation down: PENDING -> REJECTED."""
    now = utcnow()
    invitation = await get_pending_invitation(db, token, now)
    await _claim(db, invitation, InvitationStatus.REJECTED, now)
    create_audit_log(db, None, "decline", "invitation", invitation.id, {"email": invitation.email}, request)
    await db.commit()
    await db.refresh(invitation)

    log.info("Invitation %s declined", invitation.id)
    return invitation
