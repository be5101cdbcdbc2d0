"""
Auth feature routes: sessions, signup, password reset, invitation tokens.

Everything here except ``/me`` is reachable without a session.
"""
from datetime import timedelta
from typing import Annotated
from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core import config
from panodesk.core.database.engine import get_db
from panodesk.core.errors import AccessDenied, AuthenticationError, ConflictError, NotFoundOrExpired
from panodesk.core.limiter import limiter
from panodesk.core.mail import send_mail, frontend_link
from panodesk.core.schemas import Envelope, MessageResponse
from panodesk.features.users.models import Role, User
from panodesk.features.users.auth import (
    create_session_token,
    generate_token,
    hash_password,
    verify_password,
)
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.users.schemas import UserResponse, UserPublic
from panodesk.features.auth.schemas import (
    LoginRequest,
    RegisterRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
)
from panodesk.features.invitations import service as invitations
from panodesk.features.invitations.schemas import (
    TokenRequest,
    VerifyInvitationResponse,
    AcceptInvitationRequest,
)
from panodesk.features.organizations.schemas import OrganizationSummary
from panodesk.features.projects.schemas import ProjectSummary
from panodesk.features.permissions.dependencies import create_audit_log
from panodesk.utils import get_logger, utcnow


log = get_logger(__name__)

router = APIRouter(tags=["auth"])

RESET_REQUESTED_MESSAGE = "If an account exists for this email, a reset link has been sent"


def set_session_cookie(response: Response, user: User) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE_NAME,
        value=create_session_token(user.id),
        max_age=config.SESSION_TTL_HOURS * 3600,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
    )


def send_verification_mail(user: User) -> None:
    link = frontend_link("/verify-email", token=user.email_verification_token)
    body = (
        f"Hi {user.first_name},\n\n"
        f"Confirm your email address to finish setting up your PanoDesk account:\n{link}"
    )
    send_mail(user.email, "Verify your PanoDesk account", body)


def send_password_reset_mail(user: User) -> None:
    link = frontend_link("/reset-password", token=user.password_reset_token)
    body = (
        f"Hi {user.first_name},\n\n"
        f"Someone asked to reset your PanoDesk password. If it was you, follow this link "
        f"within {config.PASSWORD_RESET_TTL_HOURS} hour(s):\n{link}\n\n"
        f"Otherwise you can ignore this message."
    )
    send_mail(user.email, "Reset your PanoDesk password", body)


# Sessions
@router.post("/login", response_model=Envelope[UserResponse])
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Check credentials and start a cookie session."""
    user = await db.scalar(select(User).where(User.email == credentials.email))

    if user is None or not verify_password(credentials.password, user.password_hash):
        log.info("Failed login for %s", credentials.email)
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AccessDenied("User account is deactivated")
    if not user.email_verified:
        raise AccessDenied("Please verify your email before logging in")

    user.last_login_at = utcnow()
    await db.commit()
    await db.refresh(user)

    set_session_cookie(response, user)
    log.info("User %s logged in", user.id)
    return Envelope(message="Login successful", data=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    """Drop the session cookie."""
    response.delete_cookie(config.SESSION_COOKIE_NAME, httponly=True, secure=config.COOKIE_SECURE, samesite="lax")
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=Envelope[UserResponse])
async def me(user: CurrentUser):
    """Return the user behind the current session."""
    return Envelope(data=UserResponse.model_validate(user))


# Signup and email verification
@router.post("/register", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED)
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def register(
    request: Request,
    user_data: RegisterRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a reviewer account and mail a verification link."""
    if not config.ALLOW_SIGNUP:
        raise AccessDenied("Registration is closed")

    existing = await db.scalar(select(User.id).where(User.email == user_data.email))
    if existing is not None:
        raise ConflictError("User already exists with this email")

    user = User(
        email=user_data.email,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        password_hash=hash_password(user_data.password),
        role=Role.REVIEWER,
        email_verified=False,
        email_verification_token=generate_token(),
    )
    db.add(user)
    await db.flush()
    create_audit_log(db, user.id, "register", "user", user.id, request=request)
    await db.commit()
    await db.refresh(user)

    log.info("Registered user %s", user.id)
    send_verification_mail(user)
    return Envelope(message="Registration successful, check your email to verify your account",
                    data=UserResponse.model_validate(user))


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    token_data: TokenRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Confirm an email address from the link in the verification mail."""
    user = await db.scalar(select(User).where(User.email_verification_token == token_data.token))
    if user is None:
        raise NotFoundOrExpired("Invalid or expired verification link")

    user.email_verified = True
    user.email_verification_token = None
    await db.commit()

    log.info("User %s verified their email", user.id)
    return MessageResponse(message="Email verified successfully")


# Password reset
@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def forgot_password(
    request: Request,
    reset_data: ForgotPasswordRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Mail a reset link.

    Answers the same way whether or not the address belongs to an account.
    """
    user = await db.scalar(select(User).where(User.email == reset_data.email))
    if user is not None and user.is_active:
        user.password_reset_token = generate_token()
        user.password_reset_expires_at = utcnow() + timedelta(hours=config.PASSWORD_RESET_TTL_HOURS)
        await db.commit()
        await db.refresh(user)
        send_password_reset_mail(user)
        log.info("Password reset requested for %s", user.id)

    return MessageResponse(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    request: Request,
    reset_data: ResetPasswordRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Set a new password with a token from the reset mail."""
    user = await db.scalar(select(User).where(User.password_reset_token == reset_data.token))
    if user is None or user.password_reset_expires_at is None or user.password_reset_expires_at <= utcnow():
        raise NotFoundOrExpired("Invalid or expired reset link")

    user.password_hash = hash_password(reset_data.password)
    user.password_reset_token = None
    user.password_reset_expires_at = None
    # The reset mail proved the address
    user.email_verified = True
    create_audit_log(db, user.id, "reset_password", "user", user.id, request=request)
    await db.commit()

    log.info("Password reset for %s", user.id)
    return MessageResponse(message="Password reset successfully")


# Invitation tokens
@router.get("/verify-invitation", response_model=Envelope[VerifyInvitationResponse])
async def verify_invitation(
    token: Annotated[str, Query(min_length=1, max_length=255)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Check an invitation link before showing the accept form."""
    verified = await invitations.verify_invitation(db, token)
    invitation = verified.invitation
    data = VerifyInvitationResponse(
        needs_registration=verified.needs_registration,
        email=invitation.email,
        role=invitation.role,
        project=ProjectSummary.model_validate(invitation.project) if invitation.project else None,
        organization=(
            OrganizationSummary.model_validate(invitation.organization) if invitation.organization else None
        ),
        invited_by=UserPublic.model_validate(invitation.sender),
        expires_at=invitation.expires_at,
    )
    return Envelope(data=data)


@router.post("/accept-invitation", response_model=Envelope[UserResponse])
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def accept_invitation(
    request: Request,
    accept_data: AcceptInvitationRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Accept an invitation, registering first if the invitee has no account."""
    user = await invitations.accept_invitation(
        db,
        accept_data.token,
        first_name=accept_data.first_name,
        last_name=accept_data.last_name,
        password=accept_data.password,
        confirm_password=accept_data.confirm_password,
        request=request,
    )
    return Envelope(message="Invitation accepted successfully", data=UserResponse.model_validate(user))


@router.post("/decline-invitation", response_model=MessageResponse)
async def decline_invitation(
    request: Request,
    token_data: TokenRequest,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Turn an invitation down."""
    await invitations.decline_invitation(db, token_data.token, request)
    return MessageResponse(message="Invitation declined")
