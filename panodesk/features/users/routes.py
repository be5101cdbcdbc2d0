"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import AccessDenied, ConflictError, NotFoundOrExpired, ValidationError
from panodesk.core.schemas import Envelope, MessageResponse, Page, PageQuery, paginate
from panodesk.features.users.auth import hash_password, verify_password
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.users.models import Role, User
from panodesk.features.users.schemas import (
    UserCreate,
    UserUpdate,
    ProfileUpdate,
    PasswordChange,
    UserResponse,
    UserDetail,
)
from panodesk.features.organizations.models import Organization, organization_members
from panodesk.features.organizations.schemas import OrganizationSummary
from panodesk.features.projects.models import Project, project_reviewers
from panodesk.features.projects.schemas import ProjectSummary
from panodesk.features.permissions.dependencies import require_capability, create_audit_log
from panodesk.features.permissions.policy import Capability, can_grant, has_capability
from panodesk.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["users"])

UserAdmin = Annotated[User, Depends(require_capability(Capability.MANAGE_USERS))]


async def get_user_by_id(user_id: str, db: AsyncSession) -> User:
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise NotFoundOrExpired("User not found")
    return user


def ensure_can_administer(actor: User, target: User) -> None:
    """Only a super admin may change a super admin's account."""
    if target.role == Role.SUPER_ADMIN and actor.role != Role.SUPER_ADMIN:
        raise AccessDenied("Only a super admin can modify a super admin")


async def _email_taken(db: AsyncSession, email: str, exclude_id: str | None = None) -> bool:
    query = select(User.id).where(User.email == email)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    return await db.scalar(query) is not None


async def _to_detail(db: AsyncSession, user: User) -> UserDetail:
    detail = UserDetail.model_validate(user)

    managed = await db.scalars(select(Organization).where(Organization.manager_id == user.id))
    detail.managed_organizations = [OrganizationSummary.model_validate(org) for org in managed]

    member_of = await db.scalars(
        select(Organization)
        .join(organization_members, organization_members.c.organization_id == Organization.id)
        .where(organization_members.c.user_id == user.id)
    )
    detail.organizations = [OrganizationSummary.model_validate(org) for org in member_of]

    reviewed = await db.scalars(
        select(Project)
        .join(project_reviewers, project_reviewers.c.project_id == Project.id)
        .where(project_reviewers.c.user_id == user.id)
    )
    detail.reviewed_projects = [ProjectSummary.model_validate(project) for project in reviewed]
    return detail


# Self-service endpoints; declared before /{user_id} so "me" is not taken for an id
@router.get("/me", response_model=Envelope[UserDetail])
async def get_current_user_profile(
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get current authenticated user's profile."""
    return Envelope(data=await _to_detail(db, user))


@router.put("/me", response_model=Envelope[UserResponse])
async def update_current_user_profile(
    update_data: ProfileUpdate,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's name or email."""
    update_dict = update_data.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in update_dict and await _email_taken(db, update_dict["email"], user.id):
        raise ConflictError("User already exists with this email")

    for field, value in update_dict.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    return Envelope(message="Profile updated successfully", data=UserResponse.model_validate(user))


# User administration
@router.get("", response_model=Envelope[Page[UserResponse]])
async def list_users(
    admin: UserAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
    role: Annotated[Role | None, Query()] = None,
):
    """List users with optional search on name and email."""
    query = select(User)

    if role is not None:
        query = query.where(User.role == role)
    if params.search:
        pattern = f"%{params.search}%"
        query = query.where(
            or_(User.email.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern))
        )

    query = query.order_by(User.created_at.desc(), User.id.desc())
    rows, pagination = await paginate(db, query, params)
    return Envelope(data=Page(items=[UserResponse.model_validate(u) for u in rows], pagination=pagination))


@router.post("", response_model=Envelope[UserResponse], status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    request: Request,
    admin: UserAdmin,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create an account directly; it is considered verified."""
    if not can_grant(admin.role, user_data.role):
        raise AccessDenied(f"You cannot grant the {user_data.role.value} role")

    if await _email_taken(db, user_data.email):
        raise ConflictError("User already exists with this email")

    user = User(
        email=user_data.email,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        password_hash=hash_password(user_data.password),
        role=user_data.role,
        email_verified=True,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User already exists with this email")

    create_audit_log(db, admin.id, "create", "user", user.id, {"email": user.email, "role": user.role.value}, request)
    await db.commit()
    await db.refresh(user)

    log.info("User %s created %s as %s", admin.id, user.id, user.role.value)
    return Envelope(message="User created successfully", data=UserResponse.model_validate(user))


@router.get("/{user_id}", response_model=Envelope[UserDetail])
async def get_user(
    user_id: str,
    admin: UserAdmin,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get user by ID with their organizations and projects."""
    user = await get_user_by_id(user_id, db)
    return Envelope(data=await _to_detail(db, user))


@router.put("/{user_id}", response_model=Envelope[UserResponse])
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    request: Request,
    admin: UserAdmin,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a user's profile, role or active flag."""
    user = await get_user_by_id(user_id, db)
    ensure_can_administer(admin, user)

    update_dict = update_data.model_dump(exclude_unset=True, exclude_none=True)

    if "role" in update_dict and update_dict["role"] != user.role:
        if user.id == admin.id:
            raise ValidationError.for_field("role", "You cannot change your own role")
        if not can_grant(admin.role, update_dict["role"]):
            raise AccessDenied(f"You cannot grant the {update_dict['role'].value} role")

    if update_dict.get("is_active") is False and user.id == admin.id:
        raise ValidationError.for_field("isActive", "You cannot deactivate your own account")

    if "email" in update_dict and await _email_taken(db, update_dict["email"], user.id):
        raise ConflictError("User already exists with this email")

    changes = {}
    for field, value in update_dict.items():
        if getattr(user, field) != value:
            changes[field] = value.value if isinstance(value, Role) else value
        setattr(user, field, value)

    if changes:
        create_audit_log(db, admin.id, "update", "user", user.id, changes, request)
    await db.commit()
    await db.refresh(user)

    if changes:
        log.info("User %s updated %s: %s", admin.id, user.id, sorted(changes))
    return Envelope(message="User updated successfully", data=UserResponse.model_validate(user))


@router.put("/{user_id}/password", response_model=MessageResponse)
async def change_password(
    user_id: str,
    password_data: PasswordChange,
    request: Request,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Change a password.

    Users changing their own password must give the current one; user
    administrators may set anyone's password without it.
    """
    if user_id != user.id and not has_capability(user.role, Capability.MANAGE_USERS):
        raise AccessDenied("You can only change your own password")

    target = await get_user_by_id(user_id, db)

    if target.id == user.id:
        if not password_data.current_password or not verify_password(
            password_data.current_password, target.password_hash
        ):
            raise ValidationError.for_field("currentPassword", "Current password is incorrect")
    else:
        ensure_can_administer(user, target)

    target.password_hash = hash_password(password_data.new_password)
    target.password_reset_token = None
    target.password_reset_expires_at = None
    create_audit_log(db, user.id, "change_password", "user", target.id, request=request)
    await db.commit()

    return MessageResponse(message="Password changed successfully")


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: str,
    request: Request,
    admin: UserAdmin,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a user that nothing else references."""
    if user_id == admin.id:
        raise ValidationError("You cannot delete your own account")

    user = await get_user_by_id(user_id, db)
    ensure_can_administer(admin, user)

    email = user.email
    await db.delete(user)
    create_audit_log(db, admin.id, "delete", "user", user_id, {"email": email}, request)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User is still referenced (organizations, comments or invitations) and cannot be deleted")

    log.info("User %s deleted %s", admin.id, user_id)
    return MessageResponse(message="User deleted successfully")
