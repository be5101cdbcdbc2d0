"""
Organization feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import ConflictError, ValidationError, NotFoundOrExpired
from panodesk.core.schemas import Envelope, MessageResponse, Page, PageQuery, paginate
from panodesk.features.users.models import User, Role
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.users.schemas import UserPublic
from panodesk.features.organizations.models import Organization, organization_members
from panodesk.features.organizations.schemas import (
    OrganizationCreate,
    OrganizationUpdate,
    OrganizationResponse,
    AddMemberRequest,
)
from panodesk.features.organizations.dependencies import (
    get_organization_by_id,
    get_visible_organization,
    visible_organization_ids,
)
from panodesk.features.permissions.dependencies import (
    require_capability,
    ensure_manages_organization,
    create_audit_log,
)
from panodesk.features.permissions.policy import Capability
from panodesk.features.projects.models import Project
from panodesk.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["organizations"])

MANAGER_ROLES = {Role.SUPER_ADMIN, Role.SYSTEM_USER, Role.ORGANIZATION_MANAGER}

StaffUser = Annotated[User, Depends(require_capability(Capability.MANAGE_ORGANIZATIONS))]


async def _to_response(db: AsyncSession, organization: Organization) -> OrganizationResponse:
    response = OrganizationResponse.model_validate(organization)
    response.member_count = len(organization.members)
    response.project_count = await db.scalar(
        select(func.count(Project.id)).where(Project.organization_id == organization.id)
    ) or 0
    return response


async def _get_manager(db: AsyncSession, manager_id: str) -> User:
    manager = await db.scalar(select(User).where(User.id == manager_id))
    if manager is None or not manager.is_active:
        raise ValidationError.for_field("managerId", "Manager not found")
    if manager.role not in MANAGER_ROLES:
        raise ValidationError.for_field("managerId", "User cannot manage an organization")
    return manager


# Organization CRUD endpoints
@router.get("", response_model=Envelope[Page[OrganizationResponse]])
async def list_organizations(
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
):
    """List organizations the current user can see."""
    query = select(Organization)

    visible = visible_organization_ids(user)
    if visible is not None:
        query = query.where(Organization.id.in_(visible))

    if params.search:
        pattern = f"%{params.search}%"
        query = query.where(or_(Organization.name.ilike(pattern), Organization.description.ilike(pattern)))

    query = query.order_by(Organization.created_at.desc(), Organization.id.desc())
    rows, pagination = await paginate(db, query, params)
    items = [await _to_response(db, organization) for organization in rows]
    return Envelope(data=Page(items=items, pagination=pagination))


@router.post("", response_model=Envelope[OrganizationResponse], status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    request: Request,
    admin: StaffUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a new organization (staff only)."""
    await _get_manager(db, org_data.manager_id)

    new_org = Organization(**org_data.model_dump())
    db.add(new_org)
    await db.flush()

    create_audit_log(db, admin.id, "create", "organization", new_org.id,
                     {"name": new_org.name, "managerId": new_org.manager_id}, request)
    await db.commit()
    await db.refresh(new_org)

    return Envelope(message="Organization created successfully", data=await _to_response(db, new_org))


@router.get("/{organization_id}", response_model=Envelope[OrganizationResponse])
async def get_organization(
    organization: Annotated[Organization, Depends(get_visible_organization)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get organization by ID."""
    return Envelope(data=await _to_response(db, organization))


@router.put("/{organization_id}", response_model=Envelope[OrganizationResponse])
async def update_organization(
    organization_id: str,
    update_data: OrganizationUpdate,
    admin: StaffUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update organization information (staff only)."""
    organization = await get_organization_by_id(organization_id, db)

    # Update only provided fields
    update_dict = update_data.model_dump(exclude_unset=True)
    if update_dict.get("manager_id") is not None:
        await _get_manager(db, update_dict["manager_id"])
    elif "manager_id" in update_dict:
        raise ValidationError.for_field("managerId", "An organization must have a manager")

    for field, value in update_dict.items():
        setattr(organization, field, value)

    await db.commit()
    await db.refresh(organization)

    return Envelope(message="Organization updated successfully", data=await _to_response(db, organization))


@router.delete("/{organization_id}", response_model=MessageResponse)
async def delete_organization(
    organization_id: str,
    request: Request,
    admin: StaffUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete an organization and, through the database, its projects (staff only)."""
    organization = await get_organization_by_id(organization_id, db)
    await db.delete(organization)
    create_audit_log(db, admin.id, "delete", "organization", organization_id, {"name": organization.name}, request)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Organization is still referenced and cannot be deleted")

    return MessageResponse(message="Organization deleted successfully")


# Membership endpoints
@router.get("/{organization_id}/members", response_model=Envelope[list[UserPublic]])
async def list_members(
    organization: Annotated[Organization, Depends(get_visible_organization)],
):
    """List the members of an organization."""
    return Envelope(data=[UserPublic.model_validate(member) for member in organization.members])


@router.post("/{organization_id}/members", response_model=Envelope[list[UserPublic]], status_code=status.HTTP_201_CREATED)
async def add_member(
    organization_id: str,
    member_data: AddMemberRequest,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add a user to an organization (staff or the organization's manager)."""
    organization = await get_organization_by_id(organization_id, db)
    ensure_manages_organization(user, organization)

    member = await db.scalar(select(User).where(User.id == member_data.user_id))
    if member is None:
        raise ValidationError.for_field("userId", "User not found")

    if any(existing.id == member.id for existing in organization.members):
        raise ConflictError("User is already a member of this organization")

    await db.execute(
        organization_members.insert().values(user_id=member.id, organization_id=organization.id)
    )
    await db.commit()
    await db.refresh(organization)

    log.info("Added %s to organization %s", member.id, organization.id)
    return Envelope(
        message="Member added successfully",
        data=[UserPublic.model_validate(m) for m in organization.members],
    )


@router.delete("/{organization_id}/members/{user_id}", response_model=MessageResponse)
async def remove_member(
    organization_id: str,
    user_id: str,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a user from an organization (staff or the organization's manager)."""
    organization = await get_organization_by_id(organization_id, db)
    ensure_manages_organization(user, organization)

    result = await db.execute(
        organization_members.delete().where(
            organization_members.c.organization_id == organization.id,
            organization_members.c.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundOrExpired("Member not found")

    await db.commit()
    return MessageResponse(message="Member removed successfully")
