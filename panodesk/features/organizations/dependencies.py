"""
Organization-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends
from sqlalchemy import Select, select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import NotFoundOrExpired, AccessDenied
from panodesk.features.users.models import User, Role
from panodesk.features.users.dependencies import get_current_user
from panodesk.features.organizations.models import Organization, organization_members
from panodesk.features.permissions.policy import is_staff


async def get_organization_by_id(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Organization:
    """
    Get organization by ID or raise 404.

    Args:
        organization_id: Organization ULID
        db: Database session

    Returns:
        Organization model

    Raises:
        NotFoundOrExpired: if organization not found
    """
    organization = await db.scalar(
        select(Organization).where(Organization.id == organization_id)
    )

    if organization is None:
        raise NotFoundOrExpired("Organization not found")

    return organization


def visible_organization_ids(user: User) -> Select | None:
    """
    Sub-select of organization ids ``user`` may see, or None for everything.

    Organization managers see the organizations they run or belong to;
    reviewers the ones they belong to.
    """
    if is_staff(user.role):
        return None

    member_of = select(organization_members.c.organization_id).where(
        organization_members.c.user_id == user.id
    )
    if user.role == Role.ORGANIZATION_MANAGER:
        return select(Organization.id).where(
            or_(Organization.manager_id == user.id, Organization.id.in_(member_of))
        )
    return member_of


async def get_visible_organization(
    organization_id: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Organization:
    """
    Get organization and verify the user may see it.

    Raises:
        NotFoundOrExpired: if org not found
        AccessDenied: if the user is neither staff, its manager nor a member
    """
    organization = await get_organization_by_id(organization_id, db)

    visible = visible_organization_ids(user)
    if visible is not None:
        allowed = await db.scalar(
            select(Organization.id).where(Organization.id == organization_id, Organization.id.in_(visible))
        )
        if allowed is None:
            raise AccessDenied("You are not a member of this organization")

    return organization
