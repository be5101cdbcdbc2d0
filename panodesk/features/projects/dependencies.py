"""
Project lookups and visibility rules.
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
from panodesk.features.projects.models import Project, project_reviewers
from panodesk.features.permissions.policy import is_staff


async def get_project_by_id(project_id: str, db: AsyncSession) -> Project:
    project = await db.scalar(select(Project).where(Project.id == project_id))
    if project is None:
        raise NotFoundOrExpired("Project not found")
    return project


def visible_project_ids(user: User) -> Select | None:
    """
    Sub-select of project ids ``user`` may see, or None for everything.

    - staff: every project
    - organization managers: projects of organizations they manage or belong to
    - reviewers: projects they are assigned to
    """
    if is_staff(user.role):
        return None

    assigned = select(project_reviewers.c.project_id).where(project_reviewers.c.user_id == user.id)
    if user.role == Role.ORGANIZATION_MANAGER:
        member_of = select(organization_members.c.organization_id).where(
            organization_members.c.user_id == user.id
        )
        managed = select(Organization.id).where(Organization.manager_id == user.id)
        return select(Project.id).where(
            or_(
                Project.organization_id.in_(managed),
                Project.organization_id.in_(member_of),
                Project.id.in_(assigned),
            )
        )
    return assigned


async def ensure_project_visible(db: AsyncSession, user: User, project_id: str) -> None:
    visible = visible_project_ids(user)
    if visible is None:
        return
    allowed = await db.scalar(select(Project.id).where(Project.id == project_id, Project.id.in_(visible)))
    if allowed is None:
        raise AccessDenied("You do not have access to this project")


async def get_visible_project(
    project_id: str,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Project:
    """
    Get project and verify the user may see it.

    Raises:
        NotFoundOrExpired: if project not found
        AccessDenied: if the project is outside the user's scope
    """
    project = await get_project_by_id(project_id, db)
    await ensure_project_visible(db, user, project.id)
    return project
