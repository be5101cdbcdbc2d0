"""
Project feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import ValidationError, ConflictError, NotFoundOrExpired
from panodesk.core.schemas import Envelope, MessageResponse, Page, PageQuery, paginate
from panodesk.features.users.models import User
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.users.schemas import UserPublic
from panodesk.features.organizations.models import Organization
from panodesk.features.projects.models import Project, project_reviewers
from panodesk.features.projects.schemas import ProjectCreate, ProjectUpdate, ProjectResponse, AddReviewerRequest
from panodesk.features.projects.dependencies import get_project_by_id, get_visible_project, visible_project_ids
from panodesk.features.permissions.dependencies import (
    require_capability,
    ensure_manages_organization,
    create_audit_log,
)
from panodesk.features.permissions.policy import Capability
from panodesk.features.tours.models import Tour


router = APIRouter(tags=["projects"])

ProjectManager = Annotated[User, Depends(require_capability(Capability.MANAGE_PROJECTS))]


async def _to_response(db: AsyncSession, project: Project) -> ProjectResponse:
    response = ProjectResponse.model_validate(project)
    response.tour_count = await db.scalar(
        select(func.count(Tour.id)).where(Tour.project_id == project.id)
    ) or 0
    return response


async def _get_managed_project(db: AsyncSession, user: User, project_id: str) -> Project:
    project = await get_project_by_id(project_id, db)
    ensure_manages_organization(user, project.organization)
    return project


@router.get("", response_model=Envelope[Page[ProjectResponse]])
async def list_projects(
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
    organization_id: Annotated[str | None, Query(alias="organizationId")] = None,
):
    """List the projects visible to the current user."""
    query = select(Project)

    visible = visible_project_ids(user)
    if visible is not None:
        query = query.where(Project.id.in_(visible))
    if organization_id:
        query = query.where(Project.organization_id == organization_id)
    if params.search:
        pattern = f"%{params.search}%"
        query = query.where(or_(Project.name.ilike(pattern), Project.description.ilike(pattern)))

    query = query.order_by(Project.created_at.desc(), Project.id.desc())
    rows, pagination = await paginate(db, query, params)
    items = [await _to_response(db, project) for project in rows]
    return Envelope(data=Page(items=items, pagination=pagination))


@router.post("", response_model=Envelope[ProjectResponse], status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    request: Request,
    user: ProjectManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a project under an organization the caller manages."""
    organization = await db.scalar(
        select(Organization).where(Organization.id == project_data.organization_id)
    )
    if organization is None:
        raise ValidationError.for_field("organizationId", "Organization not found")
    ensure_manages_organization(user, organization)

    project = Project(**project_data.model_dump())
    db.add(project)
    await db.flush()

    create_audit_log(db, user.id, "create", "project", project.id,
                     {"name": project.name, "organizationId": organization.id}, request)
    await db.commit()
    await db.refresh(project)

    return Envelope(message="Project created successfully", data=await _to_response(db, project))


@router.get("/{project_id}", response_model=Envelope[ProjectResponse])
async def get_project(
    project: Annotated[Project, Depends(get_visible_project)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get project by ID."""
    return Envelope(data=await _to_response(db, project))


@router.put("/{project_id}", response_model=Envelope[ProjectResponse])
async def update_project(
    project_id: str,
    update_data: ProjectUpdate,
    user: ProjectManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a project; the current tour must be one of its own tours."""
    project = await _get_managed_project(db, user, project_id)

    update_dict = update_data.model_dump(exclude_unset=True)
    current_tour_id = update_dict.get("current_tour_id")
    if current_tour_id is not None:
        tour = await db.scalar(select(Tour).where(Tour.id == current_tour_id))
        if tour is None or tour.project_id != project.id:
            raise ValidationError.for_field("currentTourId", "Tour does not belong to this project")

    for field, value in update_dict.items():
        setattr(project, field, value)

    await db.commit()
    await db.refresh(project)

    return Envelope(message="Project updated successfully", data=await _to_response(db, project))


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    project_id: str,
    request: Request,
    user: ProjectManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a project together with its tours and their comments."""
    project = await _get_managed_project(db, user, project_id)

    # Break the project <-> current tour cycle before the cascade runs
    project.current_tour_id = None
    await db.flush()

    await db.delete(project)
    create_audit_log(db, user.id, "delete", "project", project_id, {"name": project.name}, request)
    await db.commit()

    return MessageResponse(message="Project deleted successfully")


# Reviewer assignment endpoints
@router.get("/{project_id}/reviewers", response_model=Envelope[list[UserPublic]])
async def list_reviewers(
    project: Annotated[Project, Depends(get_visible_project)],
):
    """List the reviewers assigned to a project."""
    return Envelope(data=[UserPublic.model_validate(reviewer) for reviewer in project.reviewers])


@router.post("/{project_id}/reviewers", response_model=Envelope[list[UserPublic]], status_code=status.HTTP_201_CREATED)
async def add_reviewer(
    project_id: str,
    reviewer_data: AddReviewerRequest,
    user: ProjectManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a reviewer to a project."""
    project = await _get_managed_project(db, user, project_id)

    reviewer = await db.scalar(select(User).where(User.id == reviewer_data.user_id))
    if reviewer is None or not reviewer.is_active:
        raise ValidationError.for_field("userId", "User not found")

    if any(existing.id == reviewer.id for existing in project.reviewers):
        raise ConflictError("User is already a reviewer of this project")

    await db.execute(project_reviewers.insert().values(project_id=project.id, user_id=reviewer.id))
    await db.commit()
    await db.refresh(project)

    return Envelope(
        message="Reviewer added successfully",
        data=[UserPublic.model_validate(r) for r in project.reviewers],
    )


@router.delete("/{project_id}/reviewers/{user_id}", response_model=MessageResponse)
async def remove_reviewer(
    project_id: str,
    user_id: str,
    user: ProjectManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Unassign a reviewer from a project."""
    project = await _get_managed_project(db, user, project_id)

    result = await db.execute(
        project_reviewers.delete().where(
            project_reviewers.c.project_id == project.id,
            project_reviewers.c.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise NotFoundOrExpired("Reviewer not found")

    await db.commit()
    return MessageResponse(message="Reviewer removed successfully")
