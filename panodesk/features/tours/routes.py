"""
Tour feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import ValidationError, ConflictError, NotFoundOrExpired
from panodesk.core.schemas import Envelope, MessageResponse, Page, PageQuery, paginate
from panodesk.features.users.models import User
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.projects.models import Project
from panodesk.features.projects.dependencies import visible_project_ids, ensure_project_visible
from panodesk.features.permissions.dependencies import require_capability, ensure_manages_organization
from panodesk.features.permissions.policy import Capability
from panodesk.features.tours.models import Tour
from panodesk.features.tours.schemas import TourCreate, TourUpdate, TourResponse
from panodesk.features.comments.models import Comment


router = APIRouter(tags=["tours"])

TourManager = Annotated[User, Depends(require_capability(Capability.MANAGE_TOURS))]
TourViewer = Annotated[User, Depends(require_capability(Capability.VIEW_TOURS))]


async def _to_response(db: AsyncSession, tour: Tour) -> TourResponse:
    response = TourResponse.model_validate(tour)
    response.comment_count = await db.scalar(
        select(func.count(Comment.id)).where(Comment.tour_id == tour.id)
    ) or 0
    return response


async def get_tour_by_id(tour_id: str, db: AsyncSession) -> Tour:
    tour = await db.scalar(select(Tour).where(Tour.id == tour_id))
    if tour is None:
        raise NotFoundOrExpired("Tour not found")
    return tour


async def get_visible_tour(db: AsyncSession, user: User, tour_id: str) -> Tour:
    tour = await get_tour_by_id(tour_id, db)
    await ensure_project_visible(db, user, tour.project_id)
    return tour


async def _get_managed_tour(db: AsyncSession, user: User, tour_id: str) -> Tour:
    tour = await get_tour_by_id(tour_id, db)
    ensure_manages_organization(user, tour.project.organization)
    return tour


@router.get("", response_model=Envelope[Page[TourResponse]])
async def list_tours(
    user: TourViewer,
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
    project_id: Annotated[str | None, Query(alias="projectId")] = None,
):
    """List tours of the projects visible to the current user."""
    query = select(Tour)

    visible = visible_project_ids(user)
    if visible is not None:
        query = query.where(Tour.project_id.in_(visible))
    if project_id:
        query = query.where(Tour.project_id == project_id)
    if params.search:
        pattern = f"%{params.search}%"
        query = query.where(or_(
            Tour.name.ilike(pattern),
            Tour.version.ilike(pattern),
            Tour.description.ilike(pattern),
        ))

    query = query.order_by(Tour.created_at.desc(), Tour.id.desc())
    rows, pagination = await paginate(db, query, params)
    items = [await _to_response(db, tour) for tour in rows]
    return Envelope(data=Page(items=items, pagination=pagination))


@router.post("", response_model=Envelope[TourResponse], status_code=status.HTTP_201_CREATED)
async def create_tour(
    tour_data: TourCreate,
    user: TourManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a tour version in a project the caller manages."""
    project = await db.scalar(select(Project).where(Project.id == tour_data.project_id))
    if project is None:
        raise ValidationError.for_field("projectId", "Project not found")
    ensure_manages_organization(user, project.organization)

    tour = Tour(**tour_data.model_dump())
    db.add(tour)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("This tour version already exists in the project")
    await db.refresh(tour)

    return Envelope(message="Tour created successfully", data=await _to_response(db, tour))


@router.get("/{tour_id}", response_model=Envelope[TourResponse])
async def get_tour(
    tour_id: str,
    user: TourViewer,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get tour by ID."""
    tour = await get_visible_tour(db, user, tour_id)
    return Envelope(data=await _to_response(db, tour))


@router.get("/{tour_id}/versions", response_model=Envelope[list[TourResponse]])
async def list_tour_versions(
    tour_id: str,
    user: TourViewer,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """All versions of this tour within its project, newest first."""
    tour = await get_visible_tour(db, user, tour_id)
    result = await db.execute(
        select(Tour)
        .where(Tour.project_id == tour.project_id, Tour.name == tour.name)
        .order_by(Tour.created_at.desc(), Tour.id.desc())
    )
    versions = result.scalars().all()
    return Envelope(data=[await _to_response(db, version) for version in versions])


@router.put("/{tour_id}", response_model=Envelope[TourResponse])
async def update_tour(
    tour_id: str,
    update_data: TourUpdate,
    user: TourManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update a tour's name, description or payload. The version never changes."""
    tour = await _get_managed_tour(db, user, tour_id)

    update_dict = update_data.model_dump(exclude_unset=True)
    version = update_dict.pop("version", None)
    if version is not None and version != tour.version:
        raise ValidationError.for_field("version", "Tour version cannot be changed; create a new version instead")

    for field, value in update_dict.items():
        setattr(tour, field, value)

    await db.commit()
    await db.refresh(tour)

    return Envelope(message="Tour updated successfully", data=await _to_response(db, tour))


@router.delete("/{tour_id}", response_model=MessageResponse)
async def delete_tour(
    tour_id: str,
    user: TourManager,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a tour and its comments; a project pointing at it loses its current tour."""
    tour = await _get_managed_tour(db, user, tour_id)

    project = tour.project
    if project.current_tour_id == tour.id:
        project.current_tour_id = None
        await db.flush()

    await db.delete(tour)
    await db.commit()

    return MessageResponse(message="Tour deleted successfully")
