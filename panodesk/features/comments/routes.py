"""
Comment feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.errors import ValidationError, NotFoundOrExpired, AccessDenied
from panodesk.core.schemas import Envelope, MessageResponse, Page, PageQuery, paginate
from panodesk.features.users.models import User
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.projects.dependencies import visible_project_ids, ensure_project_visible
from panodesk.features.permissions.dependencies import require_capability, manages_organization
from panodesk.features.permissions.policy import Capability, has_capability
from panodesk.features.tours.models import Tour
from panodesk.features.comments.models import Comment
from panodesk.features.comments.schemas import CommentCreate, CommentUpdate, CommentResponse
from panodesk.utils import get_logger


log = get_logger(__name__)

router = APIRouter(tags=["comments"])

Commenter = Annotated[User, Depends(require_capability(Capability.CREATE_COMMENTS))]


async def _to_response(db: AsyncSession, comment: Comment) -> CommentResponse:
    response = CommentResponse.model_validate(comment)
    response.reply_count = await db.scalar(
        select(func.count(Comment.id)).where(Comment.parent_id == comment.id)
    ) or 0
    return response


async def get_comment_by_id(comment_id: str, db: AsyncSession) -> Comment:
    comment = await db.scalar(select(Comment).where(Comment.id == comment_id))
    if comment is None:
        raise NotFoundOrExpired("Comment not found")
    return comment


def can_modify_comment(user: User, comment: Comment) -> bool:
    """Authors may always change their own comments; moderators those in their scope."""
    if comment.author_id == user.id:
        return True
    if not has_capability(user.role, Capability.MODERATE_COMMENTS):
        return False
    return manages_organization(user, comment.tour.project.organization)


async def _get_modifiable_comment(db: AsyncSession, user: User, comment_id: str) -> Comment:
    comment = await get_comment_by_id(comment_id, db)
    if not can_modify_comment(user, comment):
        log.info("User %s may not modify comment %s", user.id, comment.id)
        raise AccessDenied("You can only modify your own comments")
    return comment


@router.get("", response_model=Envelope[Page[CommentResponse]])
async def list_comments(
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
    tour_id: Annotated[str | None, Query(alias="tourId")] = None,
    parent_id: Annotated[str | None, Query(alias="parentId")] = None,
):
    """List comments on tours visible to the current user, newest first."""
    query = select(Comment)

    visible = visible_project_ids(user)
    if visible is not None:
        query = query.join(Tour, Tour.id == Comment.tour_id).where(Tour.project_id.in_(visible))
    if tour_id:
        query = query.where(Comment.tour_id == tour_id)
    if parent_id:
        query = query.where(Comment.parent_id == parent_id)
    if params.search:
        query = query.where(Comment.content.ilike(f"%{params.search}%"))

    query = query.order_by(Comment.created_at.desc(), Comment.id.desc())
    rows, pagination = await paginate(db, query, params)
    items = [await _to_response(db, comment) for comment in rows]
    return Envelope(data=Page(items=items, pagination=pagination))


@router.post("", response_model=Envelope[CommentResponse], status_code=status.HTTP_201_CREATED)
async def create_comment(
    comment_data: CommentCreate,
    user: Commenter,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Comment on a tour, or reply to a top-level comment."""
    tour = await db.scalar(select(Tour).where(Tour.id == comment_data.tour_id))
    if tour is None:
        raise ValidationError.for_field("tourId", "Tour not found")
    await ensure_project_visible(db, user, tour.project_id)

    if comment_data.parent_id is not None:
        parent = await db.scalar(select(Comment).where(Comment.id == comment_data.parent_id))
        if parent is None or parent.tour_id != tour.id:
            raise ValidationError.for_field("parentId", "Parent comment not found on this tour")
        if parent.parent_id is not None:
            raise ValidationError.for_field("parentId", "Replies cannot be nested")

    comment = Comment(**comment_data.model_dump(), author_id=user.id)
    db.add(comment)
    await db.commit()
    await db.refresh(comment)

    return Envelope(message="Comment created successfully", data=await _to_response(db, comment))


@router.get("/{comment_id}", response_model=Envelope[CommentResponse])
async def get_comment(
    comment_id: str,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get comment by ID."""
    comment = await get_comment_by_id(comment_id, db)
    await ensure_project_visible(db, user, comment.tour.project_id)
    return Envelope(data=await _to_response(db, comment))


@router.put("/{comment_id}", response_model=Envelope[CommentResponse])
async def update_comment(
    comment_id: str,
    update_data: CommentUpdate,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Edit a comment (author or moderator)."""
    comment = await _get_modifiable_comment(db, user, comment_id)
    comment.content = update_data.content

    await db.commit()
    await db.refresh(comment)

    return Envelope(message="Comment updated successfully", data=await _to_response(db, comment))


@router.delete("/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: str,
    user: CurrentUser,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a comment and its replies (author or moderator)."""
    comment = await _get_modifiable_comment(db, user, comment_id)
    await db.delete(comment)
    await db.commit()

    return MessageResponse(message="Comment deleted successfully")
