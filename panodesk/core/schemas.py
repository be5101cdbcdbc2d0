"""
Response envelope and pagination schemas shared by all routers.

Every endpoint answers ``{"success": true, "message": ..., "data": ...}``;
list endpoints put ``{"items": [...], "pagination": {...}}`` under ``data``.
JSON keys are camelCase for the web UI, Python attributes stay snake_case.
"""
import math
from typing import Annotated, Generic, TypeVar

from fastapi import Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema: camelCase on the wire, attribute names accepted too."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def reject_null(value):
    """Field validator for optional update fields whose column is NOT NULL."""
    if value is None:
        raise ValueError("This field cannot be null")
    return value


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class Pagination(CamelModel):
    total: int
    page: int
    pages: int
    limit: int


class Page(CamelModel, Generic[T]):
    items: list[T] = Field(default_factory=list)
    pagination: Pagination


class PageParams(BaseModel):
    """Query parameters accepted by every list endpoint."""
    page: int = 1
    limit: int = 10
    search: str | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    search: Annotated[str | None, Query(max_length=255)] = None,
) -> PageParams:
    return PageParams(page=page, limit=limit, search=search.strip() if search else None)


PageQuery = Annotated[PageParams, Depends(page_params)]


async def paginate(db: AsyncSession, query: Select, params: PageParams) -> tuple[list, Pagination]:
    """
    Run ``query`` for one page and count the full result set.

    Returns the ORM rows and the pagination block; callers convert rows to
    their response schema.
    """
    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    total = total or 0
    result = await db.execute(query.offset(params.offset).limit(params.limit))
    rows = list(result.scalars().unique().all())
    pagination = Pagination(
        total=total,
        page=params.page,
        pages=math.ceil(total / params.limit) if total else 0,
        limit=params.limit,
    )
    return rows, pagination
