"""
Policy introspection and audit log routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.database.engine import get_db
from panodesk.core.schemas import Envelope, Page, PageQuery, paginate
from panodesk.features.users.dependencies import CurrentUser
from panodesk.features.users.models import User
from panodesk.features.permissions.dependencies import require_capability
from panodesk.features.permissions.models import AuditLog
from panodesk.features.permissions.policy import (
    CAPABILITIES,
    GRANTABLE_ROLES,
    Capability,
    capabilities_of,
)
from panodesk.features.permissions.schemas import AuditLogResponse, MyPermissionsResponse, PolicyEntry


router = APIRouter(tags=["permissions"])


@router.get("/me", response_model=Envelope[MyPermissionsResponse])
async def get_my_permissions(user: CurrentUser):
    """Capabilities and grantable roles of the current user."""
    data = MyPermissionsResponse(
        role=user.role,
        capabilities=capabilities_of(user.role),
        grantable_roles=sorted(GRANTABLE_ROLES[user.role], key=lambda role: role.value),
    )
    return Envelope(data=data)


@router.get("/policy", response_model=Envelope[list[PolicyEntry]])
async def get_policy(_user: CurrentUser):
    """The full capability table."""
    entries = [
        PolicyEntry(capability=capability, roles=sorted(roles, key=lambda role: role.value))
        for capability, roles in CAPABILITIES.items()
    ]
    return Envelope(data=entries)


@router.get("/audit-logs", response_model=Envelope[Page[AuditLogResponse]])
async def list_audit_logs(
    _admin: Annotated[User, Depends(require_capability(Capability.VIEW_AUDIT_LOG))],
    db: Annotated[AsyncSession, Depends(get_db)],
    params: PageQuery,
    resource_type: Annotated[str | None, Query(alias="resourceType")] = None,
    user_id: Annotated[str | None, Query(alias="userId")] = None,
):
    """Audit trail, newest first (staff only)."""
    query = select(AuditLog)
    if resource_type:
        query = query.where(AuditLog.resource_type == resource_type)
    if user_id:
        query = query.where(AuditLog.user_id == user_id)
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())

    rows, pagination = await paginate(db, query, params)
    items = [AuditLogResponse.model_validate(row) for row in rows]
    return Envelope(data=Page(items=items, pagination=pagination))
