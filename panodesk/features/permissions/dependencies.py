"""
Permission checking utilities and dependencies.

Implements:
- Role gates built from the static policy table
- Ownership checks (organization manager, comment author)
- Audit logging helpers
"""
from typing import Annotated, Any, Dict, Iterable, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from panodesk.core.errors import AccessDenied
from panodesk.features.users.dependencies import get_current_user
from panodesk.features.users.models import Role, User
from panodesk.features.permissions.models import AuditLog
from panodesk.features.permissions.policy import Capability, roles_for, is_staff
from panodesk.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def authorize(allowed_roles: Iterable[Role]):
    """
    FastAPI dependency that lets only ``allowed_roles`` through.

    Usage:
        @router.delete("/{user_id}")
        async def delete_user(
            user: User = Depends(authorize({Role.SUPER_ADMIN, Role.SYSTEM_USER}))
        ):
            ...

    Returns:
        Dependency function that returns the current user if their role is allowed

    Raises:
        AccessDenied: if the caller's role is not in ``allowed_roles``
    """
    allowed = frozenset(allowed_roles)

    async def role_dependency(
        current_user: Annotated[User, Depends(get_current_user)]
    ) -> User:
        if current_user.role not in allowed:
            log.info("Denied %s (%s): requires one of %s", current_user.id, current_user.role.value,
                     sorted(role.value for role in allowed))
            raise AccessDenied("You do not have permission to perform this action")
        return current_user

    return role_dependency


def require_capability(capability: Capability):
    """Shortcut for ``authorize(roles_for(capability))``."""
    return authorize(roles_for(capability))


# ============================================================================
# Ownership Checks
# ============================================================================

def ensure_manages_organization(user: User, organization) -> None:
    """
    Staff may act on any organization; an organization manager only on the
    ones they manage. Everyone else is refused.
    """
    if is_staff(user.role):
        return
    if user.role == Role.ORGANIZATION_MANAGER and organization.manager_id == user.id:
        return
    raise AccessDenied("You do not manage this organization")


def manages_organization(user: User, organization) -> bool:
    try:
        ensure_manages_organization(user, organization)
    except AccessDenied:
        return False
    return True


# ============================================================================
# Audit Logging
# ============================================================================

def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Add an audit log entry to the current transaction.

    The entry is committed together with the change it describes.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "create", "update", "delete", "accept")
        resource_type: Type of resource (e.g., "user", "invitation")
        resource_id: ID of the resource
        details: Additional details
        request: Incoming request, for the client address
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=request.client.host if request is not None and request.client else None,
    )
    db.add(audit_log)

    log.info("Audit: user=%s action=%s resource=%s:%s", user_id, action, resource_type, resource_id)

    return audit_log
