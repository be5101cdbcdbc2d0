"""
Pydantic schemas for the policy and audit log endpoints.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from panodesk.core.schemas import CamelModel
from panodesk.features.permissions.policy import Capability
from panodesk.features.users.models import Role


class MyPermissionsResponse(CamelModel):
    """What the current user may do; the UI hides controls from this."""
    role: Role
    capabilities: list[Capability]
    grantable_roles: list[Role]


class PolicyEntry(CamelModel):
    capability: Capability
    roles: list[Role]


class AuditLogResponse(CamelModel):
    id: str
    user_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    created_at: datetime
