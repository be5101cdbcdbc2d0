"""
Static authorization policy.

One table maps each capability to the roles that hold it, and one table says
which roles each role may hand out (through invitations or the user admin
screens). Routes ask these tables instead of re-deriving role checks.
"""
import enum

from panodesk.features.users.models import Role


class Capability(str, enum.Enum):
    MANAGE_USERS = "manage_users"
    MANAGE_ORGANIZATIONS = "manage_organizations"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_TOURS = "manage_tours"
    VIEW_TOURS = "view_tours"
    CREATE_COMMENTS = "create_comments"
    MODERATE_COMMENTS = "moderate_comments"
    SEND_INVITATIONS = "send_invitations"
    VIEW_AUDIT_LOG = "view_audit_log"


STAFF_ROLES = frozenset({Role.SUPER_ADMIN, Role.SYSTEM_USER})
ALL_ROLES = frozenset(Role)

CAPABILITIES: dict[Capability, frozenset[Role]] = {
    Capability.MANAGE_USERS: STAFF_ROLES,
    Capability.MANAGE_ORGANIZATIONS: STAFF_ROLES,
    Capability.MANAGE_PROJECTS: STAFF_ROLES | {Role.ORGANIZATION_MANAGER},
    # Reviewers only read tours and comment on them
    Capability.MANAGE_TOURS: STAFF_ROLES | {Role.ORGANIZATION_MANAGER},
    Capability.VIEW_TOURS: ALL_ROLES,
    Capability.CREATE_COMMENTS: ALL_ROLES,
    # Authors may always edit or delete their own comments
    Capability.MODERATE_COMMENTS: STAFF_ROLES | {Role.ORGANIZATION_MANAGER},
    Capability.SEND_INVITATIONS: STAFF_ROLES | {Role.ORGANIZATION_MANAGER},
    Capability.VIEW_AUDIT_LOG: STAFF_ROLES,
}

GRANTABLE_ROLES: dict[Role, frozenset[Role]] = {
    Role.SUPER_ADMIN: ALL_ROLES,
    Role.SYSTEM_USER: frozenset({Role.SYSTEM_USER, Role.ORGANIZATION_MANAGER, Role.REVIEWER}),
    Role.ORGANIZATION_MANAGER: frozenset({Role.ORGANIZATION_MANAGER, Role.REVIEWER}),
    Role.REVIEWER: frozenset(),
}

# Higher outranks lower; used when an invitation lands on an existing account
ROLE_RANK: dict[Role, int] = {
    Role.REVIEWER: 0,
    Role.ORGANIZATION_MANAGER: 1,
    Role.SYSTEM_USER: 2,
    Role.SUPER_ADMIN: 3,
}


def roles_for(capability: Capability) -> frozenset[Role]:
    return CAPABILITIES[capability]


def has_capability(role: Role, capability: Capability) -> bool:
    return role in CAPABILITIES[capability]


def capabilities_of(role: Role) -> list[Capability]:
    return [capability for capability, roles in CAPABILITIES.items() if role in roles]


def can_grant(sender_role: Role, role: Role) -> bool:
    """True if a user with ``sender_role`` may give ``role`` to someone."""
    return role in GRANTABLE_ROLES[sender_role]


def outranks(role: Role, other: Role) -> bool:
    return ROLE_RANK[role] > ROLE_RANK[other]


def is_staff(role: Role) -> bool:
    return role in STAFF_ROLES
