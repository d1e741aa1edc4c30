"""
Role-based permission resolution.

Pure lookup from role to capability set. Unknown roles get nothing:
a corrupted role degrades the caller to a fully restricted user
instead of failing the request.
"""

from typing import Optional, Union
import structlog

from models.auth import Role, Capability, Permissions, UserProfile

logger = structlog.get_logger(__name__)


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.PRICING_MANAGER: frozenset({
        Capability.VIEW_DASHBOARD,
        Capability.SEARCH_RECORDS,
        Capability.UPLOAD_CSV,
        Capability.VIEW_ANALYTICS,
    }),
    Role.VIEWER: frozenset({
        Capability.VIEW_DASHBOARD,
        Capability.SEARCH_RECORDS,
    }),
}


def _to_role(role: Union[Role, str, None]) -> Optional[Role]:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except (ValueError, TypeError):
        return None


def resolve_permissions(role: Union[Role, str, None]) -> Permissions:
    """
    Resolve a role to its permissions.

    Args:
        role: Role enum, role name, or None

    Returns:
        Permissions (all False for unknown roles)
    """
    resolved = _to_role(role)
    if resolved is None:
        logger.warning("unknown_role", role=role)
        return Permissions()

    granted = ROLE_CAPABILITIES[resolved]
    return Permissions(**{cap.value: cap in granted for cap in Capability})


def has_permission(user: UserProfile, capability: Capability) -> bool:
    """Check one capability for the caller."""
    return resolve_permissions(user.role).allows(capability)


def check_permission(user: UserProfile, capability: Capability) -> bool:
    """
    Gate an engine operation.

    Same as has_permission, but logs the denial.
    """
    allowed = has_permission(user, capability)
    if not allowed:
        logger.warning(
            "permission_denied",
            uid=user.uid,
            role=user.role,
            capability=capability.value
        )
    return allowed
