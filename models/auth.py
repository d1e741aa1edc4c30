"""
Role and permission schemas.

The caller's profile comes from the identity provider; permissions are
always derived from the role, never stored.
"""

from enum import Enum
from pydantic import Field

from models.base import BaseSchema


class Role(str, Enum):
    """Staff roles."""
    ADMIN = "admin"
    PRICING_MANAGER = "pricing_manager"
    VIEWER = "viewer"


class Capability(str, Enum):
    """Capabilities a role can grant."""
    VIEW_DASHBOARD = "view_dashboard"
    SEARCH_RECORDS = "search_records"
    UPLOAD_CSV = "upload_csv"
    MANAGE_USERS = "manage_users"
    VIEW_ANALYTICS = "view_analytics"


class Permissions(BaseSchema):
    """Capability set resolved from a role. Everything defaults to denied."""

    view_dashboard: bool = False
    search_records: bool = False
    upload_csv: bool = False
    manage_users: bool = False
    view_analytics: bool = False

    def allows(self, capability: Capability) -> bool:
        """Check a single capability."""
        return bool(getattr(self, Capability(capability).value))


class UserProfile(BaseSchema):
    """
    Caller identity handed to every engine operation.

    `role` is kept as a raw string so an unrecognized value still
    reaches the permission resolver (which denies everything).
    """

    uid: str = Field(..., min_length=1, description="Identity provider user ID")
    email: str = Field("", description="User email")
    role: str = Field(Role.VIEWER.value, description="Role name")


class CurrentUserResponse(BaseSchema):
    """Profile plus resolved permissions."""

    user: UserProfile
    permissions: Permissions
