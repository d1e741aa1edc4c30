"""
User profile schemas.

Credentials live with the identity provider; this is the profile row
that carries the role.
"""

from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime

from models.base import BaseSchema
from models.auth import Role


class UserProfileCreate(BaseSchema):
    """
    Create a profile for an identity-provider user.

    Required: uid, email, display_name
    Optional: role (defaults to viewer)
    """

    uid: str = Field(..., min_length=1, description="Identity provider user ID")
    email: str = Field(
        ...,
        pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$",
        description="User email",
        examples=["pricing@example.com"]
    )
    display_name: str = Field(..., min_length=2, max_length=100, description="Display name")
    role: Role = Field(Role.VIEWER, description="Role")

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, v: str) -> str:
        return v.lower()


class UserProfileResponse(BaseSchema):
    """Stored user profile."""

    uid: str
    email: str
    display_name: Optional[str] = None
    role: str
    email_verified: bool = False
    created_at: Optional[datetime] = None
