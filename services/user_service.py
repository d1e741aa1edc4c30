"""
User profile service.

Profiles carry the role that drives permissions. Credentials stay with
the identity provider; this service only reads and writes the profile row.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from postgrest.exceptions import APIError
from supabase import AsyncClient

from config import settings, get_supabase_client
from models.auth import Capability, Role, UserProfile
from models.user import UserProfileCreate, UserProfileResponse
from exceptions import DatabaseError, PermissionDeniedError, UserProfileExistsError
from services.permission_service import check_permission
from services.pricing_record_service import UNIQUE_VIOLATION

logger = structlog.get_logger(__name__)


def _to_response(row: dict) -> UserProfileResponse:
    return UserProfileResponse(
        uid=row["id"],
        email=row.get("email") or "",
        display_name=row.get("display_name"),
        role=row.get("role") or Role.VIEWER.value,
        email_verified=bool(row.get("email_verified")),
        created_at=row.get("created_at"),
    )


class UserService:
    """User profile lookups and creation."""

    def __init__(self, db: Optional[AsyncClient] = None):
        self._db = db
        self.table = settings.users_table

    async def _table(self):
        client = self._db if self._db is not None else await get_supabase_client()
        return client.table(self.table)

    async def get_profile(self, uid: str, email: str = "") -> UserProfile:
        """
        Build the caller profile for a signed-in user.

        A missing profile row, or a failed read, falls back to a viewer
        so the user can still browse.

        Args:
            uid: Identity provider user ID
            email: Email reported by the identity provider

        Returns:
            UserProfile (stored email wins over the provider's)
        """
        fallback = UserProfile(uid=uid, email=email, role=Role.VIEWER.value)

        try:
            table = await self._table()
            result = await table.select("*").eq("id", uid).limit(1).execute()
        except Exception as e:
            logger.warning("user_profile_load_failed", uid=uid, error=str(e))
            return fallback

        if not result.data:
            logger.info("user_profile_missing", uid=uid)
            return fallback

        row = result.data[0]
        return UserProfile(
            uid=uid,
            email=row.get("email") or email,
            role=row.get("role") or Role.VIEWER.value,
        )

    async def create_profile(
        self,
        actor: UserProfile,
        data: UserProfileCreate
    ) -> UserProfileResponse:
        """
        Create a profile row for an existing identity-provider user.

        Raises:
            PermissionDeniedError: If actor lacks manage_users
            UserProfileExistsError: If the uid already has a profile
            DatabaseError: If the insert fails
        """
        if not check_permission(actor, Capability.MANAGE_USERS):
            raise PermissionDeniedError(Capability.MANAGE_USERS.value, actor.role)

        row = {
            "id": data.uid,
            "email": data.email,
            "display_name": data.display_name,
            "role": data.role.value,
            "email_verified": False,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.info(
            "creating_user_profile",
            uid=data.uid,
            role=data.role.value,
            created_by=actor.uid
        )

        try:
            table = await self._table()
            result = await table.insert(row).execute()

        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise UserProfileExistsError(data.uid) from e
            logger.error("create_user_profile_failed", uid=data.uid, error=e.message or str(e))
            raise DatabaseError("insert", e.message or str(e))
        except Exception as e:
            logger.error("create_user_profile_failed", uid=data.uid, error=str(e))
            raise DatabaseError("insert", str(e))

        return _to_response(result.data[0] if result.data else row)


# Singleton instance for convenience
_user_service: Optional[UserService] = None


def get_user_service() -> UserService:
    """Get or create UserService instance."""
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service
