"""
Caller identity and user profile routes.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import structlog

from models.auth import CurrentUserResponse, UserProfile
from models.user import UserProfileCreate, UserProfileResponse
from services.permission_service import resolve_permissions
from services.user_service import get_user_service
from routes.deps import get_current_user
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_me(user: UserProfile = Depends(get_current_user)):
    """Caller profile and the permissions its role grants."""
    return CurrentUserResponse(user=user, permissions=resolve_permissions(user.role))


@router.post("/users", response_model=UserProfileResponse, status_code=201)
async def create_user_profile(
    data: UserProfileCreate,
    user: UserProfile = Depends(get_current_user)
):
    """
    Create a profile for an identity-provider user.

    Raises:
        403: Caller cannot manage users
        409: Profile already exists
    """
    try:
        return await get_user_service().create_profile(user, data)
    except Exception as e:
        return handle_error(e)
