"""
Shared route dependencies.

The identity gateway in front of the API authenticates the user and
forwards the result as headers; this module turns them into the caller
profile every engine operation takes.
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status
from fastapi.responses import JSONResponse
import structlog

from config import settings
from models.auth import UserProfile
from models.base import BaseSchema, OutcomeStatus
from services.user_service import get_user_service

logger = structlog.get_logger(__name__)

OUTCOME_STATUS_CODES = {
    OutcomeStatus.OK: 200,
    OutcomeStatus.INVALID: 422,
    OutcomeStatus.NOT_FOUND: 404,
    OutcomeStatus.DENIED: 403,
    OutcomeStatus.CONFLICT: 409,
    OutcomeStatus.CANCELLED: 409,
    OutcomeStatus.ERROR: 503,
}


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> UserProfile:
    """
    FastAPI dependency resolving the caller profile.

    Raises:
        HTTPException 401: Bad gateway key or missing user ID
    """
    if settings.api_key:
        if not x_api_key or not secrets.compare_digest(x_api_key, settings.api_key):
            logger.warning("invalid_api_key")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
                headers={"WWW-Authenticate": "API-Key"},
            )

    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )

    return await get_user_service().get_profile(uid, (x_user_email or "").strip())


def outcome_response(result: BaseSchema, success_code: int = 200) -> JSONResponse:
    """Render an engine outcome with the HTTP status matching its status field."""
    code = OUTCOME_STATUS_CODES[result.status]
    if result.status == OutcomeStatus.OK:
        code = success_code
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))
