"""
Database connection management.

Provides the async Supabase client singleton used as the document store.
"""

from supabase import acreate_client, AsyncClient
from typing import Optional
import structlog

from config.settings import settings
from exceptions import ExternalServiceError

logger = structlog.get_logger(__name__)

_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """
    Get the shared async Supabase client.

    The client is created on first use and reused afterwards.

    Returns:
        AsyncClient: Supabase client

    Raises:
        ExternalServiceError: If the client cannot be created
    """
    global _client
    if _client is not None:
        return _client

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        _client = await acreate_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info("supabase_connected", status="success")
        return _client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ExternalServiceError(
            "supabase",
            f"Failed to connect to Supabase: {e}"
        ) from e


# ===================
# HELPER FUNCTIONS
# ===================

async def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    try:
        client = await get_supabase_client()

        records = await (
            client.table(settings.pricing_records_table)
            .select("id", count="exact")
            .limit(1)
            .execute()
        )

        return {
            "status": "healthy",
            "pricing_records_count": records.count
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }

