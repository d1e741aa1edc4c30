"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.auth import router as auth_router
from routes.pricing_records import router as pricing_records_router
from routes.ingest import router as ingest_router

__all__ = [
    "auth_router",
    "pricing_records_router",
    "ingest_router",
]
