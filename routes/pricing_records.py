"""
Pricing record API routes.

Search, filter and single-record edits. Outcomes are returned with the
status code matching their status field (403 denied, 404 not found,
409 conflict, 422 invalid, 503 store failure).
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
import structlog

from models.auth import UserProfile
from models.pricing_record import (
    EditResult,
    PricingRecordCreate,
    PricingRecordUpdate,
    RecordFilters,
    RecordQueryResult,
)
from services.search_service import get_search_service
from services.record_editor_service import get_record_editor_service
from routes.deps import get_current_user, outcome_response
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
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


# ===================
# QUERY ROUTES
# ===================

@router.get("", response_model=RecordQueryResult)
async def list_recent_records(
    page_size: int = Query(20, ge=1, le=100, description="Records to return"),
    user: UserProfile = Depends(get_current_user)
):
    """Most recently updated records, newest first."""
    try:
        result = await get_search_service().fetch_recent(user, page_size)
        return outcome_response(result)
    except Exception as e:
        return handle_error(e)


@router.get("/search", response_model=RecordQueryResult)
async def search_records(
    q: str = Query("", description="Store ID, SKU or product name"),
    user: UserProfile = Depends(get_current_user)
):
    """
    Search by code or product name.

    Codes (containing a hyphen, or 3+ uppercase letters/digits) are
    matched exactly against store ID and SKU.
    """
    try:
        result = await get_search_service().search(user, q)
        return outcome_response(result)
    except Exception as e:
        return handle_error(e)


@router.get("/search/product-name", response_model=RecordQueryResult)
async def search_by_product_name(
    q: str = Query("", description="Text contained in the product name"),
    user: UserProfile = Depends(get_current_user)
):
    """Case-insensitive product name search over recent records."""
    try:
        result = await get_search_service().search_by_product_name(user, q)
        return outcome_response(result)
    except Exception as e:
        return handle_error(e)


@router.get("/filter", response_model=RecordQueryResult)
async def filter_records(
    country: Optional[str] = Query(None, pattern=r"^[A-Za-z]{2,4}$", description="Country prefix, e.g. IND"),
    store_id: Optional[str] = Query(None, description="Exact store ID"),
    sku: Optional[str] = Query(None, description="Exact SKU"),
    min_price: Optional[Decimal] = Query(None, ge=0, description="Minimum price"),
    max_price: Optional[Decimal] = Query(None, ge=0, description="Maximum price"),
    user: UserProfile = Depends(get_current_user)
):
    """Filter by country prefix, store, SKU and price range."""
    try:
        filters = RecordFilters(
            country=country,
            store_id=store_id or None,
            sku=sku or None,
            min_price=min_price,
            max_price=max_price
        )
        result = await get_search_service().filter(user, filters)
        return outcome_response(result)
    except Exception as e:
        return handle_error(e)


# ===================
# RECORD ROUTES
# ===================

@router.get("/{record_id}", response_model=EditResult)
async def get_record(record_id: str, user: UserProfile = Depends(get_current_user)):
    """
    Get a single record.

    Raises:
        404: Record not found
    """
    try:
        result = await get_record_editor_service().get_record(user, record_id)
        return outcome_response(result)
    except Exception as e:
        return handle_error(e)


@router.post("", response_model=EditResult, status_code=201)
async def create_record(
    data: PricingRecordCreate,
    user: UserProfile = Depends(get_current_user)
):
    """
    Create a record by hand.

    Raises:
        422: Field errors, or the Store ID + SKU pair already exists
    """
    try:
        result = await get_record_editor_service().create_record(user, data)
        return outcome_response(result, success_code=201)
    except Exception as e:
        return handle_error(e)


@router.patch("/{record_id}", response_model=EditResult)
async def update_record(
    record_id: str,
    data: PricingRecordUpdate,
    user: UserProfile = Depends(get_current_user)
):
    """
    Update a record. Only provided fields are changed.

    Raises:
        404: Record not found
        409: Record changed since it was loaded
        422: Field errors
    """
    try:
        result = await get_record_editor_service().update_record(user, record_id, data)
        return outcome_response(result)
    except Exception as e:
        return handle_error(e)
