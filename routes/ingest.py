"""
CSV ingestion API routes.

Bulk upload of the pricing feed and the downloadable template.
"""

import asyncio

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
import structlog

from models.auth import UserProfile
from models.ingest import IngestMode, IngestionSummary
from parsers.pricing_csv_parser import TEMPLATE_FILENAME, build_template_csv
from services.ingestion_service import get_ingestion_service
from routes.deps import get_current_user, outcome_response
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()

DISCONNECT_POLL_SECONDS = 0.5


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


async def _cancel_on_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set cancel_event if the uploader goes away mid-ingestion."""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning("upload_client_disconnected", path=request.url.path)
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


# ===================
# ROUTES
# ===================

@router.post("/csv", response_model=IngestionSummary)
async def ingest_csv(
    request: Request,
    file: UploadFile = File(..., description="Pricing CSV (Store ID, SKU, Product Name, Price, Date)"),
    mode: IngestMode = Query(IngestMode.APPEND, description="append skips existing keys, overwrite updates them"),
    user: UserProfile = Depends(get_current_user)
):
    """
    Upload a pricing CSV.

    Invalid rows are reported in the response and never block the valid
    ones. The upload is cancelled, with nothing written, if the client
    disconnects before the commit.

    Raises:
        400: Not a CSV file, or empty
        413: File too large
        422: File is not a readable pricing CSV
    """
    logger.info(
        "csv_ingest_started",
        filename=file.filename,
        content_type=file.content_type,
        mode=mode.value
    )

    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=400,
            detail="File must be a CSV"
        )

    try:
        content = await file.read()

        if len(content) == 0:
            raise HTTPException(
                status_code=400,
                detail="Uploaded file is empty"
            )

        cancel_event = asyncio.Event()
        watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel_event))
        try:
            summary = await get_ingestion_service().ingest_csv(user, content, mode, cancel_event)
        finally:
            watcher.cancel()

        return outcome_response(summary)

    except HTTPException:
        raise
    except Exception as e:
        return handle_error(e)


@router.get("/template")
async def download_template(user: UserProfile = Depends(get_current_user)):
    """Download the CSV template with sample rows."""
    return Response(
        content=build_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'}
    )
