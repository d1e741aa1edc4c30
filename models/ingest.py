"""
CSV ingestion models.

Summary returned to the uploader, including the per-row error table.
"""

from enum import Enum
from typing import Optional
from pydantic import Field

from models.base import BaseSchema, OutcomeStatus


class IngestMode(str, Enum):
    """Conflict policy for rows whose (store_id, sku) already exists."""
    APPEND = "append"        # skip existing keys
    OVERWRITE = "overwrite"  # update existing keys


class RowErrorReport(BaseSchema):
    """One invalid CSV row."""

    row_index: int = Field(..., description="Source line (header is line 1)")
    store_id: str = ""
    sku: str = ""
    errors: list[str] = Field(default_factory=list)


class IngestionSummary(BaseSchema):
    """
    Result of one CSV ingestion call.

    `uploaded` counts records actually written (inserted + updated).
    """

    status: OutcomeStatus = OutcomeStatus.OK
    mode: IngestMode
    total: int = 0
    valid: int = 0
    invalid: int = 0
    uploaded: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    invalid_rows: list[RowErrorReport] = Field(default_factory=list)
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.OK
