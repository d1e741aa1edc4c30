"""
CSV ingestion and reconciliation.

Parses and validates an uploaded pricing CSV, reconciles the valid rows
against existing (store_id, sku) keys under the append or overwrite
policy, and commits them in one conditional write so that two concurrent
uploads can never create the same key twice.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union
import structlog

from config import settings
from models.auth import Capability, UserProfile
from models.base import OutcomeStatus
from models.ingest import IngestMode, IngestionSummary, RowErrorReport
from models.pricing_record import ChangeAction, PricingRecordResponse, RecordChangeEvent
from parsers.pricing_csv_parser import ParsedRow, parse_pricing_csv
from utils.record_validator import normalize_date, parse_price
from exceptions import DatabaseError, IngestionCancelledError, UploadTooLargeError
from services.permission_service import check_permission
from services.pricing_record_service import PricingRecordService, get_pricing_record_service
from services.change_feed_service import ChangeFeed, get_change_feed

logger = structlog.get_logger(__name__)

RecordKey = tuple[str, str]


@dataclass
class ReconcilePlan:
    """Rows to commit after in-file and in-store duplicates are resolved."""
    rows: list[ParsedRow]
    existing: dict[RecordKey, PricingRecordResponse] = field(default_factory=dict)
    file_duplicates: int = 0

    @property
    def new_rows(self) -> list[ParsedRow]:
        return [row for row in self.rows if row.key not in self.existing]


def dedupe_rows(rows: list[ParsedRow], mode: IngestMode) -> tuple[list[ParsedRow], int]:
    """
    Collapse rows sharing a (store_id, sku) key.

    Append keeps the first occurrence, overwrite keeps the last one
    (at the position of the first).

    Returns:
        (unique rows, number of dropped duplicates)
    """
    chosen: dict[RecordKey, ParsedRow] = {}
    for row in rows:
        if mode == IngestMode.APPEND and row.key in chosen:
            continue
        chosen[row.key] = row
    return list(chosen.values()), len(rows) - len(chosen)


class IngestionService:
    """
    Bulk CSV upload into the pricing records table.

    Gated on the upload_csv capability. Row problems are reported in the
    summary; store failures and cancellation come back as a status.
    """

    def __init__(
        self,
        records: Optional[PricingRecordService] = None,
        change_feed: Optional[ChangeFeed] = None
    ):
        self.records = records or get_pricing_record_service()
        self.change_feed = change_feed or get_change_feed()
        self.batch_size = settings.ingest_batch_size

    async def ingest_csv(
        self,
        user: UserProfile,
        content: bytes,
        mode: Union[IngestMode, str] = IngestMode.APPEND,
        cancel_event: Optional[asyncio.Event] = None
    ) -> IngestionSummary:
        """
        Parse, validate, reconcile and commit a pricing CSV.

        Args:
            user: Caller profile
            content: Raw CSV bytes
            mode: append (skip existing keys) or overwrite (update them)
            cancel_event: Set it to abandon the upload before the commit

        Returns:
            IngestionSummary with counts and the per-row error table

        Raises:
            UploadTooLargeError: If content exceeds the upload limit
            CsvParseError: If the file cannot be read as a pricing CSV
        """
        mode = IngestMode(mode)

        if not check_permission(user, Capability.UPLOAD_CSV):
            return IngestionSummary(
                status=OutcomeStatus.DENIED,
                mode=mode,
                message="You do not have permission to upload pricing data"
            )

        if len(content) > settings.max_upload_bytes:
            raise UploadTooLargeError(len(content), settings.max_upload_bytes)

        logger.info(
            "ingesting_pricing_csv",
            uid=user.uid,
            mode=mode.value,
            size=len(content)
        )

        parsed = parse_pricing_csv(content)
        valid_rows = parsed.valid_rows

        summary = IngestionSummary(
            mode=mode,
            total=parsed.total,
            valid=len(valid_rows),
            invalid=len(parsed.invalid_rows),
            errors=parsed.error_messages(),
            invalid_rows=[
                RowErrorReport(
                    row_index=row.row_index,
                    store_id=row.store_id,
                    sku=row.sku,
                    errors=row.errors
                )
                for row in parsed.invalid_rows
            ],
        )

        rows, file_duplicates = dedupe_rows(valid_rows, mode)
        if file_duplicates:
            logger.info("csv_duplicate_keys_dropped", count=file_duplicates)

        if not rows:
            summary.skipped = file_duplicates
            summary.message = "No valid rows to upload"
            return summary

        plan = ReconcilePlan(rows=rows, file_duplicates=file_duplicates)

        try:
            plan.existing = await self._lookup_existing(rows, cancel_event)
            self._raise_if_cancelled(cancel_event, len(rows))
            written = await self._commit(plan, mode, user)

        except IngestionCancelledError as e:
            logger.warning(
                "ingestion_cancelled",
                uid=user.uid,
                rows_checked=e.details.get("rows_checked")
            )
            summary.status = OutcomeStatus.CANCELLED
            summary.message = "Upload cancelled. No records were written."
            return summary

        except DatabaseError as e:
            logger.error(
                "ingestion_commit_failed",
                uid=user.uid,
                mode=mode.value,
                error=e.message
            )
            summary.status = OutcomeStatus.ERROR
            summary.uploaded = 0
            summary.message = "Failed to save records. Please try again."
            return summary

        self._count(summary, plan, written, mode)

        logger.info(
            "ingestion_complete",
            uid=user.uid,
            mode=mode.value,
            total=summary.total,
            invalid=summary.invalid,
            inserted=summary.inserted,
            updated=summary.updated,
            skipped=summary.skipped
        )

        if written:
            await self.change_feed.publish(RecordChangeEvent(
                action=ChangeAction.INGESTED,
                record_ids=[record.id for record in written],
                actor=user.uid
            ))

        return summary

    # ===================
    # HELPER METHODS
    # ===================

    async def _lookup_existing(
        self,
        rows: list[ParsedRow],
        cancel_event: Optional[asyncio.Event]
    ) -> dict[RecordKey, PricingRecordResponse]:
        """Find rows whose key is already stored, one batch at a time."""
        existing: dict[RecordKey, PricingRecordResponse] = {}

        for start in range(0, len(rows), self.batch_size):
            self._raise_if_cancelled(cancel_event, start)
            batch = rows[start:start + self.batch_size]
            existing.update(await self.records.get_by_keys(row.key for row in batch))

        logger.debug("existing_keys_found", rows=len(rows), existing=len(existing))
        return existing

    async def _commit(
        self,
        plan: ReconcilePlan,
        mode: IngestMode,
        user: UserProfile
    ) -> list[PricingRecordResponse]:
        """
        Write the plan in one upsert keyed by (store_id, sku).

        Append sends only keys that looked absent; a key inserted by
        someone else in the meantime is left alone by the store.
        """
        overwrite = mode == IngestMode.OVERWRITE
        rows = plan.rows if overwrite else plan.new_rows
        now = datetime.now(timezone.utc).isoformat()

        payload = [self._to_payload(row, user, now) for row in rows]
        return await self.records.upsert_batch(payload, overwrite=overwrite)

    @staticmethod
    def _to_payload(row: ParsedRow, user: UserProfile, now: str) -> dict[str, Any]:
        return {
            "store_id": row.store_id,
            "sku": row.sku,
            "product_name": row.product_name,
            "price": float(parse_price(row.price)),
            "date": normalize_date(row.date),
            "currency": settings.default_currency,
            "updated_by": user.uid,
            "updated_at": now,
        }

    @staticmethod
    def _count(
        summary: IngestionSummary,
        plan: ReconcilePlan,
        written: list[PricingRecordResponse],
        mode: IngestMode
    ) -> None:
        if mode == IngestMode.OVERWRITE:
            summary.updated = sum(1 for record in written if record.key in plan.existing)
            summary.inserted = len(written) - summary.updated
        else:
            summary.inserted = len(written)

        summary.uploaded = len(written)
        summary.skipped = plan.file_duplicates + len(plan.rows) - len(written)
        summary.message = (
            f"Uploaded {summary.uploaded} records "
            f"({summary.inserted} new, {summary.updated} updated, {summary.skipped} skipped)"
        )

    @staticmethod
    def _raise_if_cancelled(cancel_event: Optional[asyncio.Event], rows_checked: int) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise IngestionCancelledError(rows_checked)


# Singleton instance for convenience
_ingestion_service: Optional[IngestionService] = None


def get_ingestion_service() -> IngestionService:
    """Get or create IngestionService instance."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = IngestionService()
    return _ingestion_service
