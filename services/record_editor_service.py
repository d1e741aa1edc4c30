"""
Single-record reads and edits.

Edits go through the same record validator as CSV ingestion and are
written with an updated_at guard, so a save that raced another writer
reports a conflict instead of silently overwriting it.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
import structlog

from config import settings
from models.auth import Capability, UserProfile
from models.base import OutcomeStatus
from models.pricing_record import (
    ChangeAction,
    EditResult,
    PricingRecordCreate,
    PricingRecordUpdate,
    RecordChangeEvent,
)
from utils.record_validator import normalize_date, parse_price, validate_record
from exceptions import DatabaseError, PricingRecordKeyExistsError
from services.permission_service import check_permission
from services.pricing_record_service import PricingRecordService, get_pricing_record_service
from services.change_feed_service import ChangeFeed, get_change_feed

logger = structlog.get_logger(__name__)

KEY_EXISTS_MESSAGE = "A pricing record for this Store ID and SKU already exists"
FIX_FIELDS_MESSAGE = "Please fix the highlighted fields"
CONFLICT_MESSAGE = "This record was changed by someone else. Reload it and try again."
STORE_FAILURE_MESSAGE = "Failed to save the record. Please try again."

VALIDATED_FIELDS = ("store_id", "sku", "product_name", "price", "date")


def _denied(action: str) -> EditResult:
    return EditResult(
        status=OutcomeStatus.DENIED,
        message=f"You do not have permission to {action} pricing records"
    )


def _key_taken(changed_fields: dict[str, Any]) -> EditResult:
    field = "sku" if "sku" in changed_fields or "store_id" not in changed_fields else "store_id"
    return EditResult(
        status=OutcomeStatus.INVALID,
        field_errors={field: KEY_EXISTS_MESSAGE},
        message=KEY_EXISTS_MESSAGE
    )


def _normalize(field: str, value: Any) -> Any:
    """Stored form of a validated field value."""
    if field == "price":
        return parse_price(value)
    if field == "date":
        return normalize_date(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _to_column(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


class RecordEditorService:
    """
    Load, update and create individual pricing records.

    Reads need search_records; writes need upload_csv. Outcomes are
    returned as EditResult values, never raised.
    """

    def __init__(
        self,
        records: Optional[PricingRecordService] = None,
        change_feed: Optional[ChangeFeed] = None
    ):
        self.records = records or get_pricing_record_service()
        self.change_feed = change_feed or get_change_feed()

    async def get_record(self, user: UserProfile, record_id: str) -> EditResult:
        """Load one record for viewing or editing."""
        if not check_permission(user, Capability.SEARCH_RECORDS):
            return _denied("view")

        try:
            record = await self.records.get_by_id(record_id)
        except DatabaseError as e:
            logger.error("load_pricing_record_failed", record_id=record_id, error=e.message)
            return EditResult(
                status=OutcomeStatus.ERROR,
                message="Failed to load the record. Please try again."
            )

        if record is None:
            return EditResult(
                status=OutcomeStatus.NOT_FOUND,
                message=f"Pricing record '{record_id}' not found"
            )

        return EditResult(status=OutcomeStatus.OK, record=record)

    async def update_record(
        self,
        user: UserProfile,
        record_id: str,
        fields: PricingRecordUpdate
    ) -> EditResult:
        """
        Apply a partial edit.

        Provided fields are merged over the stored record and the merged
        set is validated as a whole. Only fields whose value actually
        changed are written.
        """
        if not check_permission(user, Capability.UPLOAD_CSV):
            return _denied("edit")

        loaded = await self.get_record(user, record_id)
        if not loaded.success:
            return loaded
        existing = loaded.record

        provided = fields.model_dump(exclude_unset=True)

        merged = {name: getattr(existing, name) for name in VALIDATED_FIELDS}
        merged.update({k: v for k, v in provided.items() if k in VALIDATED_FIELDS})

        field_errors = validate_record(merged)
        if field_errors:
            logger.info(
                "pricing_record_edit_invalid",
                record_id=record_id,
                fields=sorted(field_errors)
            )
            return EditResult(
                status=OutcomeStatus.INVALID,
                record=existing,
                field_errors=field_errors,
                message=FIX_FIELDS_MESSAGE
            )

        candidate = {
            name: _normalize(name, value)
            for name, value in provided.items()
            if name in VALIDATED_FIELDS
        }
        if "currency" in provided:
            candidate["currency"] = provided["currency"] or settings.default_currency
        if "notes" in provided:
            candidate["notes"] = provided["notes"]

        changes = {
            name: value
            for name, value in candidate.items()
            if value != getattr(existing, name)
        }

        if not changes:
            return EditResult(status=OutcomeStatus.OK, record=existing, message="No changes")

        if "store_id" in changes or "sku" in changes:
            store_id = changes.get("store_id", existing.store_id)
            sku = changes.get("sku", existing.sku)
            try:
                holder = await self.records.get_by_key(store_id, sku)
            except DatabaseError as e:
                logger.error("pricing_record_key_check_failed", record_id=record_id, error=e.message)
                return EditResult(status=OutcomeStatus.ERROR, record=existing, message=STORE_FAILURE_MESSAGE)
            if holder is not None and holder.id != existing.id:
                return _key_taken(changes)

        payload = {name: _to_column(value) for name, value in changes.items()}
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        payload["updated_by"] = user.uid

        try:
            updated = await self.records.compare_and_update(
                record_id,
                existing.updated_at,
                payload
            )
        except PricingRecordKeyExistsError:
            return _key_taken(changes)
        except DatabaseError as e:
            logger.error("pricing_record_update_failed", record_id=record_id, error=e.message)
            return EditResult(status=OutcomeStatus.ERROR, record=existing, message=STORE_FAILURE_MESSAGE)

        if updated is None:
            logger.warning("pricing_record_edit_conflict", record_id=record_id, uid=user.uid)
            return EditResult(status=OutcomeStatus.CONFLICT, record=existing, message=CONFLICT_MESSAGE)

        logger.info(
            "pricing_record_updated",
            record_id=record_id,
            uid=user.uid,
            fields=sorted(changes)
        )

        await self.change_feed.publish(RecordChangeEvent(
            action=ChangeAction.UPDATED,
            record_ids=[updated.id],
            actor=user.uid
        ))

        return EditResult(status=OutcomeStatus.OK, record=updated)

    async def create_record(self, user: UserProfile, data: PricingRecordCreate) -> EditResult:
        """
        Create one record by hand.

        Uses a conditional insert on (store_id, sku); an existing key is
        reported as a field error.
        """
        if not check_permission(user, Capability.UPLOAD_CSV):
            return _denied("create")

        values = data.model_dump()
        field_errors = validate_record(values)
        if field_errors:
            return EditResult(
                status=OutcomeStatus.INVALID,
                field_errors=field_errors,
                message=FIX_FIELDS_MESSAGE
            )

        row = {name: _to_column(_normalize(name, values[name])) for name in VALIDATED_FIELDS}
        row["currency"] = data.currency or settings.default_currency
        row["notes"] = data.notes
        row["updated_by"] = user.uid
        row["updated_at"] = datetime.now(timezone.utc).isoformat()

        try:
            created = await self.records.insert_if_absent(row)
        except DatabaseError as e:
            logger.error("pricing_record_create_failed", uid=user.uid, error=e.message)
            return EditResult(status=OutcomeStatus.ERROR, message=STORE_FAILURE_MESSAGE)

        if created is None:
            return _key_taken({"sku": row["sku"]})

        logger.info(
            "pricing_record_created",
            record_id=created.id,
            store_id=created.store_id,
            sku=created.sku,
            uid=user.uid
        )

        await self.change_feed.publish(RecordChangeEvent(
            action=ChangeAction.CREATED,
            record_ids=[created.id],
            actor=user.uid
        ))

        return EditResult(status=OutcomeStatus.OK, record=created)


# Singleton instance for convenience
_record_editor_service: Optional[RecordEditorService] = None


def get_record_editor_service() -> RecordEditorService:
    """Get or create RecordEditorService instance."""
    global _record_editor_service
    if _record_editor_service is None:
        _record_editor_service = RecordEditorService()
    return _record_editor_service
