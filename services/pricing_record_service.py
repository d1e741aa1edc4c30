"""
Pricing record store access.

Thin async layer over the Supabase table: key lookups, range scans and
batched writes. Every failure surfaces as DatabaseError so the engine
services can turn it into an outcome value.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional
import structlog

from postgrest.exceptions import APIError
from supabase import AsyncClient

from config import settings, get_supabase_client
from models.pricing_record import PricingRecordResponse, RecordFilters
from exceptions import DatabaseError, PricingRecordKeyExistsError

logger = structlog.get_logger(__name__)

# Natural key, backed by a unique constraint on the table
PRICING_RECORD_KEY = "store_id,sku"

# Highest sortable character; closes a prefix range scan
PREFIX_SENTINEL = "\uf8ff"

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"

EXACT_MATCH_FIELDS = ("store_id", "sku")

# Rows requested per page when looking up key batches
KEY_LOOKUP_PAGE_SIZE = 1000


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def country_prefix_range(country: str) -> tuple[str, str]:
    """
    Store ID bounds for one country.

    "ind" -> ("IND-", "IND-\\uf8ff"); scan with lower <= store_id < upper.
    """
    prefix = f"{country.strip().upper()}-"
    return prefix, prefix + PREFIX_SENTINEL


class PricingRecordService:
    """
    Document store access for pricing records.

    Pass `db` to use a specific client; otherwise the shared client
    from config is used on every call.
    """

    def __init__(self, db: Optional[AsyncClient] = None):
        self._db = db
        self.table = settings.pricing_records_table

    async def _table(self):
        client = self._db if self._db is not None else await get_supabase_client()
        return client.table(self.table)

    # ===================
    # READ OPERATIONS
    # ===================

    async def get_by_id(self, record_id: str) -> Optional[PricingRecordResponse]:
        """
        Get a single record by ID.

        Returns:
            PricingRecordResponse or None if not found
        """
        logger.debug("getting_pricing_record", record_id=record_id)

        try:
            table = await self._table()
            result = await (
                table.select("*")
                .eq("id", record_id)
                .limit(1)
                .execute()
            )

            if not result.data:
                return None

            return PricingRecordResponse(**result.data[0])

        except Exception as e:
            logger.error(
                "get_pricing_record_failed",
                record_id=record_id,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    async def get_by_key(self, store_id: str, sku: str) -> Optional[PricingRecordResponse]:
        """Get the record for one (store_id, sku) pair, if any."""
        logger.debug("getting_pricing_record_by_key", store_id=store_id, sku=sku)

        try:
            table = await self._table()
            result = await (
                table.select("*")
                .eq("store_id", store_id)
                .eq("sku", sku)
                .limit(1)
                .execute()
            )

            if not result.data:
                return None

            return PricingRecordResponse(**result.data[0])

        except Exception as e:
            logger.error(
                "get_pricing_record_by_key_failed",
                store_id=store_id,
                sku=sku,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    async def get_by_keys(
        self,
        keys: Iterable[tuple[str, str]]
    ) -> dict[tuple[str, str], PricingRecordResponse]:
        """
        Look up many (store_id, sku) pairs, usually in one query.

        Filters on both columns with IN and keeps exact pairs only. Pages
        by id until the exact count is read, so a server-side row cap
        cannot hide existing keys.

        Returns:
            Dict of key -> existing record (missing keys are absent)
        """
        wanted = set(keys)
        if not wanted:
            return {}

        store_ids = sorted({store_id for store_id, _ in wanted})
        skus = sorted({sku for _, sku in wanted})

        logger.debug("getting_pricing_records_by_keys", count=len(wanted))

        try:
            table = await self._table()
            found = {}
            offset = 0

            while True:
                result = await (
                    table.select("*", count="exact")
                    .in_("store_id", store_ids)
                    .in_("sku", skus)
                    .order("id")
                    .range(offset, offset + KEY_LOOKUP_PAGE_SIZE - 1)
                    .execute()
                )

                for row in result.data:
                    record = PricingRecordResponse(**row)
                    if record.key in wanted:
                        found[record.key] = record

                offset += len(result.data)
                if not result.data or offset >= (result.count or 0):
                    break

            return found

        except Exception as e:
            logger.error(
                "get_pricing_records_by_keys_failed",
                count=len(wanted),
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    async def list_recent(self, limit: int) -> list[PricingRecordResponse]:
        """Most recently updated records, newest first."""
        logger.debug("listing_recent_pricing_records", limit=limit)

        try:
            table = await self._table()
            result = await (
                table.select("*")
                .order("updated_at", desc=True)
                .limit(limit)
                .execute()
            )
            return [PricingRecordResponse(**row) for row in result.data]

        except Exception as e:
            logger.error("list_recent_pricing_records_failed", error=str(e))
            raise DatabaseError("select", str(e))

    async def find_by_field(
        self,
        field: str,
        value: str,
        limit: int
    ) -> list[PricingRecordResponse]:
        """
        Exact-match probe on store_id or sku.

        Raises:
            ValueError: If field is not an exact-match field
        """
        if field not in EXACT_MATCH_FIELDS:
            raise ValueError(f"Unsupported exact-match field: {field}")

        logger.debug("finding_pricing_records", field=field, value=value)

        try:
            table = await self._table()
            result = await (
                table.select("*")
                .eq(field, value)
                .limit(limit)
                .execute()
            )
            return [PricingRecordResponse(**row) for row in result.data]

        except Exception as e:
            logger.error(
                "find_pricing_records_failed",
                field=field,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    async def filter_records(
        self,
        filters: RecordFilters,
        limit: int
    ) -> list[PricingRecordResponse]:
        """
        Compose filter predicates into one query.

        A country filter is a prefix range scan on store_id and orders by
        store_id; otherwise results are newest first.
        """
        logger.debug(
            "filtering_pricing_records",
            **filters.model_dump(exclude_none=True, mode="json")
        )

        try:
            table = await self._table()
            query = table.select("*")

            if filters.country:
                lower, upper = country_prefix_range(filters.country)
                query = query.gte("store_id", lower).lt("store_id", upper)
            if filters.store_id:
                query = query.eq("store_id", filters.store_id)
            if filters.sku:
                query = query.eq("sku", filters.sku)
            if filters.min_price is not None:
                query = query.gte("price", float(filters.min_price))
            if filters.max_price is not None:
                query = query.lte("price", float(filters.max_price))

            if filters.country:
                query = query.order("store_id")
            else:
                query = query.order("updated_at", desc=True)

            result = await query.limit(limit).execute()
            return [PricingRecordResponse(**row) for row in result.data]

        except Exception as e:
            logger.error("filter_pricing_records_failed", error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    async def upsert_batch(
        self,
        rows: list[dict[str, Any]],
        overwrite: bool
    ) -> list[PricingRecordResponse]:
        """
        Write many records in one atomic request keyed by (store_id, sku).

        overwrite=False inserts absent keys and leaves existing ones alone
        (ON CONFLICT DO NOTHING). overwrite=True inserts or updates
        (ON CONFLICT DO UPDATE), keeping the existing id. Rows omit id and
        created_at so the store assigns them on insert.

        Returns:
            Records actually inserted or updated
        """
        if not rows:
            return []

        logger.info(
            "upserting_pricing_records",
            count=len(rows),
            overwrite=overwrite
        )

        try:
            table = await self._table()
            result = await (
                table.upsert(
                    rows,
                    on_conflict=PRICING_RECORD_KEY,
                    ignore_duplicates=not overwrite,
                    default_to_null=False,
                )
                .execute()
            )

            records = [PricingRecordResponse(**row) for row in result.data]

            logger.info(
                "pricing_records_upserted",
                requested=len(rows),
                written=len(records)
            )
            return records

        except Exception as e:
            logger.error(
                "upsert_pricing_records_failed",
                count=len(rows),
                error=str(e)
            )
            raise DatabaseError("upsert", str(e))

    async def insert_if_absent(self, row: dict[str, Any]) -> Optional[PricingRecordResponse]:
        """
        Conditional insert keyed by (store_id, sku).

        Returns:
            The new record, or None if the key already exists
        """
        created = await self.upsert_batch([row], overwrite=False)
        return created[0] if created else None

    async def compare_and_update(
        self,
        record_id: str,
        expected_updated_at: Optional[datetime],
        changes: dict[str, Any]
    ) -> Optional[PricingRecordResponse]:
        """
        Update a record only if it has not changed since it was read.

        Args:
            record_id: Record ID
            expected_updated_at: updated_at seen when the record was loaded
            changes: Columns to set

        Returns:
            Updated record, or None if the guard failed (concurrent write
            or the record is gone)

        Raises:
            PricingRecordKeyExistsError: If the change collides with
                another record's (store_id, sku)
            DatabaseError: On any other store failure
        """
        logger.info(
            "updating_pricing_record",
            record_id=record_id,
            fields=sorted(changes.keys())
        )

        try:
            table = await self._table()
            query = table.update(changes).eq("id", record_id)
            if expected_updated_at is not None:
                query = query.eq("updated_at", expected_updated_at.isoformat())
            result = await query.execute()

        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise PricingRecordKeyExistsError(
                    changes.get("store_id", ""),
                    changes.get("sku", "")
                ) from e
            logger.error(
                "update_pricing_record_failed",
                record_id=record_id,
                error=e.message or str(e)
            )
            raise DatabaseError("update", e.message or str(e))
        except Exception as e:
            logger.error(
                "update_pricing_record_failed",
                record_id=record_id,
                error=str(e)
            )
            raise DatabaseError("update", str(e))

        if not result.data:
            logger.warning("pricing_record_update_guard_failed", record_id=record_id)
            return None

        return PricingRecordResponse(**result.data[0])


# Singleton instance for convenience
_pricing_record_service: Optional[PricingRecordService] = None


def get_pricing_record_service() -> PricingRecordService:
    """Get or create PricingRecordService instance."""
    global _pricing_record_service
    if _pricing_record_service is None:
        _pricing_record_service = PricingRecordService()
    return _pricing_record_service
