"""
Query routing for pricing records.

Classifies a search input and dispatches the matching retrieval
strategy. Store failures come back as an empty result with an error
message; nothing is raised to the caller.
"""

import asyncio
import re
from typing import AsyncIterator, Iterable, Optional
import structlog

from config import settings
from models.auth import Capability, UserProfile
from models.base import OutcomeStatus
from models.pricing_record import (
    PricingRecordResponse,
    RecordFilters,
    RecordQueryResult,
    SearchStrategy,
)
from exceptions import DatabaseError
from services.permission_service import check_permission
from services.pricing_record_service import PricingRecordService, get_pricing_record_service
from services.change_feed_service import ChangeFeed, get_change_feed

logger = structlog.get_logger(__name__)

# Code-like input: store IDs and SKUs
CODE_PATTERN = re.compile(r"[A-Z0-9]{3,}")


def classify_search_term(term: Optional[str]) -> SearchStrategy:
    """
    Pick the retrieval strategy for a search input.

    Matching is case-sensitive: "ABC123" and "IND-0456" are codes,
    "iphone" is free text.
    """
    text = (term or "").strip()
    if not text:
        return SearchStrategy.RECENT
    if "-" in text or CODE_PATTERN.fullmatch(text):
        return SearchStrategy.EXACT
    return SearchStrategy.PRODUCT_NAME


def merge_unique(*record_lists: Iterable[PricingRecordResponse]) -> list[PricingRecordResponse]:
    """Concatenate result lists, dropping repeated IDs (first one wins)."""
    seen: set[str] = set()
    merged = []
    for records in record_lists:
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            merged.append(record)
    return merged


def _result(strategy: SearchStrategy, records: list[PricingRecordResponse]) -> RecordQueryResult:
    return RecordQueryResult(strategy=strategy, data=records, total=len(records))


def _denied(strategy: SearchStrategy) -> RecordQueryResult:
    return RecordQueryResult(
        status=OutcomeStatus.DENIED,
        strategy=strategy,
        error="You do not have permission to search pricing records"
    )


def _failed(strategy: SearchStrategy, error: Exception) -> RecordQueryResult:
    logger.error(
        "pricing_record_query_failed",
        strategy=strategy.value,
        error=str(error)
    )
    return RecordQueryResult(
        status=OutcomeStatus.ERROR,
        strategy=strategy,
        error="Failed to load pricing records. Please try again."
    )


def _fingerprint(result: RecordQueryResult) -> tuple:
    return (
        result.status,
        tuple((record.id, record.updated_at) for record in result.data),
    )


class SearchService:
    """
    Read side of the pricing record engine.

    Every operation is gated on the search_records capability.
    """

    def __init__(
        self,
        records: Optional[PricingRecordService] = None,
        change_feed: Optional[ChangeFeed] = None
    ):
        self.records = records or get_pricing_record_service()
        self.change_feed = change_feed or get_change_feed()

    async def fetch_recent(
        self,
        user: UserProfile,
        page_size: Optional[int] = None
    ) -> RecordQueryResult:
        """Most recently updated records, newest first."""
        strategy = SearchStrategy.RECENT
        if not check_permission(user, Capability.SEARCH_RECORDS):
            return _denied(strategy)

        limit = page_size or settings.recent_page_size

        try:
            records = await self.records.list_recent(limit)
        except DatabaseError as e:
            return _failed(strategy, e)

        return _result(strategy, records)

    async def search(self, user: UserProfile, term: Optional[str]) -> RecordQueryResult:
        """
        Search by code or by product name.

        Code-like terms probe store_id and sku concurrently; the merged
        result lists store ID hits first. Blank input lists recent records.
        """
        strategy = classify_search_term(term)
        logger.info("searching_pricing_records", term=term, strategy=strategy.value)

        if strategy == SearchStrategy.RECENT:
            return await self.fetch_recent(user)
        if strategy == SearchStrategy.PRODUCT_NAME:
            return await self.search_by_product_name(user, term)

        if not check_permission(user, Capability.SEARCH_RECORDS):
            return _denied(strategy)

        code = term.strip()
        limit = settings.exact_match_limit

        by_store, by_sku = await asyncio.gather(
            self.records.find_by_field("store_id", code, limit),
            self.records.find_by_field("sku", code, limit),
            return_exceptions=True,
        )

        for outcome in (by_store, by_sku):
            if isinstance(outcome, DatabaseError):
                return _failed(strategy, outcome)
            if isinstance(outcome, BaseException):
                raise outcome

        return _result(strategy, merge_unique(by_store, by_sku))

    async def search_by_product_name(
        self,
        user: UserProfile,
        text: Optional[str]
    ) -> RecordQueryResult:
        """
        Case-insensitive substring match on product name.

        Only the most recent candidates are scanned; older records are
        not reachable through this path.
        """
        strategy = SearchStrategy.PRODUCT_NAME
        if not check_permission(user, Capability.SEARCH_RECORDS):
            return _denied(strategy)

        needle = (text or "").strip().casefold()

        try:
            candidates = await self.records.list_recent(settings.product_name_candidate_limit)
        except DatabaseError as e:
            return _failed(strategy, e)

        matches = [r for r in candidates if needle in r.product_name.casefold()]

        logger.debug(
            "product_name_search_complete",
            candidates=len(candidates),
            matches=len(matches)
        )
        return _result(strategy, matches)

    async def filter(self, user: UserProfile, filters: RecordFilters) -> RecordQueryResult:
        """Structured filter by country prefix, store, SKU and price range."""
        strategy = SearchStrategy.FILTER
        if not check_permission(user, Capability.SEARCH_RECORDS):
            return _denied(strategy)

        try:
            records = await self.records.filter_records(filters, settings.filter_result_limit)
        except DatabaseError as e:
            return _failed(strategy, e)

        return _result(strategy, records)

    async def watch_recent(
        self,
        user: UserProfile,
        page_size: Optional[int] = None,
        interval_seconds: Optional[float] = None,
        max_polls: Optional[int] = None
    ) -> AsyncIterator[RecordQueryResult]:
        """
        Stream snapshots of the recent list.

        Yields the current snapshot, then a new one each time the list
        changes. Wakes on a change event or after the poll interval, and
        stops after max_polls polls. Call again to keep watching.
        """
        interval = interval_seconds if interval_seconds is not None else settings.watch_poll_seconds
        polls = max_polls if max_polls is not None else settings.watch_max_polls

        snapshot = await self.fetch_recent(user, page_size)
        yield snapshot
        if snapshot.status == OutcomeStatus.DENIED:
            return

        changed = asyncio.Event()
        unsubscribe = self.change_feed.subscribe(lambda event: changed.set())
        last = _fingerprint(snapshot)

        try:
            for _ in range(polls):
                try:
                    await asyncio.wait_for(changed.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
                changed.clear()

                snapshot = await self.fetch_recent(user, page_size)
                fingerprint = _fingerprint(snapshot)
                if fingerprint != last:
                    last = fingerprint
                    yield snapshot
        finally:
            unsubscribe()


# Singleton instance for convenience
_search_service: Optional[SearchService] = None


def get_search_service() -> SearchService:
    """Get or create SearchService instance."""
    global _search_service
    if _search_service is None:
        _search_service = SearchService()
    return _search_service
