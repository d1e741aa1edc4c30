"""
Shared test fixtures.

The mock client keeps real rows in memory and evaluates filters, so
services are tested against actual query semantics (key lookups, range
scans, ordering, the (store_id, sku) unique constraint and upserts).
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read on import
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import pytest
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Generator, Optional
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from postgrest.exceptions import APIError

from models.auth import UserProfile
from tests.factories import PricingRecordFactory

PRICING_TABLE = "pricing-records"
USERS_TABLE = "users"


# ===================
# MOCK SUPABASE CLIENT
# ===================

def _comparable(value: Any) -> Any:
    """Timestamps compare as datetimes, everything else as-is."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and "T" in value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """Chainable query builder evaluated against in-memory rows."""

    def __init__(
        self,
        client: "MockSupabaseClient",
        table: str,
        operation: str,
        payload: Any = None,
        **options
    ):
        self._client = client
        self._table = table
        self._operation = operation
        self._payload = payload
        self._options = options
        self._filters: list[Callable[[dict], bool]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._range: Optional[tuple[int, int]] = None

    # Filters

    def _where(self, column: str, predicate: Callable[[Any], bool]):
        def check(row: dict) -> bool:
            value = row.get(column)
            if value is None:
                return False
            return predicate(_comparable(value))
        self._filters.append(check)
        return self

    def eq(self, column, value):
        return self._where(column, lambda v: v == _comparable(value))

    def neq(self, column, value):
        return self._where(column, lambda v: v != _comparable(value))

    def in_(self, column, values):
        wanted = [_comparable(v) for v in values]
        return self._where(column, lambda v: v in wanted)

    def gte(self, column, value):
        return self._where(column, lambda v: v >= _comparable(value))

    def gt(self, column, value):
        return self._where(column, lambda v: v > _comparable(value))

    def lte(self, column, value):
        return self._where(column, lambda v: v <= _comparable(value))

    def lt(self, column, value):
        return self._where(column, lambda v: v < _comparable(value))

    # Shaping

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def limit(self, count):
        self._limit = count
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def _matches(self, row: dict) -> bool:
        return all(check(row) for check in self._filters)

    async def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._operation))
        if self._operation in self._client.fail_on:
            raise ConnectionError(f"simulated {self._operation} failure")

        handler = getattr(self, f"_execute_{self._operation}")
        return handler()

    def _execute_select(self) -> MockSupabaseResponse:
        rows = [deepcopy(r) for r in self._client.rows(self._table) if self._matches(r)]
        total = len(rows)

        for column, desc in reversed(self._order):
            rows.sort(key=lambda r: _comparable(r.get(column)), reverse=desc)

        if self._range is not None:
            rows = rows[self._range[0]:self._range[1] + 1]
        if self._limit is not None:
            rows = rows[:self._limit]
        if self._client.max_rows is not None:
            rows = rows[:self._client.max_rows]

        count = total if self._options.get("count") else None
        return MockSupabaseResponse(data=rows, count=count)

    def _execute_insert(self) -> MockSupabaseResponse:
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        table = self._client.rows(self._table)
        staged = list(table)
        inserted = []

        for item in payload:
            row = self._client.new_row(self._table, item)
            if self._client.find_duplicate(self._table, row, staged) is not None:
                raise self._client.unique_violation(self._table)
            staged.append(row)
            inserted.append(row)

        table.extend(inserted)
        return MockSupabaseResponse(data=deepcopy(inserted))

    def _execute_update(self) -> MockSupabaseResponse:
        table = self._client.rows(self._table)
        targets = [r for r in table if self._matches(r)]

        for row in targets:
            merged = {**row, **self._payload}
            others = [r for r in table if r is not row]
            if self._client.find_duplicate(self._table, merged, others) is not None:
                raise self._client.unique_violation(self._table)

        for row in targets:
            row.update(deepcopy(self._payload))

        return MockSupabaseResponse(data=deepcopy(targets))

    def _execute_upsert(self) -> MockSupabaseResponse:
        payload = self._payload if isinstance(self._payload, list) else [self._payload]
        conflict_columns = [c.strip() for c in self._options["on_conflict"].split(",") if c.strip()]
        ignore_duplicates = self._options.get("ignore_duplicates", False)

        keys = [tuple(item.get(c) for c in conflict_columns) for item in payload]
        if not ignore_duplicates and len(set(keys)) != len(keys):
            raise APIError({
                "code": "21000",
                "message": "ON CONFLICT DO UPDATE command cannot affect row a second time",
                "details": None,
                "hint": None,
            })

        # All-or-nothing: work on copies, swap in at the end
        staged = [deepcopy(r) for r in self._client.rows(self._table)]
        written = []

        for item, key in zip(payload, keys):
            existing = next(
                (r for r in staged if tuple(r.get(c) for c in conflict_columns) == key),
                None
            )
            if existing is not None:
                if ignore_duplicates:
                    continue
                existing.update(deepcopy(item))
                written.append(existing)
            else:
                row = self._client.new_row(self._table, item)
                staged.append(row)
                written.append(row)

        self._client.set_table_data(self._table, staged)
        return MockSupabaseResponse(data=deepcopy(written))


class MockSupabaseTable:
    """Entry point for queries on one table."""

    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, *columns, count: Optional[str] = None, **kwargs):
        return MockSupabaseQuery(self._client, self._name, "select", count=count)

    def insert(self, json, **kwargs):
        return MockSupabaseQuery(self._client, self._name, "insert", json)

    def update(self, json, **kwargs):
        return MockSupabaseQuery(self._client, self._name, "update", json)

    def upsert(
        self,
        json,
        on_conflict: str = "",
        ignore_duplicates: bool = False,
        default_to_null: bool = True,
        **kwargs
    ):
        return MockSupabaseQuery(
            self._client,
            self._name,
            "upsert",
            json,
            on_conflict=on_conflict,
            ignore_duplicates=ignore_duplicates,
            default_to_null=default_to_null,
        )


class MockSupabaseClient:
    """
    In-memory async Supabase client.

    `fail_on` holds operations ("select", "insert", "update", "upsert")
    that should raise; `calls` records every executed (table, operation).
    `max_rows` caps every select response like PostgREST's db-max-rows.
    """

    UNIQUE_KEYS = {
        PRICING_TABLE: ("store_id", "sku"),
        USERS_TABLE: ("id",),
    }

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.max_rows: Optional[int] = None

    def set_table_data(self, table_name: str, data: list, count: int = None):
        """Replace the rows of a table."""
        self._tables[table_name] = [dict(row) for row in data]

    def rows(self, table_name: str) -> list[dict]:
        return self._tables.setdefault(table_name, [])

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)

    def new_row(self, table_name: str, item: dict) -> dict:
        """Row as the store would insert it, with server defaults filled in."""
        now = _now()
        row = deepcopy(item)
        row.setdefault("id", str(uuid4()))
        row.setdefault("created_at", now)
        if table_name == PRICING_TABLE:
            row.setdefault("updated_at", now)
            row.setdefault("currency", "USD")
            row.setdefault("notes", None)
        return row

    def find_duplicate(self, table_name: str, row: dict, others: list[dict]) -> Optional[dict]:
        columns = self.UNIQUE_KEYS.get(table_name)
        if not columns:
            return None
        key = tuple(row.get(c) for c in columns)
        return next((o for o in others if tuple(o.get(c) for c in columns) == key), None)

    @staticmethod
    def unique_violation(table_name: str) -> APIError:
        return APIError({
            "code": "23505",
            "message": f'duplicate key value violates unique constraint "{table_name}_key"',
            "details": None,
            "hint": None,
        })

    def operations(self, operation: str) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[1] == operation]


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create a mock Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("pricing-records", [
                PricingRecordFactory.create(store_id="IND-0456"), ...
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase) -> Generator:
    """
    Patch the database client with mock.

    Any code awaiting get_supabase_client() gets the mock.
    """
    client_factory = AsyncMock(return_value=mock_supabase)
    with patch("config.database.get_supabase_client", client_factory):
        with patch("services.pricing_record_service.get_supabase_client", client_factory):
            with patch("services.user_service.get_supabase_client", client_factory):
                yield mock_supabase


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator:
    """Fresh service singletons per test so patched clients and feeds don't leak."""
    import services.pricing_record_service as pricing_record_service
    import services.search_service as search_service
    import services.ingestion_service as ingestion_service
    import services.record_editor_service as record_editor_service
    import services.user_service as user_service
    import services.change_feed_service as change_feed_service

    modules = [
        (pricing_record_service, "_pricing_record_service"),
        (search_service, "_search_service"),
        (ingestion_service, "_ingestion_service"),
        (record_editor_service, "_record_editor_service"),
        (user_service, "_user_service"),
        (change_feed_service, "_change_feed"),
    ]
    for module, attr in modules:
        setattr(module, attr, None)
    yield
    for module, attr in modules:
        setattr(module, attr, None)


# ===================
# CALLERS
# ===================

@pytest.fixture
def admin_user() -> UserProfile:
    return UserProfile(uid="admin-uid", email="admin@example.com", role="admin")


@pytest.fixture
def manager_user() -> UserProfile:
    return UserProfile(uid="manager-uid", email="pricing@example.com", role="pricing_manager")


@pytest.fixture
def viewer_user() -> UserProfile:
    return UserProfile(uid="viewer-uid", email="viewer@example.com", role="viewer")


@pytest.fixture
def unknown_role_user() -> UserProfile:
    return UserProfile(uid="mystery-uid", email="mystery@example.com", role="superuser")


# ===================
# SAMPLE DATA
# ===================

@pytest.fixture
def sample_records() -> list:
    """Three stores across two countries, oldest first."""
    return [
        PricingRecordFactory.create(
            id="rec-1",
            store_id="IND-0457",
            sku="ABC123",
            product_name="iPhone 15 Pro",
            price=999.99,
            updated_at="2026-02-01T10:00:00+00:00",
        ),
        PricingRecordFactory.create(
            id="rec-2",
            store_id="USA-0789",
            sku="DEF456",
            product_name='MacBook Pro 16"',
            price=2499.99,
            updated_at="2026-02-02T10:00:00+00:00",
        ),
        PricingRecordFactory.create(
            id="rec-3",
            store_id="IND-0456",
            sku="GHI789",
            product_name="iPhone 15 Pro Max",
            price=1199.99,
            updated_at="2026-02-03T10:00:00+00:00",
        ),
    ]


@pytest.fixture
def seeded_db(mock_db, sample_records) -> "MockSupabaseClient":
    """Mock database holding sample_records."""
    mock_db.set_table_data(PRICING_TABLE, sample_records)
    return mock_db


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_db):
            mock_db.set_table_data("pricing-records", [...])
            response = test_client_with_mock_db.get(
                "/api/pricing-records",
                headers={"X-User-Id": "admin-uid"}
            )
    """
    from fastapi.testclient import TestClient
    from main import app

    yield TestClient(app)
