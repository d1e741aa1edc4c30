"""
Pricing record schemas for validation and serialization.

Input schemas are deliberately lenient (plain strings / numbers): field
rules live in utils.record_validator so that ingestion and the editor
report the same messages as data instead of 422 responses.
"""

from pydantic import Field, field_validator
from typing import Optional, Union
from enum import Enum
from datetime import datetime, timezone
from decimal import Decimal

from models.base import BaseSchema, TimestampMixin, OutcomeStatus


class SearchStrategy(str, Enum):
    """Retrieval strategy picked by the query router."""
    RECENT = "recent"
    EXACT = "exact"
    PRODUCT_NAME = "product_name"
    FILTER = "filter"


class ChangeAction(str, Enum):
    """What happened to the records in a change event."""
    CREATED = "created"
    UPDATED = "updated"
    INGESTED = "ingested"


class PricingRecordResponse(BaseSchema, TimestampMixin):
    """
    Stored pricing record.

    (store_id, sku) is the natural key; `id` is the store-assigned handle.
    """

    id: str = Field(..., description="Record ID")
    store_id: str = Field(..., description="Store ID, e.g. IND-0456")
    sku: str = Field(..., description="SKU, e.g. ABC123")
    product_name: str = Field(..., description="Product name")
    price: Decimal = Field(..., description="Price")
    date: Optional[str] = Field(None, description="Price date (YYYY-MM-DD)")
    currency: str = Field("USD", description="Currency code")
    updated_by: Optional[str] = Field(None, description="UID of the last writer")
    notes: Optional[str] = Field(None, description="Free text notes")

    @property
    def key(self) -> tuple[str, str]:
        """Composite natural key."""
        return (self.store_id, self.sku)


class PricingRecordCreate(BaseSchema):
    """
    Manually create a pricing record.

    Values are checked by the record validator, not by pydantic.
    """

    store_id: str = ""
    sku: str = ""
    product_name: str = ""
    price: Optional[Union[Decimal, str]] = None
    date: Optional[str] = None
    currency: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def currency_uppercase(cls, v: Optional[str]) -> Optional[str]:
        """Currency codes are stored uppercase."""
        if not v:
            return None
        return v.upper()


class PricingRecordUpdate(BaseSchema):
    """
    Partial update of a pricing record.

    All fields optional - only provided fields are merged.
    """

    store_id: Optional[str] = None
    sku: Optional[str] = None
    product_name: Optional[str] = None
    price: Optional[Union[Decimal, str]] = None
    date: Optional[str] = None
    currency: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def currency_uppercase(cls, v: Optional[str]) -> Optional[str]:
        """Currency codes are stored uppercase."""
        if v is None:
            return v
        return v.upper()


class RecordFilters(BaseSchema):
    """Structured filters for the filter query."""

    country: Optional[str] = Field(
        None,
        pattern=r"^[A-Za-z]{2,4}$",
        description="Country code prefix of the store ID (e.g. IND)"
    )
    store_id: Optional[str] = Field(None, description="Exact store ID")
    sku: Optional[str] = Field(None, description="Exact SKU")
    min_price: Optional[Decimal] = Field(None, ge=0, description="Inclusive lower price bound")
    max_price: Optional[Decimal] = Field(None, ge=0, description="Inclusive upper price bound")

    @field_validator("country")
    @classmethod
    def country_uppercase(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.upper()


class RecordQueryResult(BaseSchema):
    """Result set from any query router operation."""

    status: OutcomeStatus = OutcomeStatus.OK
    strategy: SearchStrategy
    data: list[PricingRecordResponse] = Field(default_factory=list)
    total: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.OK


class EditResult(BaseSchema):
    """
    Outcome of a single-record read or write.

    `field_errors` maps field name to message for inline display.
    """

    status: OutcomeStatus
    record: Optional[PricingRecordResponse] = None
    field_errors: dict[str, str] = Field(default_factory=dict)
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == OutcomeStatus.OK


class RecordChangeEvent(BaseSchema):
    """Notification emitted after records are written."""

    action: ChangeAction
    record_ids: list[str] = Field(default_factory=list)
    actor: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
