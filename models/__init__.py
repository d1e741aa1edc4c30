"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
    OutcomeStatus,
)
from models.auth import (
    Role,
    Capability,
    Permissions,
    UserProfile,
    CurrentUserResponse,
)
from models.pricing_record import (
    SearchStrategy,
    ChangeAction,
    PricingRecordResponse,
    PricingRecordCreate,
    PricingRecordUpdate,
    RecordFilters,
    RecordQueryResult,
    EditResult,
    RecordChangeEvent,
)
from models.ingest import (
    IngestMode,
    RowErrorReport,
    IngestionSummary,
)
from models.user import (
    UserProfileCreate,
    UserProfileResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "OutcomeStatus",

    # Auth
    "Role",
    "Capability",
    "Permissions",
    "UserProfile",
    "CurrentUserResponse",

    # Pricing records
    "SearchStrategy",
    "ChangeAction",
    "PricingRecordResponse",
    "PricingRecordCreate",
    "PricingRecordUpdate",
    "RecordFilters",
    "RecordQueryResult",
    "EditResult",
    "RecordChangeEvent",

    # Ingestion
    "IngestMode",
    "RowErrorReport",
    "IngestionSummary",

    # Users
    "UserProfileCreate",
    "UserProfileResponse",
]
