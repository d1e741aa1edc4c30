"""
Base schemas and mixins for all models.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class TimestampMixin(BaseModel):
    """Add timestamps to response models."""
    created_at: datetime
    updated_at: Optional[datetime] = None


class OutcomeStatus(str, Enum):
    """
    Result of an engine operation.

    Engine operations report failures as data instead of raising,
    so callers can render them without an exception path.
    """
    OK = "ok"
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    DENIED = "denied"
    CONFLICT = "conflict"
    CANCELLED = "cancelled"
    ERROR = "error"
