"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    ValidationError,
    ConflictError,
    DuplicateError,
    PermissionDeniedError,
    ExternalServiceError,
    DatabaseError,

    # Pricing records
    PricingRecordKeyExistsError,

    # CSV ingestion
    CsvParseError,
    UploadTooLargeError,
    IngestionCancelledError,

    # Users
    UserProfileExistsError,
)

__all__ = [
    # Base
    "AppError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "PermissionDeniedError",
    "ExternalServiceError",
    "DatabaseError",

    # Pricing records
    "PricingRecordKeyExistsError",

    # CSV ingestion
    "CsvParseError",
    "UploadTooLargeError",
    "IngestionCancelledError",

    # Users
    "UserProfileExistsError",
]
