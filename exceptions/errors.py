"""
Custom exception classes for the application.

Every error the API can surface inherits from AppError and renders
to the same {"error": {...}} envelope.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PRICING_RECORD_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class PermissionDeniedError(AppError):
    """Caller's role lacks the capability (403)."""

    def __init__(self, capability: str, role: Optional[str] = None):
        super().__init__(
            code="PERMISSION_DENIED",
            message=f"Missing permission: {capability}",
            status_code=403,
            details={"capability": capability, "role": role}
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# PRICING RECORD ERRORS
# ===================

class PricingRecordKeyExistsError(ConflictError):
    """Another record already holds this (store_id, sku) pair."""

    def __init__(self, store_id: str, sku: str):
        super().__init__(
            code="PRICING_RECORD_KEY_EXISTS",
            message="A pricing record for this Store ID and SKU already exists",
            details={"store_id": store_id, "sku": sku}
        )


# ===================
# CSV INGESTION ERRORS
# ===================

class CsvParseError(ValidationError):
    """CSV file could not be read as a pricing feed."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="CSV_PARSE_ERROR",
            message=message,
            details=details
        )


class UploadTooLargeError(AppError):
    """Uploaded file exceeds the configured size limit (413)."""

    def __init__(self, size: int, limit: int):
        super().__init__(
            code="UPLOAD_TOO_LARGE",
            message=f"Upload is {size} bytes; the limit is {limit} bytes",
            status_code=413,
            details={"size": size, "limit": limit}
        )


class IngestionCancelledError(ConflictError):
    """Ingestion was cancelled before commit."""

    def __init__(self, rows_checked: int = 0):
        super().__init__(
            code="INGESTION_CANCELLED",
            message="Ingestion cancelled before commit; nothing was written",
            details={"rows_checked": rows_checked}
        )


# ===================
# USER ERRORS
# ===================

class UserProfileExistsError(DuplicateError):
    """User profile already exists for this uid."""

    def __init__(self, uid: str):
        super().__init__(
            resource="User",
            field="uid",
            value=uid
        )
