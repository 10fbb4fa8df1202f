"""
Custom exception classes for the application.

Every failure the fulfillment pipeline can report is an AppError with a
stable error code, so per-item results and API responses stay machine-readable.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "ASSET_NOT_FOUND")
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
        self.timestamp = datetime.utcnow().isoformat()
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


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


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


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        code: Optional[str] = None,
        status_code: int = 503
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=status_code,
            details={"service": service, **(details or {})}
        )


class ConfigurationError(AppError):
    """Invalid or missing configuration (500)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="CONFIGURATION_ERROR",
            message=message,
            status_code=500,
            details=details
        )


# ===================
# ASSET STORE ERRORS
# ===================

class AssetNotFoundError(NotFoundError):
    """
    Key absent from its bucket.

    Not retryable: a missing template means an asset was never uploaded.
    """

    def __init__(self, bucket: str, key: str):
        super().__init__(
            resource="Asset",
            identifier=key,
            code="ASSET_NOT_FOUND"
        )
        self.details["bucket"] = bucket


class StoreReadFailedError(ExternalServiceError):
    """Reading from the object store failed for a reason other than a missing key."""

    def __init__(self, bucket: str, key: str, reason: str):
        super().__init__(
            service="storage",
            code="STORE_READ_FAILED",
            message=f"Failed to read {key} from {bucket}",
            details={"bucket": bucket, "key": key, "reason": reason}
        )


class StoreWriteFailedError(ExternalServiceError):
    """Writing to the object store failed. Safe to retry: writes are upserts."""

    def __init__(self, bucket: str, key: str, reason: str):
        super().__init__(
            service="storage",
            code="STORE_WRITE_FAILED",
            message=f"Failed to write {key} to {bucket}",
            details={"bucket": bucket, "key": key, "reason": reason, "retryable": True}
        )


# ===================
# ASSET CONTENT ERRORS
# ===================

class AssetCorruptError(ValidationError):
    """Raster or archive could not be decoded."""

    def __init__(self, asset: str, reason: str):
        super().__init__(
            code="ASSET_CORRUPT",
            message=f"Could not decode {asset}",
            details={"asset": asset, "reason": reason}
        )


class TemplateAssetMissingError(ValidationError):
    """Template bundle has no entry matching the templatable pattern."""

    def __init__(self, pattern: str, entries: list[str]):
        super().__init__(
            code="TEMPLATE_ASSET_MISSING",
            message=f"No entry matching {pattern} in template bundle",
            details={"pattern": pattern, "entries": entries[:20]}
        )


# ===================
# ORDER PLATFORM ERRORS
# ===================

class OrderQueryFailedError(ExternalServiceError):
    """Order lookup on the shop platform failed."""

    def __init__(
        self,
        message: str,
        user_errors: Optional[list] = None,
        transport: bool = False
    ):
        super().__init__(
            service="shopify",
            code="ORDER_QUERY_FAILED",
            message=message,
            status_code=502,
            details={"user_errors": user_errors or [], "transport": transport}
        )
        self.user_errors = user_errors or []
        self.transport = transport


class OrderMutationFailedError(ExternalServiceError):
    """Order update on the shop platform failed."""

    def __init__(
        self,
        message: str,
        tags_errors: Optional[list] = None,
        note_errors: Optional[list] = None,
        transport: bool = False
    ):
        super().__init__(
            service="shopify",
            code="ORDER_MUTATION_FAILED",
            message=message,
            status_code=502,
            details={
                "tags_errors": tags_errors or [],
                "note_errors": note_errors or [],
                "transport": transport
            }
        )
        self.tags_errors = tags_errors or []
        self.note_errors = note_errors or []
        self.transport = transport


# ===================
# INGESTION ERRORS
# ===================

class WebhookVerificationError(AppError):
    """Webhook signature missing or invalid (401)."""

    def __init__(self, reason: str):
        super().__init__(
            code="WEBHOOK_SIGNATURE_INVALID",
            message="Webhook signature verification failed",
            status_code=401,
            details={"reason": reason}
        )


class InvalidPayloadError(AppError):
    """Webhook body could not be consumed (400)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_PAYLOAD",
            message=message,
            status_code=400,
            details=details
        )


class OrderListParseError(ValidationError):
    """Replay order list could not be read."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="ORDER_LIST_PARSE_ERROR",
            message=message,
            details=details
        )
