"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    ConfigurationError,

    # Asset store
    AssetNotFoundError,
    StoreReadFailedError,
    StoreWriteFailedError,

    # Asset content
    AssetCorruptError,
    TemplateAssetMissingError,

    # Order platform
    OrderQueryFailedError,
    OrderMutationFailedError,

    # Ingestion
    WebhookVerificationError,
    InvalidPayloadError,
    OrderListParseError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "ConfigurationError",

    # Asset store
    "AssetNotFoundError",
    "StoreReadFailedError",
    "StoreWriteFailedError",

    # Asset content
    "AssetCorruptError",
    "TemplateAssetMissingError",

    # Order platform
    "OrderQueryFailedError",
    "OrderMutationFailedError",

    # Ingestion
    "WebhookVerificationError",
    "InvalidPayloadError",
    "OrderListParseError",
]
