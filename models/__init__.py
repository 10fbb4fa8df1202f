"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.order import (
    LineItemProperty,
    LineItem,
    OrderPayload,
    CustomizationRequest,
)
from models.fulfillment import (
    ItemStage,
    OrderStatus,
    AnnotationStatus,
    ResultLink,
    ItemResult,
    AnnotationUpdate,
    AnnotationOutcome,
    OrderReport,
    ReplayStatus,
    ReconciliationEntry,
    ReconciliationReport,
    ReplayRequest,
    WebhookAck,
)

__all__ = [
    # Base
    "BaseSchema",

    # Order
    "LineItemProperty",
    "LineItem",
    "OrderPayload",
    "CustomizationRequest",

    # Fulfillment
    "ItemStage",
    "OrderStatus",
    "AnnotationStatus",
    "ResultLink",
    "ItemResult",
    "AnnotationUpdate",
    "AnnotationOutcome",
    "OrderReport",
    "ReplayStatus",
    "ReconciliationEntry",
    "ReconciliationReport",
    "ReplayRequest",
    "WebhookAck",
]
