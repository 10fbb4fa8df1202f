"""
Fulfillment result models.

Per-item and per-order outcomes of the customization pipeline. Failures are
carried as data (stage + error code) so operators and tests can inspect
partial results without reading logs.
"""

from typing import Optional
from enum import Enum
from pydantic import ConfigDict, Field

from models.base import BaseSchema


class ItemStage(str, Enum):
    """Pipeline stages of a single customization."""

    RESOLVE = "resolve"
    FETCH = "fetch"
    EXTRACT = "extract"
    COMPOSE = "compose"
    REPACK = "repack"
    STORE = "store"


class OrderStatus(str, Enum):
    """Terminal state of one order run."""

    NO_CUSTOM_ITEMS = "no_custom_items"
    ALREADY_ANNOTATED = "already_annotated"
    QUERY_FAILED = "query_failed"                # Could not read current order state
    NO_LINKS = "no_links"                        # Every item failed, order untouched
    ANNOTATED = "annotated"
    PARTIALLY_ANNOTATED = "partially_annotated"  # Tags or note rejected
    ANNOTATION_FAILED = "annotation_failed"


class AnnotationStatus(str, Enum):
    """Result of the combined tag + note mutation."""

    APPLIED = "applied"
    TAGS_FAILED = "tags_failed"
    NOTE_FAILED = "note_failed"
    FAILED = "failed"


class ResultLink(BaseSchema):
    """Pointer to one stored design artifact."""

    order_name: str
    item_index: int = Field(..., ge=1)
    total_custom_items: int = Field(..., ge=1)
    artifact_url: str


class ItemResult(BaseSchema):
    """Outcome of one customization request."""

    line_item_id: str
    title: str
    variant_title: Optional[str] = None
    call_sign: str
    item_index: int
    success: bool
    stage: ItemStage = Field(..., description="Last stage reached (failed stage on error)")
    template_key: Optional[str] = None
    artifact_key: Optional[str] = None
    link: Optional[ResultLink] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class AnnotationUpdate(BaseSchema):
    """Combined tag + note change for one order. The note is sent verbatim."""

    model_config = ConfigDict(str_strip_whitespace=False)

    order_id: str
    tags_to_add: list[str]
    note: str


class AnnotationOutcome(BaseSchema):
    """What the order platform accepted from an AnnotationUpdate."""

    status: AnnotationStatus
    update: AnnotationUpdate
    tags_errors: list[dict] = Field(default_factory=list)
    note_errors: list[dict] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == AnnotationStatus.APPLIED


class OrderReport(BaseSchema):
    """Everything one order run produced."""

    order_name: str
    order_id: str
    status: OrderStatus
    items: list[ItemResult] = Field(default_factory=list)
    annotation: Optional[AnnotationOutcome] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def links(self) -> list[ResultLink]:
        return [item.link for item in self.items if item.link is not None]

    @property
    def failed_items(self) -> list[ItemResult]:
        return [item for item in self.items if not item.success]

    @property
    def needs_attention(self) -> bool:
        """True when an operator should look at this order."""
        return bool(self.failed_items) or self.status in (
            OrderStatus.QUERY_FAILED,
            OrderStatus.PARTIALLY_ANNOTATED,
            OrderStatus.ANNOTATION_FAILED,
        )


# ===================
# RECONCILIATION
# ===================

class ReplayStatus(str, Enum):
    """Outcome of one order name in a replay run."""

    PROCESSED = "processed"
    SKIPPED = "skipped"          # Already carries the marker tag
    NOT_FOUND = "not_found"
    QUERY_FAILED = "query_failed"


class ReconciliationEntry(BaseSchema):
    """One order name from the replay list."""

    order_name: str
    status: ReplayStatus
    report: Optional[OrderReport] = None
    error_message: Optional[str] = None


class ReconciliationReport(BaseSchema):
    """Summary of a replay run."""

    entries: list[ReconciliationEntry] = Field(default_factory=list)

    def count(self, status: ReplayStatus) -> int:
        return sum(1 for entry in self.entries if entry.status == status)

    @property
    def summary(self) -> dict:
        return {status.value: self.count(status) for status in ReplayStatus}


class ReplayRequest(BaseSchema):
    """Body of the HTTP replay endpoint."""

    order_names: list[str] = Field(..., min_length=1, max_length=500)


class WebhookAck(BaseSchema):
    """Response to a delivered webhook."""

    status: str
    order_name: Optional[str] = None
