"""
Reconciliation (manual recovery) service.

Replays orders whose live webhook was missed or failed. Each listed order
is looked up by display name, skipped if it already carries the marker tag,
and otherwise run through the same fulfillment pipeline as live orders,
with the recovery heading and tag.

Orders are processed strictly one after another. A failure on one order is
recorded and the run moves on to the next.
"""

from typing import Iterable, Optional
import structlog

from config import settings
from exceptions import OrderQueryFailedError
from integrations.shopify import get_shopify_client, order_node_to_payload
from models.fulfillment import (
    ReconciliationEntry,
    ReconciliationReport,
    ReplayStatus,
)
from services.fulfillment_service import FulfillmentService, get_fulfillment_service
from services.order_annotator import RECOVERY_NOTE_HEADING

logger = structlog.get_logger(__name__)


class ReconciliationService:
    """Replays a list of order names through the fulfillment pipeline."""

    def __init__(
        self,
        order_client,
        fulfillment_service: FulfillmentService,
        line_items_limit: int = 20,
        recovery_tag: str = "manual_recovery"
    ):
        self.order_client = order_client
        self.fulfillment = fulfillment_service
        self.line_items_limit = line_items_limit
        self.recovery_tag = recovery_tag

    def replay_order(self, order_name: str) -> ReconciliationEntry:
        """
        Replay one order by display name.

        Args:
            order_name: Display name, e.g. "#1001"

        Returns:
            ReconciliationEntry (never raises for order-level failures)
        """
        order_name = order_name.strip()
        log = logger.bind(order_name=order_name)
        log.info("replaying_order")

        try:
            node = self.order_client.find_order_by_name(
                order_name, line_items_limit=self.line_items_limit
            )
            payload = order_node_to_payload(node) if node is not None else None
        except OrderQueryFailedError as e:
            log.error("replay_order_query_failed", error=e.message, transport=e.transport)
            return ReconciliationEntry(
                order_name=order_name,
                status=ReplayStatus.QUERY_FAILED,
                error_message=e.message,
            )

        if payload is None:
            log.warning("replay_order_not_found")
            return ReconciliationEntry(order_name=order_name, status=ReplayStatus.NOT_FOUND)

        if payload.has_tag(self.fulfillment.marker_tag):
            log.info("replay_order_skipped", reason="already_annotated")
            return ReconciliationEntry(order_name=order_name, status=ReplayStatus.SKIPPED)

        # Tags were just read from the platform, no refresh needed
        report = self.fulfillment.process_order(
            payload,
            extra_tags=[self.recovery_tag],
            note_heading=RECOVERY_NOTE_HEADING,
            check_marker=False,
        )

        return ReconciliationEntry(
            order_name=order_name,
            status=ReplayStatus.PROCESSED,
            report=report,
            error_message=report.error_message,
        )

    def replay(self, order_names: Iterable[str]) -> ReconciliationReport:
        """
        Replay every listed order, in list order.

        Blank names are ignored.
        """
        names = [name.strip() for name in order_names if name and name.strip()]
        logger.info("replay_started", orders=len(names))

        report = ReconciliationReport()
        for name in names:
            report.entries.append(self.replay_order(name))

        logger.info("replay_finished", **report.summary)
        return report


# Singleton instance
_reconciliation_service: Optional[ReconciliationService] = None


def get_reconciliation_service() -> ReconciliationService:
    """Get or create ReconciliationService instance."""
    global _reconciliation_service
    if _reconciliation_service is None:
        _reconciliation_service = ReconciliationService(
            order_client=get_shopify_client(),
            fulfillment_service=get_fulfillment_service(),
            line_items_limit=settings.line_items_limit,
            recovery_tag=settings.recovery_tag,
        )
    return _reconciliation_service
