"""
Fulfillment orchestrator.

Turns one order payload into stored design archives and an order
annotation. Shared by the live webhook and the replay (manual recovery)
path so both follow the same idempotency and failure-isolation rules.

Per order:
    Received → AlreadyAnnotated → Done
    Received → NoCustomItems → Done
    Received → per item (Resolve → Fetch → Extract → Compose → Repack → Store)
             → Annotating → Done

A failing item contributes no link and never aborts its siblings. An
order with no links is left untouched.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional
import time
import structlog

from config import settings
from exceptions import AppError, OrderMutationFailedError, OrderQueryFailedError
from integrations.shopify import get_shopify_client
from integrations.telegram import send_order_alert
from models.order import CustomizationRequest, OrderPayload
from models.fulfillment import (
    AnnotationStatus,
    ItemResult,
    ItemStage,
    OrderReport,
    OrderStatus,
    ResultLink,
)
from services.archive_repackager import ArchiveRepackager, build_archive_repackager
from services.asset_store import AssetStore, BucketClass, get_asset_store
from services.order_annotator import (
    LIVE_NOTE_HEADING,
    OrderAnnotator,
    build_order_annotator,
    classification_tag,
)
from services.overlay_compositor import OverlayCompositor, build_overlay_compositor
from services.template_resolver import TemplateResolver, build_template_resolver
from utils.text_utils import order_name_slug

logger = structlog.get_logger(__name__)

DESIGN_KEY_PREFIX = "designs"
DESIGN_CONTENT_TYPE = "application/zip"


class FulfillmentService:
    """
    Drives the customization pipeline for one order at a time.

    All collaborators are injected; nothing here reaches for process-wide
    clients, so tests can run the whole pipeline against fakes.
    """

    def __init__(
        self,
        resolver: TemplateResolver,
        asset_store: AssetStore,
        compositor: OverlayCompositor,
        repackager: ArchiveRepackager,
        annotator: OrderAnnotator,
        order_client=None,
        call_sign_property: str = "call_sign",
        marker_tag: str = "has_custom_design",
        max_parallel_items: int = 1,
        live_idempotency_guard: bool = True,
        clock: Callable[[], float] = time.time,
        alert: Optional[Callable[[OrderReport], bool]] = None
    ):
        self.resolver = resolver
        self.asset_store = asset_store
        self.compositor = compositor
        self.repackager = repackager
        self.annotator = annotator
        self.order_client = order_client
        self.call_sign_property = call_sign_property
        self.marker_tag = marker_tag
        self.max_parallel_items = max(1, max_parallel_items)
        self.live_idempotency_guard = live_idempotency_guard
        self.clock = clock
        self.alert = alert

    # ===================
    # EXTRACTION
    # ===================

    def extract_customizations(self, payload: OrderPayload) -> list[CustomizationRequest]:
        """
        Collect customizable line items in order.

        A line item is customizable when its call sign property has a
        non-blank value. Indexes are 1-based over customizable items only.
        """
        found = []
        for line_item in payload.line_items:
            value = line_item.property_value(self.call_sign_property)
            if value and value.strip():
                found.append((line_item, value.strip()))

        total = len(found)
        return [
            CustomizationRequest(
                line_item=line_item,
                call_sign=call_sign,
                item_index=index,
                total_custom_items=total,
            )
            for index, (line_item, call_sign) in enumerate(found, start=1)
        ]

    def artifact_key(self, order_name: str, line_item_id) -> str:
        """Store key of a design archive; the timestamp keeps retries from colliding."""
        millis = int(self.clock() * 1000)
        return f"{DESIGN_KEY_PREFIX}/{order_name_slug(order_name)}-{line_item_id}-{millis}.zip"

    # ===================
    # PER ITEM
    # ===================

    def process_item(self, payload: OrderPayload, request: CustomizationRequest) -> ItemResult:
        """
        Run one customization through the pipeline.

        Never raises: any failure is returned as an unsuccessful ItemResult
        naming the stage that failed.
        """
        line_item = request.line_item
        stage = ItemStage.RESOLVE
        template_key: Optional[str] = None
        artifact_key: Optional[str] = None

        log = logger.bind(
            order_name=payload.name,
            line_item_id=str(line_item.id),
            item_index=request.item_index
        )
        log.info("processing_customization", title=line_item.title, call_sign=request.call_sign)

        base = dict(
            line_item_id=str(line_item.id),
            title=line_item.title,
            variant_title=line_item.variant_title,
            call_sign=request.call_sign,
            item_index=request.item_index,
        )

        try:
            template_key = self.resolver.resolve(line_item.title, line_item.variant_title)

            stage = ItemStage.FETCH
            bundle = self.asset_store.fetch(BucketClass.TEMPLATES, template_key)

            stage = ItemStage.EXTRACT
            template_raster = self.repackager.extract_template(bundle)

            stage = ItemStage.COMPOSE
            finished_raster = self.compositor.compose(template_raster, request.call_sign)

            stage = ItemStage.REPACK
            archive = self.repackager.repack(bundle, finished_raster)

            stage = ItemStage.STORE
            artifact_key = self.artifact_key(payload.name, line_item.id)
            url = self.asset_store.put(
                BucketClass.DESIGNS, artifact_key, archive, DESIGN_CONTENT_TYPE
            )

        except AppError as e:
            log.error(
                "customization_failed",
                stage=stage.value,
                template_key=template_key,
                error_code=e.code,
                error=e.message,
                details=e.details
            )
            return ItemResult(
                **base,
                success=False,
                stage=stage,
                template_key=template_key,
                artifact_key=artifact_key,
                error_code=e.code,
                error_message=e.message,
            )

        except Exception as e:
            log.error(
                "customization_failed_unexpectedly",
                stage=stage.value,
                template_key=template_key,
                error=str(e),
                error_type=type(e).__name__
            )
            return ItemResult(
                **base,
                success=False,
                stage=stage,
                template_key=template_key,
                artifact_key=artifact_key,
                error_code="UNEXPECTED_ERROR",
                error_message=f"{type(e).__name__}: {e}",
            )

        log.info("customization_stored", template_key=template_key, artifact_key=artifact_key)
        return ItemResult(
            **base,
            success=True,
            stage=stage,
            template_key=template_key,
            artifact_key=artifact_key,
            link=ResultLink(
                order_name=payload.name,
                item_index=request.item_index,
                total_custom_items=request.total_custom_items,
                artifact_url=url,
            ),
        )

    def process_items(
        self,
        payload: OrderPayload,
        requests: list[CustomizationRequest]
    ) -> list[ItemResult]:
        """
        Process customizations, returning results in line item order.

        Sequential unless max_parallel_items > 1; the pool's map keeps
        results in submission order, not completion order.
        """
        if self.max_parallel_items == 1 or len(requests) < 2:
            return [self.process_item(payload, request) for request in requests]

        workers = min(self.max_parallel_items, len(requests))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda request: self.process_item(payload, request), requests))

    # ===================
    # PER ORDER
    # ===================

    def is_already_annotated(self, payload: OrderPayload, refresh_tags: bool = False) -> bool:
        """
        Check the marker tag.

        With refresh_tags the order's current tags are read from the
        platform, since a redelivered webhook still carries the tags the
        order had when it was created.

        Raises:
            OrderQueryFailedError: If the tag refresh fails
        """
        if payload.has_tag(self.marker_tag):
            return True
        if refresh_tags and self.order_client is not None:
            current = self.order_client.get_order_tags(payload.admin_graphql_api_id)
            return self.marker_tag in current
        return False

    def process_order(
        self,
        payload: OrderPayload,
        extra_tags: Iterable[str] = (),
        note_heading: str = LIVE_NOTE_HEADING,
        check_marker: bool = True,
        refresh_tags: bool = False
    ) -> OrderReport:
        """
        Fulfill every customizable line item of one order.

        Args:
            payload: Order in webhook contract shape
            extra_tags: Additional tags for the annotation
            note_heading: Heading of the appended note block
            check_marker: Skip orders that already carry the marker tag
            refresh_tags: Re-read current tags before the marker check

        Returns:
            OrderReport describing every item and the annotation
        """
        log = logger.bind(order_name=payload.name, order_id=payload.admin_graphql_api_id)
        log.info("order_received", line_items=len(payload.line_items))

        report = OrderReport(
            order_name=payload.name,
            order_id=payload.admin_graphql_api_id,
            status=OrderStatus.NO_CUSTOM_ITEMS,
        )

        if check_marker:
            try:
                if self.is_already_annotated(payload, refresh_tags=refresh_tags):
                    log.info("order_already_annotated", marker_tag=self.marker_tag)
                    report.status = OrderStatus.ALREADY_ANNOTATED
                    return report
            except OrderQueryFailedError as e:
                log.error("order_tags_refresh_failed", error=e.message)
                report.status = OrderStatus.QUERY_FAILED
                report.error_code = e.code
                report.error_message = e.message
                return self._finish(report)

        requests = self.extract_customizations(payload)
        if not requests:
            log.info("no_custom_items")
            return report

        report.items = self.process_items(payload, requests)
        links = report.links

        if not links:
            log.warning("no_design_links_produced", custom_items=len(requests))
            report.status = OrderStatus.NO_LINKS
            return self._finish(report)

        derived_tags = [
            classification_tag(item.variant_title, item.call_sign)
            for item in report.items if item.success
        ]

        try:
            outcome = self.annotator.annotate(
                order_id=payload.admin_graphql_api_id,
                current_note=payload.note,
                current_tags=payload.tags,
                new_links=links,
                extra_tags=extra_tags,
                derived_tags=derived_tags,
                heading=note_heading,
            )
        except OrderMutationFailedError as e:
            log.error("order_annotation_failed", error=e.message, transport=e.transport)
            report.status = OrderStatus.ANNOTATION_FAILED
            report.error_code = e.code
            report.error_message = e.message
            return self._finish(report)

        report.annotation = outcome
        if outcome.status == AnnotationStatus.APPLIED:
            report.status = OrderStatus.ANNOTATED
        elif outcome.status == AnnotationStatus.FAILED:
            report.status = OrderStatus.ANNOTATION_FAILED
        else:
            report.status = OrderStatus.PARTIALLY_ANNOTATED

        return self._finish(report)

    def _finish(self, report: OrderReport) -> OrderReport:
        """Log the outcome and alert operators when something went wrong."""
        logger.info(
            "order_fulfillment_complete",
            order_name=report.order_name,
            status=report.status.value,
            links=len(report.links),
            failed_items=len(report.failed_items)
        )
        if report.needs_attention and self.alert is not None:
            self.alert(report)
        return report

    def process_live_order(self, payload: OrderPayload) -> OrderReport:
        """Entry point for orders/create webhooks."""
        return self.process_order(
            payload,
            note_heading=LIVE_NOTE_HEADING,
            check_marker=self.live_idempotency_guard,
            refresh_tags=self.live_idempotency_guard,
        )


# Singleton instance
_fulfillment_service: Optional[FulfillmentService] = None


def get_fulfillment_service() -> FulfillmentService:
    """Get or create FulfillmentService instance wired from settings."""
    global _fulfillment_service
    if _fulfillment_service is None:
        order_client = get_shopify_client()
        _fulfillment_service = FulfillmentService(
            resolver=build_template_resolver(),
            asset_store=get_asset_store(),
            compositor=build_overlay_compositor(),
            repackager=build_archive_repackager(),
            annotator=build_order_annotator(order_client),
            order_client=order_client,
            call_sign_property=settings.call_sign_property,
            marker_tag=settings.marker_tag,
            max_parallel_items=settings.max_parallel_items,
            live_idempotency_guard=settings.live_idempotency_guard,
            alert=send_order_alert,
        )
    return _fulfillment_service
