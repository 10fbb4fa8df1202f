"""
Business logic services.

Each service handles one stage of custom design fulfillment.
"""

from services.template_resolver import (
    TemplateResolver,
    NamingConvention,
    get_naming_convention,
    build_template_resolver,
)
from services.overlay_compositor import OverlayCompositor, OverlayStyle, build_overlay_compositor
from services.archive_repackager import ArchiveRepackager, build_archive_repackager
from services.asset_store import AssetStore, BucketClass, get_asset_store
from services.order_annotator import OrderAnnotator, build_order_annotator
from services.fulfillment_service import FulfillmentService, get_fulfillment_service
from services.reconciliation_service import ReconciliationService, get_reconciliation_service

__all__ = [
    "TemplateResolver",
    "NamingConvention",
    "get_naming_convention",
    "build_template_resolver",
    "OverlayCompositor",
    "OverlayStyle",
    "build_overlay_compositor",
    "ArchiveRepackager",
    "build_archive_repackager",
    "AssetStore",
    "BucketClass",
    "get_asset_store",
    "OrderAnnotator",
    "build_order_annotator",
    "FulfillmentService",
    "get_fulfillment_service",
    "ReconciliationService",
    "get_reconciliation_service",
]
