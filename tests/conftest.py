"""
Shared test fixtures.

In-memory fakes for the storage client and the Shopify client, plus template
bundles built on the fly with Pillow and zipfile.
"""

import os
import sys
from pathlib import Path

# Required settings must exist before any project module is imported
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SHOPIFY_API_SECRET", "test-webhook-secret")
os.environ.setdefault("ENVIRONMENT", "development")

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

from typing import Optional

import pytest
from unittest.mock import MagicMock

from services.archive_repackager import ArchiveRepackager
from services.asset_store import AssetStore, BucketClass
from services.fulfillment_service import FulfillmentService
from services.order_annotator import OrderAnnotator
from services.overlay_compositor import OverlayCompositor, OverlayStyle
from services.template_resolver import TemplateResolver, get_naming_convention
from tests.factories import make_bundle, make_png

FIXED_CLOCK = 1700000000.5
STORAGE_URL = "https://test-project.supabase.co"

# ===================
# FAKE STORAGE CLIENT
# ===================

class FakeStorageError(Exception):
    """Mimics the storage client's API error."""

    def __init__(self, message: str, status: str = "400"):
        super().__init__(message)
        self.status = status

class FakeBucket:
    """One bucket of the fake storage client."""

    def __init__(self, client: "FakeStorageClient", name: str):
        self.client = client
        self.name = name

    def download(self, path: str) -> bytes:
        if self.name in self.client.fail_reads:
            raise FakeStorageError("connection reset by peer", status="500")
        try:
            return self.client.objects[(self.name, path)]
        except KeyError:
            raise FakeStorageError("Object not found", status="404")

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None):
        if self.name in self.client.fail_writes:
            raise FakeStorageError("service unavailable", status="503")
        self.client.objects[(self.name, path)] = file
        self.client.uploads.append({
            "bucket": self.name,
            "path": path,
            "size": len(file),
            "file_options": file_options or {},
        })
        return {"path": path}

class FakeStorage:
    def __init__(self, client: "FakeStorageClient"):
        self.client = client

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self.client, bucket)

class FakeStorageClient:
    """
    In-memory stand-in for the Supabase client's storage API.

    Objects are keyed by (bucket, path). Buckets listed in fail_reads or
    fail_writes raise on download or upload.
    """

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.uploads: list[dict] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.storage = FakeStorage(self)

    def seed(self, bucket: str, path: str, data: bytes) -> None:
        self.objects[(bucket, path)] = data

# ===================
# FAKE SHOPIFY CLIENT
# ===================

class FakeShopifyClient:
    """
    In-memory stand-in for ShopifyClient.

    Records every mutation; mutation_result controls the per-field errors
    returned, and query_error / mutation_error make calls raise.
    """

    def __init__(self):
        self.orders_by_name: dict[str, dict] = {}
        self.tags_by_id: dict[str, list[str]] = {}
        self.mutations: list[dict] = []
        self.lookups: list[str] = []
        self.mutation_result = {"tags_errors": [], "note_errors": []}
        self.query_error: Optional[Exception] = None
        self.mutation_error: Optional[Exception] = None

    def find_order_by_name(self, order_name: str, line_items_limit: int = 20) -> Optional[dict]:
        self.lookups.append(order_name)
        if self.query_error is not None:
            raise self.query_error
        return self.orders_by_name.get(order_name)

    def get_order_tags(self, order_gid: str) -> list[str]:
        if self.query_error is not None:
            raise self.query_error
        return list(self.tags_by_id.get(order_gid, []))

    def add_tags_and_update_note(self, order_gid: str, tags: list[str], note: str) -> dict:
        if self.mutation_error is not None:
            raise self.mutation_error
        self.mutations.append({"id": order_gid, "tags": list(tags), "note": note})
        return self.mutation_result

# ===================
# TEMPLATE BUNDLES
# ===================

@pytest.fixture
def template_png() -> bytes:
    return make_png()

@pytest.fixture
def template_bundle(template_png) -> bytes:
    """Bundle with one templatable raster and two siblings."""
    return make_bundle({
        "CLASSIC_CAP/template.png": template_png,
        "CLASSIC_CAP/print-guide.txt": b"print at 300 dpi\n",
        "README.txt": b"do not edit\n",
    })

# ===================
# PIPELINE
# ===================

@pytest.fixture
def overlay_style() -> OverlayStyle:
    # Font path that never resolves, so the bundled face is used everywhere
    return OverlayStyle(font_path="missing-test-font.ttf", font_size=24, letter_spacing=2)

@pytest.fixture
def storage_client() -> FakeStorageClient:
    return FakeStorageClient()

@pytest.fixture
def asset_store(storage_client) -> AssetStore:
    return AssetStore(
        client=storage_client,
        buckets={
            BucketClass.TEMPLATES: "templates",
            BucketClass.DESIGNS: "designs",
        },
        public_base_url=STORAGE_URL,
    )

@pytest.fixture
def shopify_client() -> FakeShopifyClient:
    return FakeShopifyClient()

@pytest.fixture
def alert() -> MagicMock:
    return MagicMock(return_value=True)

@pytest.fixture
def fulfillment_service(asset_store, shopify_client, overlay_style, alert) -> FulfillmentService:
    """Full pipeline wired to in-memory fakes."""
    return FulfillmentService(
        resolver=TemplateResolver(get_naming_convention("v2")),
        asset_store=asset_store,
        compositor=OverlayCompositor(overlay_style),
        repackager=ArchiveRepackager(),
        annotator=OrderAnnotator(shopify_client),
        order_client=shopify_client,
        clock=lambda: FIXED_CLOCK,
        alert=alert,
    )
