"""
Unit tests for FulfillmentService.

Runs the whole pipeline against the in-memory storage and Shopify fakes.

Run: pytest tests/unit/test_fulfillment_service.py -v
"""

import time

import pytest
from unittest.mock import patch

from exceptions import OrderMutationFailedError, OrderQueryFailedError
from models.fulfillment import ItemStage, OrderStatus
from models.order import OrderPayload
from services.order_annotator import RECOVERY_NOTE_HEADING
from tests.factories import LineItemFactory, OrderFactory, make_bundle, read_bundle

STORAGE_PREFIX = "https://test-project.supabase.co/storage/v1/object/public/designs/"


def payload(**kwargs) -> OrderPayload:
    return OrderPayload.model_validate(OrderFactory.create(**kwargs))


@pytest.fixture
def seeded(storage_client, template_bundle):
    """Template bundles for caps (light and dark) and dark t-shirts."""
    storage_client.seed("templates", "CLASSIC_CAP_FOR_LIGHT.zip", template_bundle)
    storage_client.seed("templates", "CLASSIC_CAP_FOR_DARK.zip", template_bundle)
    storage_client.seed("templates", "CLASSIC_T--SHIRT_FOR_DARK.zip", template_bundle)
    return storage_client


class TestExtractCustomizations:
    """Tests for FulfillmentService.extract_customizations()"""

    def test_only_items_with_call_sign(self, fulfillment_service):
        order = payload(line_items=[
            LineItemFactory.create(id=1, call_sign="N1ABC"),
            LineItemFactory.create(id=2),
            LineItemFactory.create(id=3, call_sign="K2XYZ"),
        ])

        requests = fulfillment_service.extract_customizations(order)

        assert [r.line_item.id for r in requests] == [1, 3]
        assert [(r.item_index, r.total_custom_items) for r in requests] == [(1, 2), (2, 2)]

    def test_blank_call_sign_is_not_customizable(self, fulfillment_service):
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="   ")])

        assert fulfillment_service.extract_customizations(order) == []

    def test_call_sign_trimmed(self, fulfillment_service):
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign=" N1ABC ")])

        assert fulfillment_service.extract_customizations(order)[0].call_sign == "N1ABC"


class TestArtifactKey:
    def test_key_format(self, fulfillment_service):
        assert fulfillment_service.artifact_key("#1001", 42) == "designs/1001-42-1700000000500.zip"


class TestProcessOrder:
    """Tests for FulfillmentService.process_order()"""

    def test_single_item_order(self, fulfillment_service, seeded, shopify_client, alert):
        """#1001 with one white cap and one plain item: one design stored, simplified note line."""
        order = payload(line_items=[
            LineItemFactory.create(id=42, title="Classic Cap", variant_title="White / L", call_sign="N1ABC"),
            LineItemFactory.create(id=43, title="Plain Sticker", variant_title=None),
        ])

        report = fulfillment_service.process_order(order)

        # Assert
        assert report.status == OrderStatus.ANNOTATED
        item = report.items[0]
        assert item.success
        assert item.template_key == "CLASSIC_CAP_FOR_LIGHT.zip"
        assert item.artifact_key == "designs/1001-42-1700000000500.zip"

        design_uploads = [u for u in seeded.uploads if u["bucket"] == "designs"]
        assert len(design_uploads) == 1

        mutation = shopify_client.mutations[0]
        assert "has_custom_design" in mutation["tags"]
        assert mutation["note"] == (
            "--- Custom Design Files ---\n"
            f"#1001-{STORAGE_PREFIX}designs/1001-42-1700000000500.zip;"
        )
        alert.assert_not_called()

    def test_design_archive_contents(self, fulfillment_service, seeded):
        order = payload(line_items=[LineItemFactory.create(id=42, call_sign="N1ABC")])

        fulfillment_service.process_order(order)

        entries = read_bundle(seeded.objects[("designs", "designs/1001-42-1700000000500.zip")])
        assert set(entries) == {"CLASSIC_CAP/print-guide.txt", "README.txt", "design.png"}
        assert entries["design.png"].startswith(b"\x89PNG")

    def test_missing_template_leaves_order_untouched(self, fulfillment_service, storage_client, shopify_client, alert):
        order = payload(line_items=[
            LineItemFactory.create(id=7, title="Mystery Mug", variant_title="Black", call_sign="N1ABC"),
        ])

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.NO_LINKS
        assert report.items[0].stage == ItemStage.FETCH
        assert report.items[0].error_code == "ASSET_NOT_FOUND"
        assert report.items[0].template_key == "MYSTERY_MUG_FOR_DARK.zip"
        assert storage_client.uploads == []
        assert shopify_client.mutations == []
        alert.assert_called_once_with(report)

    def test_no_custom_items(self, fulfillment_service, storage_client, shopify_client, alert):
        order = payload(line_items=[LineItemFactory.create(id=1)])

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.NO_CUSTOM_ITEMS
        assert report.items == []
        assert storage_client.uploads == []
        assert shopify_client.mutations == []
        alert.assert_not_called()

    def test_already_annotated_is_skipped(self, fulfillment_service, seeded, shopify_client):
        order = payload(
            tags="VIP, has_custom_design",
            line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")],
        )

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.ALREADY_ANNOTATED
        assert seeded.uploads == []
        assert shopify_client.mutations == []

    def test_refresh_tags_sees_current_marker(self, fulfillment_service, seeded, shopify_client):
        """A redelivered webhook carries stale tags; the refreshed tags win."""
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])
        shopify_client.tags_by_id[order.admin_graphql_api_id] = ["has_custom_design"]

        report = fulfillment_service.process_order(order, refresh_tags=True)

        assert report.status == OrderStatus.ALREADY_ANNOTATED
        assert seeded.uploads == []

    def test_refresh_failure_is_query_failed(self, fulfillment_service, seeded, shopify_client, alert):
        shopify_client.query_error = OrderQueryFailedError("timeout", transport=True)
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])

        report = fulfillment_service.process_order(order, refresh_tags=True)

        assert report.status == OrderStatus.QUERY_FAILED
        assert seeded.uploads == []
        alert.assert_called_once()

    def test_check_marker_disabled(self, fulfillment_service, seeded, shopify_client):
        order = payload(
            tags="has_custom_design",
            line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")],
        )

        report = fulfillment_service.process_order(order, check_marker=False)

        assert report.status == OrderStatus.ANNOTATED
        assert "has_custom_design" not in shopify_client.mutations[0]["tags"]

    def test_multi_item_links_in_line_item_order(self, fulfillment_service, seeded, shopify_client):
        order = payload(line_items=[
            LineItemFactory.create(id=11, title="Classic Cap", variant_title="White / L", call_sign="N1ABC"),
            LineItemFactory.create(id=12, title="Plain Sticker"),
            LineItemFactory.create(id=13, title="Classic T-Shirt", variant_title="Black / M", call_sign="K2XYZ"),
        ])

        report = fulfillment_service.process_order(order)

        lines = shopify_client.mutations[0]["note"].split("\n")
        assert lines[0] == "--- Custom Design Files ---"
        assert lines[1] == f"#1001-1/2-{STORAGE_PREFIX}designs/1001-11-1700000000500.zip;"
        assert lines[2] == f"#1001-2/2-{STORAGE_PREFIX}designs/1001-13-1700000000500.zip;"
        assert report.items[1].template_key == "CLASSIC_T--SHIRT_FOR_DARK.zip"

    def test_failed_item_does_not_block_siblings(self, fulfillment_service, seeded, shopify_client, alert):
        order = payload(line_items=[
            LineItemFactory.create(id=21, title="Mystery Mug", call_sign="AAA"),
            LineItemFactory.create(id=22, title="Classic Cap", variant_title="White", call_sign="BBB"),
        ])

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.ANNOTATED
        assert [item.success for item in report.items] == [False, True]
        # Indexes count every custom item, including the failed one
        assert shopify_client.mutations[0]["note"].endswith(
            f"#1001-2/2-{STORAGE_PREFIX}designs/1001-22-1700000000500.zip;"
        )
        assert "White/UnknownSize/BBB" in shopify_client.mutations[0]["tags"]
        alert.assert_called_once()

    def test_template_without_raster_fails_at_extract(self, fulfillment_service, storage_client, shopify_client):
        storage_client.seed("templates", "CLASSIC_CAP_FOR_LIGHT.zip", make_bundle({"README.txt": b"x"}))
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])

        report = fulfillment_service.process_order(order)

        assert report.items[0].stage == ItemStage.EXTRACT
        assert report.items[0].error_code == "TEMPLATE_ASSET_MISSING"
        assert shopify_client.mutations == []

    def test_store_failure_fails_at_store(self, fulfillment_service, seeded, shopify_client):
        seeded.fail_writes.add("designs")
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.NO_LINKS
        assert report.items[0].stage == ItemStage.STORE
        assert report.items[0].error_code == "STORE_WRITE_FAILED"

    def test_unexpected_error_is_contained(self, fulfillment_service, seeded, shopify_client):
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])

        with patch.object(fulfillment_service.compositor, "compose", side_effect=RuntimeError("boom")):
            report = fulfillment_service.process_order(order)

        assert report.items[0].stage == ItemStage.COMPOSE
        assert report.items[0].error_code == "UNEXPECTED_ERROR"
        assert shopify_client.mutations == []

    def test_partial_annotation(self, fulfillment_service, seeded, shopify_client, alert):
        shopify_client.mutation_result = {"tags_errors": [{"message": "bad tag"}], "note_errors": []}
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.PARTIALLY_ANNOTATED
        alert.assert_called_once()

    def test_mutation_transport_failure(self, fulfillment_service, seeded, shopify_client, alert):
        shopify_client.mutation_error = OrderMutationFailedError("reset", transport=True)
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])

        report = fulfillment_service.process_order(order)

        assert report.status == OrderStatus.ANNOTATION_FAILED
        assert report.error_code == "ORDER_MUTATION_FAILED"
        alert.assert_called_once()

    def test_recovery_heading_and_extra_tags(self, fulfillment_service, seeded, shopify_client):
        order = payload(
            note="Ship fast",
            line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")],
        )

        fulfillment_service.process_order(
            order, extra_tags=["manual_recovery"], note_heading=RECOVERY_NOTE_HEADING
        )

        mutation = shopify_client.mutations[0]
        assert mutation["note"].startswith("Ship fast\n\n--- Custom Design Files (Manual Recovery) ---\n")
        assert mutation["tags"][-1] == "manual_recovery"


class TestParallelItems:
    """Tests for bounded item parallelism."""

    def test_results_keep_line_item_order(self, fulfillment_service, seeded, shopify_client):
        fulfillment_service.max_parallel_items = 3
        compose = fulfillment_service.compositor.compose

        def slow_first(raster, text):
            # First item finishes last
            if text == "AAA":
                time.sleep(0.2)
            return compose(raster, text)

        order = payload(line_items=[
            LineItemFactory.create(id=31, call_sign="AAA"),
            LineItemFactory.create(id=32, call_sign="BBB"),
            LineItemFactory.create(id=33, call_sign="CCC"),
        ])

        with patch.object(fulfillment_service.compositor, "compose", side_effect=slow_first):
            report = fulfillment_service.process_order(order)

        assert [item.call_sign for item in report.items] == ["AAA", "BBB", "CCC"]
        assert [link.item_index for link in report.links] == [1, 2, 3]


class TestProcessLiveOrder:
    """Tests for FulfillmentService.process_live_order()"""

    def test_guard_refreshes_tags(self, fulfillment_service, seeded, shopify_client):
        order = payload(line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")])
        shopify_client.tags_by_id[order.admin_graphql_api_id] = ["has_custom_design"]

        report = fulfillment_service.process_live_order(order)

        assert report.status == OrderStatus.ALREADY_ANNOTATED

    def test_guard_disabled(self, fulfillment_service, seeded, shopify_client):
        order = payload(
            tags="has_custom_design",
            line_items=[LineItemFactory.create(id=1, call_sign="N1ABC")],
        )

        fulfillment_service.live_idempotency_guard = False

        report = fulfillment_service.process_live_order(order)

        assert report.status == OrderStatus.ANNOTATED
