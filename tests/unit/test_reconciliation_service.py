"""
Unit tests for ReconciliationService.

Run: pytest tests/unit/test_reconciliation_service.py -v
"""

import pytest

from exceptions import OrderQueryFailedError
from models.fulfillment import OrderStatus, ReplayStatus
from services.reconciliation_service import ReconciliationService
from tests.factories import LineItemFactory, OrderNodeFactory


@pytest.fixture
def service(shopify_client, fulfillment_service):
    return ReconciliationService(
        order_client=shopify_client,
        fulfillment_service=fulfillment_service,
        line_items_limit=20,
        recovery_tag="manual_recovery",
    )


@pytest.fixture
def seeded(storage_client, template_bundle):
    storage_client.seed("templates", "CLASSIC_CAP_FOR_LIGHT.zip", template_bundle)
    return storage_client


def add_order(shopify_client, name="#1001", order_id=5551001, tags=None, note=None):
    shopify_client.orders_by_name[name] = OrderNodeFactory.create(
        order_id=order_id,
        name=name,
        tags=tags,
        note=note,
        line_items=[LineItemFactory.create(id=order_id + 1, call_sign="N1ABC")],
    )


class TestReplayOrder:
    """Tests for ReconciliationService.replay_order()"""

    def test_already_tagged_order_skipped(self, service, seeded, shopify_client):
        """An order already carrying the marker tag causes no writes and no mutation."""
        add_order(shopify_client, tags=["has_custom_design"])

        entry = service.replay_order("#1001")

        assert entry.status == ReplayStatus.SKIPPED
        assert seeded.uploads == []
        assert shopify_client.mutations == []

    def test_untagged_order_processed_with_recovery_marks(self, service, seeded, shopify_client):
        add_order(shopify_client, note="Leave at door")

        entry = service.replay_order("#1001")

        assert entry.status == ReplayStatus.PROCESSED
        assert entry.report.status == OrderStatus.ANNOTATED

        mutation = shopify_client.mutations[0]
        assert mutation["id"] == "gid://shopify/Order/5551001"
        assert "manual_recovery" in mutation["tags"]
        assert "has_custom_design" in mutation["tags"]
        assert mutation["note"].startswith(
            "Leave at door\n\n--- Custom Design Files (Manual Recovery) ---\n#1001-"
        )

    def test_design_key_uses_numeric_line_item_id(self, service, seeded, shopify_client):
        add_order(shopify_client)

        service.replay_order("#1001")

        assert seeded.uploads[0]["path"] == "designs/1001-5551002-1700000000500.zip"

    def test_not_found(self, service, shopify_client):
        entry = service.replay_order("#9999")

        assert entry.status == ReplayStatus.NOT_FOUND
        assert shopify_client.mutations == []

    def test_query_failure_recorded(self, service, shopify_client):
        shopify_client.query_error = OrderQueryFailedError("Throttled", user_errors=[{"message": "Throttled"}])

        entry = service.replay_order("#1001")

        assert entry.status == ReplayStatus.QUERY_FAILED
        assert entry.error_message == "Throttled"

    def test_unmappable_order_recorded_as_query_failure(self, service, shopify_client):
        add_order(shopify_client)
        node = shopify_client.orders_by_name["#1001"]
        node["lineItems"]["edges"][0]["node"]["id"] = None

        entry = service.replay_order("#1001")

        assert entry.status == ReplayStatus.QUERY_FAILED
        assert shopify_client.mutations == []

    def test_name_is_trimmed(self, service, shopify_client):
        service.replay_order("  #1001 ")

        assert shopify_client.lookups == ["#1001"]


class TestReplay:
    """Tests for ReconciliationService.replay()"""

    def test_processes_in_list_order_and_continues(self, service, seeded, shopify_client):
        add_order(shopify_client, name="#1001", order_id=5551001)
        add_order(shopify_client, name="#1002", order_id=5552001, tags=["has_custom_design"])
        add_order(shopify_client, name="#1004", order_id=5554001)

        report = service.replay(["#1001", "#1002", "", "#1003", "#1004"])

        assert [entry.order_name for entry in report.entries] == ["#1001", "#1002", "#1003", "#1004"]
        assert [entry.status for entry in report.entries] == [
            ReplayStatus.PROCESSED,
            ReplayStatus.SKIPPED,
            ReplayStatus.NOT_FOUND,
            ReplayStatus.PROCESSED,
        ]
        assert report.summary == {"processed": 2, "skipped": 1, "not_found": 1, "query_failed": 0}
        assert len(shopify_client.mutations) == 2

    def test_empty_list(self, service):
        report = service.replay([])

        assert report.entries == []
