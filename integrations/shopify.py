"""
Shopify Admin GraphQL integration.

Handles:
- Order lookup by display name (replay path)
- Current tag lookup (live idempotency guard)
- Combined tag + note mutation
- Webhook signature verification
- ORDERS_CREATE webhook subscription management
"""

import base64
import hashlib
import hmac
from typing import Any, Optional
from pydantic import ValidationError as PydanticValidationError
import requests
import structlog

from config import settings
from exceptions import (
    ConfigurationError,
    OrderMutationFailedError,
    OrderQueryFailedError,
    WebhookVerificationError,
)
from models.order import OrderPayload
from utils.text_utils import extract_numeric_id

logger = structlog.get_logger(__name__)


ORDER_BY_NAME_QUERY = """
query ($query: String!, $lineItems: Int!) {
  orders(first: 1, query: $query) {
    edges {
      node {
        id
        name
        note
        tags
        lineItems(first: $lineItems) {
          edges {
            node {
              id
              title
              variantTitle
              customAttributes { key value }
            }
          }
        }
      }
    }
  }
}
"""

ORDER_TAGS_QUERY = """
query ($id: ID!) {
  order(id: $id) {
    id
    tags
  }
}
"""

ANNOTATE_ORDER_MUTATION = """
mutation addTagsAndUpdateNote($id: ID!, $tags: [String!]!, $note: String!) {
  tagsAdd(id: $id, tags: $tags) {
    node { id }
    userErrors { field message }
  }
  orderUpdate(input: {id: $id, note: $note}) {
    order { id }
    userErrors { field message }
  }
}
"""

WEBHOOK_SUBSCRIPTIONS_QUERY = """
{
  webhookSubscriptions(first: 5, topics: ORDERS_CREATE) {
    edges { node { id } }
  }
}
"""

WEBHOOK_DELETE_MUTATION = """
mutation webhookSubscriptionDelete($id: ID!) {
  webhookSubscriptionDelete(id: $id) {
    userErrors { field message }
  }
}
"""

WEBHOOK_CREATE_MUTATION = """
mutation webhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $webhookSubscription: WebhookSubscriptionInput!) {
  webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {
    webhookSubscription { id }
    userErrors { field message }
  }
}
"""


class ShopifyClient:
    """
    Client for the Shopify Admin GraphQL API.

    Query failures raise OrderQueryFailedError and mutation failures raise
    OrderMutationFailedError; both flag whether the failure was transport
    level or reported by the API.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2024-10",
        timeout: float = 30.0
    ):
        self.shop_domain = shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.api_url = f"https://{self.shop_domain}/admin/api/{api_version}/graphql.json"
        self.headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        }
        self.timeout = timeout
        self.session = requests.Session()

    def _execute(self, query: str, variables: Optional[dict] = None, mutation: bool = False) -> dict:
        """Execute a GraphQL document and return its data object."""
        error_cls = OrderMutationFailedError if mutation else OrderQueryFailedError

        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = self.session.post(
                self.api_url,
                json=payload,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("shopify_request_failed", error=str(e), mutation=mutation)
            raise error_cls(f"Shopify request failed: {e}", transport=True) from e
        except ValueError as e:
            logger.error("shopify_response_not_json", error=str(e))
            raise error_cls(f"Shopify returned invalid JSON: {e}", transport=True) from e

        if body.get("errors"):
            logger.error("shopify_graphql_errors", errors=body["errors"], mutation=mutation)
            if mutation:
                raise OrderMutationFailedError(
                    f"Shopify GraphQL errors: {body['errors']}",
                    tags_errors=body["errors"],
                    note_errors=body["errors"],
                )
            raise OrderQueryFailedError(
                f"Shopify GraphQL errors: {body['errors']}",
                user_errors=body["errors"],
            )

        return body.get("data") or {}

    # ===================
    # ORDERS
    # ===================

    def find_order_by_name(self, order_name: str, line_items_limit: int = 20) -> Optional[dict]:
        """
        Look up one order by display name.

        Args:
            order_name: Display name, e.g. "#1001"
            line_items_limit: Max line items returned

        Returns:
            Order node, or None if no order matches
        """
        data = self._execute(
            ORDER_BY_NAME_QUERY,
            {"query": f"name:{order_name}", "lineItems": line_items_limit},
        )
        edges = (data.get("orders") or {}).get("edges") or []
        if not edges:
            return None
        return edges[0].get("node")

    def get_order_tags(self, order_gid: str) -> list[str]:
        """Current tags of an order (empty if the order is unknown)."""
        data = self._execute(ORDER_TAGS_QUERY, {"id": order_gid})
        order = data.get("order") or {}
        return list(order.get("tags") or [])

    def add_tags_and_update_note(self, order_gid: str, tags: list[str], note: str) -> dict:
        """
        Add tags and replace the note in a single request.

        Returns:
            {"tags_errors": [...], "note_errors": [...]}: field-level errors
            reported separately for each operation

        Raises:
            OrderMutationFailedError: Transport or top-level GraphQL failure
        """
        data = self._execute(
            ANNOTATE_ORDER_MUTATION,
            {"id": order_gid, "tags": tags, "note": note},
            mutation=True,
        )
        return {
            "tags_errors": (data.get("tagsAdd") or {}).get("userErrors") or [],
            "note_errors": (data.get("orderUpdate") or {}).get("userErrors") or [],
        }

    # ===================
    # WEBHOOKS
    # ===================

    def register_orders_create_webhook(self, callback_url: str) -> Optional[str]:
        """
        Replace every ORDERS_CREATE subscription with one pointing at callback_url.

        Returns:
            New subscription ID, or None if Shopify rejected the creation
        """
        existing = self._execute(WEBHOOK_SUBSCRIPTIONS_QUERY)
        for edge in (existing.get("webhookSubscriptions") or {}).get("edges") or []:
            subscription_id = edge["node"]["id"]
            self._execute(WEBHOOK_DELETE_MUTATION, {"id": subscription_id}, mutation=True)
            logger.info("webhook_subscription_deleted", subscription_id=subscription_id)

        created = self._execute(
            WEBHOOK_CREATE_MUTATION,
            {
                "topic": "ORDERS_CREATE",
                "webhookSubscription": {"callbackUrl": callback_url, "format": "JSON"},
            },
            mutation=True,
        )
        result = created.get("webhookSubscriptionCreate") or {}
        subscription = result.get("webhookSubscription")

        if subscription:
            logger.info(
                "webhook_subscription_created",
                subscription_id=subscription["id"],
                callback_url=callback_url
            )
            return subscription["id"]

        logger.error("webhook_subscription_create_failed", errors=result.get("userErrors"))
        return None


def order_node_to_payload(node: dict) -> OrderPayload:
    """
    Reshape an Admin API order node into the webhook payload contract.

    Line item GIDs become numeric IDs and customAttributes {key, value}
    become properties {name, value}, as in the orders/create body.

    Raises:
        OrderQueryFailedError: If the node does not fit the payload contract
    """
    line_items = []
    for edge in (node.get("lineItems") or {}).get("edges") or []:
        item = edge.get("node") or {}
        numeric_id = extract_numeric_id(item.get("id"))
        line_items.append({
            "id": int(numeric_id) if numeric_id and numeric_id.isdigit() else numeric_id,
            "title": item.get("title") or "",
            "variant_title": item.get("variantTitle"),
            "properties": [
                {"name": attr.get("key"), "value": attr.get("value")}
                for attr in item.get("customAttributes") or []
            ],
        })

    try:
        return OrderPayload(
            admin_graphql_api_id=node.get("id"),
            name=node.get("name"),
            note=node.get("note"),
            tags=node.get("tags") or [],
            line_items=line_items,
        )
    except PydanticValidationError as e:
        raise OrderQueryFailedError(
            message=f"Order {node.get('name')} does not match the order contract",
            user_errors=e.errors(include_url=False, include_context=False, include_input=False),
        )


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> None:
    """
    Verify a webhook body against its X-Shopify-Hmac-Sha256 header.

    The header is base64(HMAC-SHA256(app secret, raw body)).

    Raises:
        WebhookVerificationError: If the secret is unset, the header is
            missing, or the digest does not match
    """
    if not secret:
        raise WebhookVerificationError("webhook secret not configured")
    if not signature:
        raise WebhookVerificationError("missing signature header")

    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")

    if not hmac.compare_digest(expected, signature.strip()):
        raise WebhookVerificationError("signature mismatch")


# Singleton instance
_shopify_client: Optional[ShopifyClient] = None


def get_shopify_client() -> ShopifyClient:
    """
    Get or create ShopifyClient instance.

    Raises:
        ConfigurationError: If shop domain or access token is missing
    """
    global _shopify_client
    if _shopify_client is None:
        if not settings.shopify_configured:
            raise ConfigurationError(
                message="Shopify not configured. Set SHOPIFY_SHOP_DOMAIN and SHOPIFY_ACCESS_TOKEN",
                details={
                    "has_domain": bool(settings.shopify_shop_domain),
                    "has_token": bool(settings.shopify_access_token),
                }
            )
        _shopify_client = ShopifyClient(
            shop_domain=settings.shopify_shop_domain,
            access_token=settings.shopify_access_token,
            api_version=settings.shopify_api_version,
        )
    return _shopify_client
