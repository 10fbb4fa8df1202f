"""
Shop platform webhook routes.

POST /webhooks/orders-create
    Verifies the HMAC signature against the raw body, acknowledges
    immediately and hands the order to a single worker thread, so live
    orders are processed one at a time in arrival order.
"""

from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
import structlog

from config import settings
from exceptions import AppError, InvalidPayloadError
from integrations.shopify import verify_webhook_signature
from models.fulfillment import WebhookAck
from models.order import OrderPayload
from services.fulfillment_service import FulfillmentService, get_fulfillment_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

ORDERS_CREATE_TOPIC = "orders/create"

# Live orders run one at a time, queued off the request threadpool
_live_order_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="live-order")


def get_webhook_secret() -> Optional[str]:
    """Shared secret used to sign webhook deliveries."""
    return settings.shopify_api_secret


def get_live_order_executor() -> Executor:
    """Executor that runs live orders."""
    return _live_order_executor


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def parse_order_payload(raw_body: bytes) -> OrderPayload:
    """
    Parse a webhook body into the order contract.

    Raises:
        InvalidPayloadError: If the body is not JSON or violates the contract
    """
    try:
        return OrderPayload.model_validate_json(raw_body)
    except PydanticValidationError as e:
        raise InvalidPayloadError(
            message="Order payload is malformed",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)}
        )


def process_live_order(service: FulfillmentService, payload: OrderPayload) -> None:
    """Run one live order on the live order worker."""
    try:
        service.process_live_order(payload)
    except Exception as e:
        logger.error(
            "live_order_processing_crashed",
            order_name=payload.name,
            error=str(e),
            error_type=type(e).__name__
        )


@router.post("/orders-create", response_model=WebhookAck)
async def orders_create(
    request: Request,
    secret: Optional[str] = Depends(get_webhook_secret),
    executor: Executor = Depends(get_live_order_executor),
    service: FulfillmentService = Depends(get_fulfillment_service)
):
    """
    Receive an orders/create delivery.

    Returns 401 for a bad signature and 400 for a malformed body; otherwise
    acknowledges with 200 before any processing happens.
    """
    raw_body = await request.body()

    try:
        verify_webhook_signature(
            raw_body,
            request.headers.get("X-Shopify-Hmac-Sha256"),
            secret,
        )
    except AppError as e:
        logger.warning("webhook_rejected", reason=e.details.get("reason"))
        return handle_error(e)

    topic = request.headers.get("X-Shopify-Topic")
    if topic and topic != ORDERS_CREATE_TOPIC:
        logger.info("webhook_topic_ignored", topic=topic)
        return WebhookAck(status="ignored")

    try:
        payload = parse_order_payload(raw_body)
    except AppError as e:
        logger.warning("webhook_payload_invalid", error=e.message)
        return handle_error(e)

    logger.info("webhook_order_accepted", order_name=payload.name)
    executor.submit(process_live_order, service, payload)

    return WebhookAck(status="accepted", order_name=payload.name)
