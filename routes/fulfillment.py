"""
Fulfillment API routes.

POST /api/fulfillment/replay
    Manual recovery: replays the listed orders through the pipeline and
    returns the reconciliation report.
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError
from models.fulfillment import ReconciliationReport, ReplayRequest
from services.reconciliation_service import (
    ReconciliationService,
    get_reconciliation_service,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/fulfillment", tags=["Fulfillment"])


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


@router.post("/replay", response_model=ReconciliationReport)
async def replay_orders(
    data: ReplayRequest,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """
    Replay orders by display name.

    Orders already carrying the marker tag are reported as skipped.
    """
    try:
        logger.info("replay_requested", orders=len(data.order_names))
        return await run_in_threadpool(service.replay, data.order_names)
    except Exception as e:
        return handle_error(e)
