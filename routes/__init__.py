"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.webhooks import router as webhooks_router
from routes.fulfillment import router as fulfillment_router

__all__ = [
    "webhooks_router",
    "fulfillment_router",
]
