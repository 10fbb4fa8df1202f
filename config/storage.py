"""
Storage connection management.

Provides the Supabase client singleton used for template and design buckets.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class StorageConnectionError(Exception):
    """Failed to connect to Supabase Storage."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Prefers the service role key when configured, since the designs
    bucket only accepts writes from privileged clients.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        StorageConnectionError: If the client cannot be created
    """
    key = settings.supabase_service_key or settings.supabase_key

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "...",  # Log partial URL only
            service_role=bool(settings.supabase_service_key)
        )

        client = create_client(settings.supabase_url, key)

        logger.info("supabase_connected", status="success")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise StorageConnectionError(f"Failed to connect to Supabase: {e}") from e


def check_connection() -> dict:
    """
    Check storage health.

    Returns:
        dict: Connection status with the buckets that were found
    """
    try:
        client = get_supabase_client()
        buckets = {bucket.name for bucket in client.storage.list_buckets()}

        return {
            "status": "healthy",
            "templates_bucket": settings.templates_bucket in buckets,
            "designs_bucket": settings.designs_bucket in buckets,
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }


def reset_connection():
    """
    Reset the cached storage client.

    Call this if the connection becomes stale or after config changes.
    """
    get_supabase_client.cache_clear()
    logger.info("storage_connection_reset")
