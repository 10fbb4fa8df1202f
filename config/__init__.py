"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Function to get settings (for dependency injection)
    get_supabase_client: Cached Supabase client (storage buckets)
    check_connection: Storage health check function
"""

from config.settings import settings, get_settings, Settings
from config.storage import (
    get_supabase_client,
    check_connection,
    reset_connection,
    StorageConnectionError,
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Storage
    "get_supabase_client",
    "check_connection",
    "reset_connection",
    "StorageConnectionError",
]
