"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE STORAGE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (required to write to private buckets)"
    )
    templates_bucket: str = Field(
        default="templates",
        description="Bucket holding template bundles (read-only for this service)"
    )
    designs_bucket: str = Field(
        default="designs",
        description="Bucket receiving finished design archives"
    )

    # ===================
    # SHOPIFY
    # ===================
    shopify_shop_domain: Optional[str] = Field(
        None,
        description="Shop domain, e.g. my-shop.myshopify.com"
    )
    shopify_access_token: Optional[str] = Field(
        None,
        description="Admin API access token"
    )
    shopify_api_secret: Optional[str] = Field(
        None,
        description="App secret used to sign webhook payloads"
    )
    shopify_api_version: str = Field(
        default="2024-10",
        description="Admin GraphQL API version"
    )
    public_host: Optional[str] = Field(
        None,
        description="Public base URL of this service (webhook callback host)"
    )
    register_webhook_on_startup: bool = Field(
        default=False,
        description="Replace the ORDERS_CREATE webhook subscription on startup"
    )

    # ===================
    # TELEGRAM
    # ===================
    telegram_bot_token: Optional[str] = Field(
        None,
        description="Telegram bot token from @BotFather"
    )
    telegram_chat_id: Optional[str] = Field(
        None,
        description="Telegram chat ID for fulfillment alerts"
    )

    # ===================
    # TEMPLATE NAMING
    # ===================
    template_naming_convention: str = Field(
        default="v2",
        pattern="^v[0-9]+$",
        description="Version of the template key naming convention"
    )
    template_light_markers: list[str] = Field(
        default=["white", "golden yellow"],
        description="Variant substrings that select the light-background template"
    )
    template_entry_pattern: str = Field(
        default=r"template\.png$",
        description="Regex matching the templatable raster inside a bundle"
    )
    design_entry_name: str = Field(
        default="design.png",
        description="Entry name of the composited raster in the output bundle"
    )

    # ===================
    # OVERLAY STYLE
    # ===================
    overlay_fill_color: str = Field(
        default="#f0cc00",
        pattern="^#[0-9a-fA-F]{6}$",
        description="Text fill color"
    )
    overlay_font_path: str = Field(
        default="DejaVuSans-Bold.ttf",
        description="TrueType font file (bold face) used for the call sign"
    )
    overlay_font_size: int = Field(
        default=980,
        ge=1,
        le=5000,
        description="Font size in pixels"
    )
    overlay_letter_spacing: int = Field(
        default=5,
        ge=0,
        le=500,
        description="Extra spacing between letters in pixels"
    )
    overlay_baseline_shift_em: float = Field(
        default=0.05,
        ge=-1,
        le=1,
        description="Vertical nudge of the text, as a fraction of the font size"
    )

    # ===================
    # FULFILLMENT POLICY
    # ===================
    call_sign_property: str = Field(
        default="call_sign",
        description="Line item property carrying the customer's text"
    )
    marker_tag: str = Field(
        default="has_custom_design",
        description="Tag marking an order as already fulfilled"
    )
    recovery_tag: str = Field(
        default="manual_recovery",
        description="Extra tag applied by replay runs"
    )
    live_idempotency_guard: bool = Field(
        default=True,
        description="Skip live events for orders already carrying the marker tag"
    )
    max_parallel_items: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Line items processed concurrently per order (1 = sequential)"
    )
    line_items_limit: int = Field(
        default=20,
        ge=1,
        le=250,
        description="Line items fetched per order on replay"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def telegram_configured(self) -> bool:
        """Check if Telegram is properly configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def shopify_configured(self) -> bool:
        """Check if the Shopify Admin API is reachable with these settings."""
        return bool(self.shopify_shop_domain and self.shopify_access_token)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If required env vars are missing or invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
