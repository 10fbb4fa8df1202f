"""
Asset store gateway.

Reads template bundles from and writes design archives to Supabase Storage.
Templates and designs live in two independently configured buckets that are
addressed through BucketClass, never by raw bucket name.
"""

from enum import Enum
from typing import Optional
from urllib.parse import quote
import structlog

from config import settings, get_supabase_client
from exceptions import AssetNotFoundError, StoreReadFailedError, StoreWriteFailedError

logger = structlog.get_logger(__name__)


class BucketClass(str, Enum):
    """Logical bucket roles."""
    TEMPLATES = "templates"
    DESIGNS = "designs"


def _is_not_found(error: Exception) -> bool:
    """Storage client errors carry the status in different places across versions."""
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if str(status) == "404":
        return True
    text = str(error).lower()
    return "not found" in text or "not_found" in text or "'statuscode': 404" in text


class AssetStore:
    """
    Fetch/put gateway over a Supabase storage client.

    Writes are upserts, so retrying a put with the same key and bytes
    leaves the bucket in the same state.
    """

    def __init__(
        self,
        client,
        buckets: dict[BucketClass, str],
        public_base_url: str
    ):
        self.client = client
        self.buckets = dict(buckets)
        self.public_base_url = public_base_url.rstrip("/")

    def bucket_name(self, bucket_class: BucketClass) -> str:
        return self.buckets[bucket_class]

    def fetch(self, bucket_class: BucketClass, key: str) -> bytes:
        """
        Download an object.

        Args:
            bucket_class: Which bucket to read
            key: Object key

        Returns:
            Object bytes

        Raises:
            AssetNotFoundError: If the key does not exist in the bucket
            StoreReadFailedError: For any other storage failure
        """
        bucket = self.bucket_name(bucket_class)
        logger.debug("fetching_asset", bucket=bucket, key=key)

        try:
            data = self.client.storage.from_(bucket).download(key)
        except Exception as e:
            if _is_not_found(e):
                logger.warning("asset_not_found", bucket=bucket, key=key)
                raise AssetNotFoundError(bucket, key) from e
            logger.error("asset_fetch_failed", bucket=bucket, key=key, error=str(e))
            raise StoreReadFailedError(bucket, key, str(e)) from e

        logger.info("asset_fetched", bucket=bucket, key=key, size_bytes=len(data))
        return data

    def put(
        self,
        bucket_class: BucketClass,
        key: str,
        data: bytes,
        content_type: str
    ) -> str:
        """
        Upload (upsert) an object.

        Args:
            bucket_class: Which bucket to write
            key: Object key
            data: Object bytes
            content_type: MIME type stored with the object

        Returns:
            Public URL of the object

        Raises:
            StoreWriteFailedError: If the upload fails
        """
        bucket = self.bucket_name(bucket_class)
        logger.debug("storing_asset", bucket=bucket, key=key, size_bytes=len(data))

        try:
            self.client.storage.from_(bucket).upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            logger.error("asset_store_failed", bucket=bucket, key=key, error=str(e))
            raise StoreWriteFailedError(bucket, key, str(e)) from e

        url = self.public_url(bucket_class, key)
        logger.info("asset_stored", bucket=bucket, key=key, url=url)
        return url

    def public_url(self, bucket_class: BucketClass, key: str) -> str:
        """
        Build the public URL of an object.

        Derived only from configuration and the key, so the URL recorded on
        an order can be reconstructed exactly.
        """
        bucket = self.bucket_name(bucket_class)
        return f"{self.public_base_url}/storage/v1/object/public/{bucket}/{quote(key)}"


# Singleton instance
_asset_store: Optional[AssetStore] = None


def get_asset_store() -> AssetStore:
    """Get or create AssetStore instance."""
    global _asset_store
    if _asset_store is None:
        _asset_store = AssetStore(
            client=get_supabase_client(),
            buckets={
                BucketClass.TEMPLATES: settings.templates_bucket,
                BucketClass.DESIGNS: settings.designs_bucket,
            },
            public_base_url=settings.supabase_url,
        )
    return _asset_store
