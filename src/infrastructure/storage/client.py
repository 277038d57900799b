"""
Object storage client for page templates.

Supports Cloudflare R2 (S3-compatible) with mock mode for local development.
Implements the PageSource protocol from core.navigation.pages, plus the
upload side used by scripts/upload_pages.py.

Mock mode keeps templates in memory, seeded with a placeholder for every
page in the default route table, so the app runs without provisioning
object storage.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


@dataclass
class StorageConfig:
    """Configuration for R2/S3-compatible storage."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str
    region: str = "auto"  # R2 uses 'auto' for region
    prefix: str = ""


class PageStorageClient(Protocol):
    """Protocol for page template storage."""

    async def fetch_page(self, resource: str, cache_bust: bool = True) -> str:
        """Return the template stored under `resource`."""
        ...

    async def upload_page(self, resource: str, content: str) -> str:
        """Store a template and return its storage key."""
        ...


class R2PageStorageClient:
    """
    Cloudflare R2 page storage.

    Uses boto3 because R2 is S3-compatible. boto3 is synchronous, so
    calls run in a worker thread to keep the event loop free.
    """

    def __init__(self, config: StorageConfig) -> None:
        import boto3
        from botocore.config import Config

        self._config = config

        # R2 requires v4 signatures
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized R2 page storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    async def fetch_page(self, resource: str, cache_bust: bool = True) -> str:
        """
        Download a page template.

        With `cache_bust` the response is requested uncached, so a freshly
        uploaded template shows up on the next navigation.
        """
        key = self._build_key(resource)
        params = {"Bucket": self._config.bucket_name, "Key": key}
        if cache_bust:
            params["ResponseCacheControl"] = "no-cache"

        try:
            response = await asyncio.to_thread(self._s3_client.get_object, **params)
            body = await asyncio.to_thread(response['Body'].read)
            return body.decode("utf-8")

        except Exception as e:
            logger.error(
                "Failed to fetch page",
                extra={"storage_path": key, "error": str(e)}
            )
            raise StorageError(f"Page fetch failed: {e}")

    async def upload_page(self, resource: str, content: str) -> str:
        key = self._build_key(resource)

        try:
            await asyncio.to_thread(
                self._s3_client.put_object,
                Bucket=self._config.bucket_name,
                Key=key,
                Body=content.encode("utf-8"),
                ContentType='text/html; charset=utf-8',
                CacheControl='no-cache',
            )

            logger.info(
                "Uploaded page",
                extra={"storage_path": key, "size_bytes": len(content)}
            )
            return key

        except Exception as e:
            logger.error(
                "Failed to upload page",
                extra={"storage_path": key, "error": str(e)}
            )
            raise StorageError(f"Page upload failed: {e}")

    def _build_key(self, resource: str) -> str:
        return f"{self._config.prefix}{resource.lstrip('/')}"


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

PLACEHOLDER_TEMPLATE = '<section class="page" data-page="{resource}"></section>'


class MockPageStorageClient:
    """
    In-memory page storage.

    Not suitable for production, but enough to run the app and its
    tests. `fail_on` makes fetching a resource raise.
    """

    def __init__(self, seed_resources: Iterable[str] = ()) -> None:
        self._pages: dict[str, str] = {
            resource: PLACEHOLDER_TEMPLATE.format(resource=resource)
            for resource in seed_resources
        }
        self._failing: set[str] = set()
        self.fetches: list[tuple[str, bool]] = []
        logger.info(
            "Initialized mock page storage (in-memory)",
            extra={"pages": len(self._pages)}
        )

    async def fetch_page(self, resource: str, cache_bust: bool = True) -> str:
        self.fetches.append((resource, cache_bust))
        if resource in self._failing:
            raise StorageError(f"Page fetch failed: {resource}")
        if resource not in self._pages:
            raise StorageError(f"Page not found: {resource}")
        return self._pages[resource]

    async def upload_page(self, resource: str, content: str) -> str:
        self._pages[resource] = content
        logger.debug(
            "Stored page in mock storage",
            extra={"storage_path": resource, "size_bytes": len(content)}
        )
        return resource

    # Helper methods for testing
    def fail_on(self, resource: str) -> None:
        self._failing.add(resource)

    def clear_failures(self) -> None:
        self._failing.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
    seed_resources: Iterable[str] = (),
) -> PageStorageClient:
    """
    Create page storage client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory client
        seed_resources: Placeholder pages for the in-memory client

    Returns:
        PageStorageClient implementation (R2 or Mock)
    """
    if mock_mode:
        return MockPageStorageClient(seed_resources)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return R2PageStorageClient(config)
