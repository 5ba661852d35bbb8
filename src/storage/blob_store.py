"""Blob store adapter for the Supabase Storage REST API."""

from typing import Any, Protocol
from urllib.parse import quote

import httpx

from src.core.exceptions import EmptyBlobError, StorageError
from src.observability.logger import get_logger

logger = get_logger(__name__)


class BlobStore(Protocol):
    """Byte-addressable object store holding uploaded statements."""

    async def download(self, path: str) -> bytes:
        ...

    async def create_signed_upload_url(
        self, path: str, metadata: dict[str, Any] | None = None
    ) -> dict[str, str]:
        ...


class SupabaseBlobStore:
    """Blob store backed by one Supabase Storage bucket."""

    def __init__(
        self,
        url: str,
        service_role_key: str,
        bucket: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        self.url = url.rstrip("/")
        self.bucket = bucket
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {service_role_key}",
            "apikey": service_role_key,
        }
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings) -> "SupabaseBlobStore":
        url, key = settings.require_storage()
        return cls(url, key, settings.storage_bucket)

    def _object_url(self, kind: str, path: str) -> str:
        return f"{self.base_api_url}/{kind}/{self.bucket}/{quote(path.lstrip('/'))}"

    async def download(self, path: str) -> bytes:
        """Download an object.

        Args:
            path: Object path within the bucket.

        Returns:
            The object content.

        Raises:
            StorageError: If the request fails.
            EmptyBlobError: If the object is missing or has no content.
        """
        url = self._object_url("object", path)
        try:
            response = await self._client.get(url, headers=self.headers)
        except httpx.HTTPError as e:
            logger.error(f"Storage download error for path {path}: {e}", exc_info=True)
            raise StorageError(f"Storage download failed: {e}") from e

        if response.status_code == 404:
            raise EmptyBlobError(path)
        if response.status_code != 200:
            logger.error(
                f"Storage download failed: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Storage download failed: {response.text or response.status_code}")
        if not response.content:
            raise EmptyBlobError(path)

        logger.info(
            f"File downloaded successfully ({len(response.content) / 1024:.2f} KB).",
            extra={"bucket": self.bucket, "path": path},
        )
        return response.content

    async def create_signed_upload_url(
        self, path: str, metadata: dict[str, Any] | None = None
    ) -> dict[str, str]:
        """Create a signed URL the client can upload one object to.

        Args:
            path: Target object path within the bucket.
            metadata: Custom object metadata (e.g. the file_id).

        Returns:
            Dict with "signed_url" and "path".

        Raises:
            StorageError: If URL generation fails.
        """
        url = self._object_url("object/upload/sign", path)
        try:
            response = await self._client.post(
                url,
                headers={**self.headers, "x-upsert": "false"},
                json={"metadata": metadata or {}},
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to create signed URL: {e}") from e

        if response.status_code != 200:
            logger.error(
                f"Failed to generate signed upload URL: {response.text}",
                extra={"bucket": self.bucket, "path": path, "status_code": response.status_code},
            )
            raise StorageError(f"Failed to create signed URL: {response.text}")

        signed_path = response.json().get("url")
        if not signed_path:
            raise StorageError("Storage response did not contain a signed URL")

        # Relative paths are returned as /object/upload/sign/<bucket>/<path>?token=...
        if signed_path.startswith("/"):
            signed_path = f"{self.base_api_url}{signed_path}"
        return {"signed_url": signed_path, "path": path}

    async def close(self) -> None:
        await self._client.aclose()
