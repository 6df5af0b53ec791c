# =============================================================================
# core/services/storage_service.py - Supabase Storage Operations
# =============================================================================
# The object storage collaborator: put / delete photos and AI images in a
# public Supabase Storage bucket.
#
# The supabase-py storage API is synchronous, so each call runs in a worker
# thread to keep the event loop free for concurrent uploads.
#
# Only StorageFallbackWriter (studio/storage_writer.py) calls this service;
# orchestration code never writes to storage directly.
# =============================================================================

import asyncio
import logging
from typing import Any
from urllib.parse import unquote, urlparse

from app.config import settings
from lib.errors import TransientExternalError
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


class StorageNotConfiguredError(TransientExternalError):
    """Raised when no storage bucket is configured."""

    def __init__(self):
        super().__init__(
            "Object storage is not configured",
            code="STORAGE_NOT_CONFIGURED",
            suggestion="Set STORAGE_BUCKET and SUPABASE_SERVICE_KEY to enable durable storage",
        )


class StorageUploadError(TransientExternalError):
    """Raised when a file upload to storage fails."""

    def __init__(self, path: str, error: str):
        super().__init__(
            f"Failed to upload file to storage: {error}",
            code="STORAGE_UPLOAD_ERROR",
            details={"path": path, "error": error},
        )


class StorageService:
    """
    Service for Supabase Storage operations.

    Example:
        storage = StorageService()
        stored = await storage.put("ai/user-1/1700000000-ab12.png", png_bytes,
                                   public=True, content_type="image/png")
        print(stored["url"])
    """

    def __init__(self, bucket: str | None = None):
        self.bucket = settings.STORAGE_BUCKET if bucket is None else bucket

    @property
    def is_configured(self) -> bool:
        return bool(self.bucket) and settings.storage_configured

    async def put(
        self,
        name: str,
        data: bytes,
        *,
        public: bool = True,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """
        Upload bytes under `name` and return its URL.

        Names are never overwritten (upsert is off); callers generate a
        fresh name per attempt.

        Returns:
            {"url": public (or signed) URL, "path": object path}

        Raises:
            StorageNotConfiguredError: If no bucket is configured
            StorageUploadError: If the upload fails
        """
        if not self.is_configured:
            raise StorageNotConfiguredError()

        return await asyncio.to_thread(self._put_sync, name, data, public, content_type)

    def _put_sync(self, name: str, data: bytes, public: bool, content_type: str) -> dict[str, Any]:
        client = SupabaseClient.get_client()
        bucket = client.storage.from_(self.bucket)

        try:
            bucket.upload(
                path=name,
                file=data,
                file_options={"content-type": content_type, "upsert": "false"},
            )
        except Exception as e:
            logger.error(f"Storage upload failed for {name}: {e}")
            raise StorageUploadError(name, str(e))

        if public:
            url = bucket.get_public_url(name)
        else:
            signed = bucket.create_signed_url(name, 3600)
            url = signed.get("signedURL") or signed.get("signedUrl")

        logger.info(f"Uploaded {len(data)} bytes to storage: {name}")
        return {"url": url, "path": name}

    async def delete(self, url_or_path: str) -> bool:
        """
        Delete an object by URL or path.

        Returns:
            True if the delete request succeeded
        """
        if not self.is_configured:
            raise StorageNotConfiguredError()

        path = self.path_from_url(url_or_path)
        return await asyncio.to_thread(self._delete_sync, path)

    def _delete_sync(self, path: str) -> bool:
        client = SupabaseClient.get_client()
        try:
            client.storage.from_(self.bucket).remove([path])
            logger.info(f"Deleted file from storage: {path}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete file {path}: {e}")
            return False

    def path_from_url(self, url_or_path: str) -> str:
        """
        Extract the object path from a public URL.

        Plain paths are returned unchanged.

        Example:
            ".../storage/v1/object/public/inventory-photos/ai/u1/x.png" -> "ai/u1/x.png"
        """
        if not url_or_path.startswith(("http://", "https://")):
            return url_or_path

        path = unquote(urlparse(url_or_path).path)
        marker = f"/{self.bucket}/"
        if marker in path:
            return path.split(marker, 1)[1]
        return path.lstrip("/")
