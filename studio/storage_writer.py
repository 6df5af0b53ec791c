# =============================================================================
# studio/storage_writer.py - Durable Write with Inline Fallback
# =============================================================================
# Every storage write in the pipeline goes through StorageFallbackWriter:
#
#   write()          -> never raises; degrades to an inline data URL
#   write_durable()  -> strict path used by uploads; raises after retries
#   delete()         -> best-effort delete, never raises
#   ensure_durable() -> re-upload inline refs before they are persisted
#
# Each attempt writes under a fresh random name. If an attempt succeeds just
# after its timeout fired, the object is orphaned; there is no server-side
# idempotency key to deduplicate it.
# =============================================================================

from __future__ import annotations

import logging
import mimetypes
import secrets
import time
from dataclasses import dataclass

from app.config import settings
from core.services.storage_service import StorageNotConfiguredError, StorageService
from lib.resilience import ResilientInvoker, RetryPolicy, TimeBudget
from lib.utils import is_data_url, parse_data_url, to_data_url

logger = logging.getLogger(__name__)


@dataclass
class WriteMeta:
    """Where and how to store a blob."""
    content_type: str = "image/png"
    prefix: str = "ai"
    owner_id: str | None = None
    public: bool = True


@dataclass
class WriteResult:
    """
    Outcome of a write.

    `ref` is always dereferenceable: a storage URL, or an inline data URL
    when `degraded` is True.
    """
    ref: str
    degraded: bool = False
    error: str | None = None


def _extension_for(content_type: str) -> str:
    if content_type == "image/jpeg":
        return ".jpg"
    return mimetypes.guess_extension(content_type) or ".bin"


class StorageFallbackWriter:
    """
    Durable-store writer with inline-payload fallback.

    Example:
        writer = StorageFallbackWriter()
        result = await writer.write(png_bytes, WriteMeta(owner_id=user_id))
        if result.degraded:
            ...  # result.ref is a data: URL
    """

    def __init__(
        self,
        storage: StorageService | None = None,
        invoker: ResilientInvoker | None = None,
        timeout_ms: float | None = None,
        max_attempts: int | None = None,
    ):
        self.storage = storage or StorageService()
        self.invoker = invoker or ResilientInvoker(RetryPolicy(
            max_attempts=settings.STORAGE_WRITE_ATTEMPTS,
            base_delay_ms=settings.RETRY_BASE_DELAY_MS,
            backoff_factor=settings.RETRY_BACKOFF_FACTOR,
        ))
        self.timeout_ms = timeout_ms or settings.STORAGE_WRITE_TIMEOUT_MS
        self.max_attempts = max_attempts or settings.STORAGE_WRITE_ATTEMPTS

    @staticmethod
    def object_name(meta: WriteMeta) -> str:
        """A fresh, unique object name: {prefix}/{owner}/{ms}-{random}{ext}."""
        owner = meta.owner_id or "anonymous"
        stamp = int(time.time() * 1000)
        return f"{meta.prefix}/{owner}/{stamp}-{secrets.token_hex(6)}{_extension_for(meta.content_type)}"

    async def write_durable(
        self,
        data: bytes,
        meta: WriteMeta,
        *,
        timeout_ms: float | None = None,
        max_attempts: int | None = None,
        budget: TimeBudget | None = None,
    ) -> WriteResult:
        """
        Write to durable storage, retrying per policy.

        Raises:
            StorageNotConfiguredError: If no bucket is configured
            TransientExternalError: If every attempt fails
        """
        if not self.storage.is_configured:
            raise StorageNotConfiguredError()

        async def attempt() -> dict:
            # New name per attempt; see module header on orphaned objects
            return await self.storage.put(
                self.object_name(meta),
                data,
                public=meta.public,
                content_type=meta.content_type,
            )

        stored = await self.invoker.invoke(
            attempt,
            timeout_ms=timeout_ms or self.timeout_ms,
            max_attempts=max_attempts or self.max_attempts,
            label="storage write",
            budget=budget,
        )
        return WriteResult(ref=stored["url"])

    async def write(
        self,
        data: bytes,
        meta: WriteMeta,
        budget: TimeBudget | None = None,
    ) -> WriteResult:
        """
        Write durably, or fall back to an inline data URL.

        Never raises: missing configuration, timeouts and provider errors
        all produce `WriteResult(ref=<data URL>, degraded=True)`.
        """
        try:
            return await self.write_durable(data, meta, budget=budget)
        except Exception as e:
            logger.warning(f"Storage write degraded to inline payload: {e}")
            return WriteResult(
                ref=to_data_url(data, meta.content_type),
                degraded=True,
                error=str(e),
            )

    async def delete(self, ref: str) -> bool:
        """
        Best-effort delete of a stored object.

        Inline refs have nothing to delete. Failures are logged, not raised.
        """
        if is_data_url(ref):
            return False
        try:
            return await self.invoker.invoke(
                lambda: self.storage.delete(ref),
                timeout_ms=self.timeout_ms,
                max_attempts=1,
                label="storage delete",
            )
        except Exception as e:
            logger.warning(f"Best-effort delete failed for {ref[:120]}: {e}")
            return False

    async def ensure_durable(self, refs: list[str], meta: WriteMeta) -> list[str]:
        """
        Re-upload inline data URLs so only durable refs get persisted.

        Refs that cannot be uploaded (or decoded) are kept as they are.
        """
        if not self.storage.is_configured:
            return list(refs)

        out = []
        for ref in refs:
            if not is_data_url(ref):
                out.append(ref)
                continue
            try:
                data, content_type = parse_data_url(ref)
                stored = await self.write_durable(
                    data,
                    WriteMeta(content_type=content_type, prefix=meta.prefix,
                              owner_id=meta.owner_id, public=meta.public),
                )
                out.append(stored.ref)
            except Exception as e:
                logger.warning(f"Keeping inline image; re-upload failed: {e}")
                out.append(ref)
        return out
