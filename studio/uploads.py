# =============================================================================
# studio/uploads.py - Upload Coordinator
# =============================================================================
# Owns the ledger of one upload batch: which photos are in flight, which are
# committed (and where), which failed. The ledger is mutated ONLY by the
# completion handlers below; everything else reads immutable snapshots or
# subscribes to LedgerEvents.
#
# Guarantees:
# - committed + failed == submitted once no upload is running
# - a record never moves backwards, except failed -> uploading on retry()
# - committed_refs() refuses to hand off while anything is uploading
#
# Each launch of an upload carries a token. A completion whose token no
# longer matches (record removed, or retried since) is discarded.
# =============================================================================

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import time
import uuid
from typing import Any, Callable

from app.config import Settings, settings as default_settings
from core.models.asset import (
    AssetRecord,
    AssetStatus,
    LedgerEvent,
    LedgerEventKind,
    LedgerSnapshot,
    RawAsset,
)
from lib.errors import OperationTimeoutError, UploadsInFlightError, ValidationError, require_credential
from studio.storage_writer import StorageFallbackWriter, WriteMeta

logger = logging.getLogger(__name__)

LedgerListener = Callable[[LedgerEvent], Any]


class UploadCoordinator:
    """
    Concurrent uploads for one batch, tracked in a single ledger.

    Example:
        coordinator = UploadCoordinator(owner_id=user.id)
        await coordinator.submit_batch(raw_assets, credential=token)
        snapshot = await coordinator.wait_until_quiescent(timeout=60)
        refs = coordinator.committed_refs()
    """

    def __init__(
        self,
        writer: StorageFallbackWriter | None = None,
        batch_id: str | None = None,
        owner_id: str | None = None,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        self.writer = writer or StorageFallbackWriter()
        self.batch_id = batch_id or str(uuid.uuid4())
        self.owner_id = owner_id

        self._records: dict[str, AssetRecord] = {}     # submission order
        self._committed: list[str] = []                # completion order
        self._payloads: dict[str, RawAsset] = {}       # kept until committed, for retry
        self._tokens: dict[str, int] = {}
        self._token_counter = itertools.count(1)
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[LedgerListener] = []
        self._quiescent = asyncio.Event()
        self._quiescent.set()
        self.last_activity = time.monotonic()

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    def _validate(self, raw_assets: list[RawAsset]) -> None:
        if not raw_assets:
            raise ValidationError("files", "At least one photo is required")

        total = len(self._records) + len(raw_assets)
        if total > self.config.MAX_BATCH_SIZE:
            raise ValidationError("files", f"At most {self.config.MAX_BATCH_SIZE} photos per batch")

        allowed = self.config.allowed_image_types_list
        max_bytes = self.config.max_upload_size_bytes
        for raw in raw_assets:
            if raw.size_bytes == 0:
                raise ValidationError("files", f"{raw.filename} is empty")
            if raw.size_bytes > max_bytes:
                raise ValidationError(
                    "files",
                    f"{raw.filename} exceeds the {self.config.MAX_UPLOAD_SIZE_MB}MB limit",
                )
            if raw.content_type not in allowed:
                raise ValidationError(
                    "files",
                    f"{raw.filename} has unsupported type {raw.content_type}. Allowed: {', '.join(allowed)}",
                )

    async def submit_batch(self, raw_assets: list[RawAsset], credential: str | None) -> LedgerSnapshot:
        """
        Accept a batch of files and start uploading all of them concurrently.

        Validation happens before any record is created: credential first,
        then the batch, then each file.

        Returns:
            Snapshot taken right after every upload was launched

        Raises:
            AuthError: If the credential is missing
            ValidationError: If the batch is empty or a file is invalid
        """
        require_credential(credential)
        self._validate(raw_assets)

        for raw in raw_assets:
            record = AssetRecord(
                id=str(uuid.uuid4()),
                source_handle=raw.filename,
                content_type=raw.content_type,
                size_bytes=raw.size_bytes,
            )
            self._records[record.id] = record
            self._payloads[record.id] = raw
            self._launch(record)

        logger.info(f"Batch {self.batch_id}: launched {len(raw_assets)} upload(s)")
        return self.snapshot()

    async def retry(self, asset_id: str) -> LedgerSnapshot:
        """
        Re-upload one failed asset. Siblings are untouched.

        Raises:
            ValidationError: If the asset is unknown
            InvalidTransitionError: If the asset is not in the failed state
        """
        record = self._records.get(asset_id)
        if record is None:
            raise ValidationError("asset_id", f"Unknown asset: {asset_id}")

        self._launch(record)
        logger.info(f"Batch {self.batch_id}: retrying {record.source_handle} (attempt {record.attempts})")
        return self.snapshot()

    def _launch(self, record: AssetRecord) -> None:
        record.transition(AssetStatus.UPLOADING)
        self._touch()
        token = next(self._token_counter)
        self._tokens[record.id] = token
        self._quiescent.clear()
        self._emit(LedgerEventKind.TRANSITION, record)

        task = asyncio.ensure_future(self._upload(record.id, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _upload(self, asset_id: str, token: int) -> None:
        raw = self._payloads.get(asset_id)
        if raw is None:
            return

        try:
            stored = await self.writer.write_durable(
                raw.data,
                WriteMeta(content_type=raw.content_type, prefix="uploads", owner_id=self.owner_id),
                timeout_ms=self.config.UPLOAD_TIMEOUT_MS,
                max_attempts=self.config.UPLOAD_ATTEMPTS,
            )
        except Exception as e:
            self._complete(asset_id, token, error=str(e) or type(e).__name__)
            return

        self._complete(asset_id, token, ref=stored.ref)

    # -------------------------------------------------------------------------
    # Completion (the only place the ledger changes after launch)
    # -------------------------------------------------------------------------

    def _complete(self, asset_id: str, token: int, ref: str | None = None, error: str | None = None) -> None:
        record = self._records.get(asset_id)
        if record is None or self._tokens.get(asset_id) != token:
            logger.debug(f"Batch {self.batch_id}: discarded late completion for {asset_id}")
            if ref is not None:
                self._schedule_delete(ref)
            return

        self._touch()
        if ref is not None:
            record.transition(AssetStatus.COMMITTED)
            record.committed_ref = ref
            self._committed.append(asset_id)
            self._payloads.pop(asset_id, None)
            logger.info(f"Batch {self.batch_id}: committed {record.source_handle}")
        else:
            record.transition(AssetStatus.FAILED)
            record.error = error
            logger.warning(f"Batch {self.batch_id}: upload failed for {record.source_handle}: {error}")

        self._emit(LedgerEventKind.TRANSITION, record)
        self._check_quiescent()

    def _schedule_delete(self, ref: str) -> None:
        # The object landed after its record went away; nothing references it
        task = asyncio.ensure_future(self.writer.delete(ref))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _check_quiescent(self) -> None:
        if self._uploading_count() == 0 and not self._quiescent.is_set():
            self._quiescent.set()
            snapshot = self.snapshot()
            logger.info(
                f"Batch {self.batch_id} quiescent: {snapshot.committed} committed, {snapshot.failed} failed"
            )
            self._emit(LedgerEventKind.QUIESCENT)

    # -------------------------------------------------------------------------
    # Removal
    # -------------------------------------------------------------------------

    async def remove(self, asset_id: str) -> bool:
        """
        Drop an asset from the batch.

        Committed assets are also deleted from storage (best effort). An
        upload still in flight is abandoned; its completion is discarded.

        Returns:
            False if the asset was unknown
        """
        record = self._records.pop(asset_id, None)
        if record is None:
            return False

        self._touch()
        self._tokens.pop(asset_id, None)
        self._payloads.pop(asset_id, None)

        if record.status == AssetStatus.COMMITTED:
            self._committed.remove(asset_id)
            if record.committed_ref:
                await self.writer.delete(record.committed_ref)

        logger.info(f"Batch {self.batch_id}: removed {record.source_handle} ({record.status.value})")
        self._emit(LedgerEventKind.REMOVED, record)
        self._check_quiescent()
        return True

    # -------------------------------------------------------------------------
    # Readers
    # -------------------------------------------------------------------------

    def _touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_seconds(self) -> float:
        """Seconds since the ledger last changed; 0 while anything is uploading."""
        if not self.is_ready_to_submit():
            return 0.0
        return time.monotonic() - self.last_activity

    def _uploading_count(self) -> int:
        return sum(
            1 for r in self._records.values()
            if r.status in (AssetStatus.PENDING, AssetStatus.UPLOADING)
        )

    def is_ready_to_submit(self) -> bool:
        """False while any upload is running."""
        return self._uploading_count() == 0

    def committed_refs(self) -> list[str]:
        """
        Hand committed URLs downstream, in completion order.

        Raises:
            UploadsInFlightError: If any upload is still running
        """
        uploading = self._uploading_count()
        if uploading:
            raise UploadsInFlightError(uploading)
        return [self._records[asset_id].committed_ref for asset_id in self._committed]

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            batch_id=self.batch_id,
            records=tuple(r.model_copy() for r in self._records.values()),
            committed_refs=tuple(self._records[a].committed_ref for a in self._committed),
        )

    async def wait_until_quiescent(self, timeout: float | None = None) -> LedgerSnapshot:
        """
        Wait until no upload is running.

        Raises:
            OperationTimeoutError: If uploads are still running after `timeout` seconds
        """
        try:
            await asyncio.wait_for(self._quiescent.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(f"batch {self.batch_id} uploads", (timeout or 0) * 1000) from None
        return self.snapshot()

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, listener: LedgerListener) -> Callable[[], None]:
        """
        Register a listener for LedgerEvents. Async listeners are scheduled.

        Returns:
            A callable that unsubscribes the listener
        """
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: LedgerListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: LedgerEventKind, record: AssetRecord | None = None) -> None:
        if not self._listeners:
            return

        event = LedgerEvent(
            kind=kind,
            batch_id=self.batch_id,
            asset_id=record.id if record else None,
            status=record.status if record else None,
            summary=self.snapshot().summary(),
        )
        for listener in list(self._listeners):
            try:
                outcome = listener(event)
                if inspect.isawaitable(outcome):
                    task = asyncio.ensure_future(outcome)
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
            except Exception as e:
                # A broken listener must not corrupt the ledger
                logger.warning(f"Ledger listener failed: {e}")


# =============================================================================
# Batch Registry
# =============================================================================

class UploadRegistry:
    """
    In-process registry of active batches, keyed by batch id.

    Batches belong to the user who created them; lookups by anyone else
    behave as if the batch did not exist.

    A batch leaves the registry when it is handed off (discard), or when it
    has been quiescent for UPLOAD_BATCH_IDLE_TTL_S (sweep, run on create).
    Either way its unsent file bytes go with it.
    """

    def __init__(self, writer: StorageFallbackWriter | None = None, config: Settings | None = None):
        self.config = config or default_settings
        self._writer = writer
        self._batches: dict[str, UploadCoordinator] = {}

    def create(self, owner_id: str) -> UploadCoordinator:
        self.sweep()
        if self._writer is None:
            self._writer = StorageFallbackWriter()
        coordinator = UploadCoordinator(writer=self._writer, owner_id=owner_id, config=self.config)
        self._batches[coordinator.batch_id] = coordinator
        return coordinator

    def sweep(self, max_idle_s: float | None = None) -> int:
        """
        Evict quiescent batches idle for longer than `max_idle_s`.

        Returns:
            Number of batches evicted
        """
        if max_idle_s is None:
            max_idle_s = self.config.UPLOAD_BATCH_IDLE_TTL_S

        stale = [
            batch_id for batch_id, coordinator in self._batches.items()
            if coordinator.is_ready_to_submit() and coordinator.idle_seconds() >= max_idle_s
        ]
        for batch_id in stale:
            self.discard(batch_id)

        if stale:
            logger.info(f"Evicted {len(stale)} idle upload batch(es)")
        return len(stale)

    def get(self, batch_id: str, owner_id: str | None = None) -> UploadCoordinator | None:
        coordinator = self._batches.get(batch_id)
        if coordinator is None:
            return None
        if owner_id is not None and coordinator.owner_id != owner_id:
            return None
        return coordinator

    def discard(self, batch_id: str) -> None:
        self._batches.pop(batch_id, None)

    def __len__(self) -> int:
        return len(self._batches)


_registry: UploadRegistry | None = None


def get_upload_registry() -> UploadRegistry:
    """Get the process-wide batch registry."""
    global _registry
    if _registry is None:
        _registry = UploadRegistry()
    return _registry
