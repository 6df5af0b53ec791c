# =============================================================================
# core/models/asset.py - Upload Ledger Schemas
# =============================================================================
# These models describe the state owned by the UploadCoordinator:
# - RawAsset: one file handed to submit_batch()
# - AssetStatus / AssetRecord: one tracked upload and its lifecycle
# - LedgerSnapshot: immutable view of a batch returned to callers
# - LedgerEvent: pushed to subscribers on every change
#
# Lifecycle (forward only, except an explicit retry):
#
#   pending -> uploading -> committed
#                        -> failed -> uploading (retry)
# =============================================================================

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from lib.errors import InvalidTransitionError


class AssetStatus(str, Enum):
    """
    Possible states for an uploaded asset.

    - pending: accepted, upload not started yet
    - uploading: upload in flight
    - committed: stored durably, `committed_ref` is set
    - failed: every upload attempt failed, `error` is set
    """
    PENDING = "pending"
    UPLOADING = "uploading"
    COMMITTED = "committed"
    FAILED = "failed"


# Allowed transitions; anything else is a programming error
ALLOWED_TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.PENDING: frozenset({AssetStatus.UPLOADING}),
    AssetStatus.UPLOADING: frozenset({AssetStatus.COMMITTED, AssetStatus.FAILED}),
    AssetStatus.FAILED: frozenset({AssetStatus.UPLOADING}),
    AssetStatus.COMMITTED: frozenset(),
}


class RawAsset(BaseModel):
    """A file as received from the client, before upload."""
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str
    data: bytes = Field(..., repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class AssetRecord(BaseModel):
    """
    One tracked upload.

    Example:
        {
            "id": "a3f0...",
            "source_handle": "IMG_0042.jpg",
            "status": "committed",
            "committed_ref": "https://.../uploads/user-1/1700000000-ab12.jpg",
            "attempts": 1
        }
    """

    id: str
    source_handle: str = Field(..., description="Client-side name of the file")
    content_type: str
    size_bytes: int = Field(..., ge=0)
    status: AssetStatus = AssetStatus.PENDING
    committed_ref: str | None = None
    error: str | None = None
    attempts: int = 0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def transition(self, target: AssetStatus) -> None:
        """
        Move to `target`, enforcing the lifecycle.

        Raises:
            InvalidTransitionError: If the move is not allowed
        """
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, target.value)

        self.status = target
        self.updated_at = datetime.now(timezone.utc)
        if target == AssetStatus.UPLOADING:
            self.attempts += 1
            self.error = None


class LedgerSnapshot(BaseModel):
    """
    Immutable view of a batch.

    `records` keeps submission order; `committed_refs` keeps completion order.
    """

    model_config = ConfigDict(frozen=True)

    batch_id: str
    records: tuple[AssetRecord, ...] = ()
    committed_refs: tuple[str, ...] = ()

    @property
    def submitted(self) -> int:
        return len(self.records)

    def count(self, status: AssetStatus) -> int:
        return sum(1 for r in self.records if r.status == status)

    @property
    def committed(self) -> int:
        return self.count(AssetStatus.COMMITTED)

    @property
    def failed(self) -> int:
        return self.count(AssetStatus.FAILED)

    @property
    def uploading(self) -> int:
        return self.count(AssetStatus.UPLOADING) + self.count(AssetStatus.PENDING)

    @property
    def is_quiescent(self) -> bool:
        return self.uploading == 0

    def summary(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "submitted": self.submitted,
            "committed": self.committed,
            "failed": self.failed,
            "uploading": self.uploading,
            "ready": self.is_quiescent,
        }


class LedgerEventKind(str, Enum):
    TRANSITION = "transition"
    REMOVED = "removed"
    QUIESCENT = "quiescent"


class LedgerEvent(BaseModel):
    """
    Pushed to subscribers whenever the ledger changes.

    Example:
        {"kind": "transition", "batch_id": "...", "asset_id": "...",
         "status": "committed", "summary": {"submitted": 3, "committed": 1, ...}}
    """
    kind: LedgerEventKind
    batch_id: str
    asset_id: str | None = None
    status: AssetStatus | None = None
    summary: dict = Field(default_factory=dict)


class BatchResponse(BaseModel):
    """
    Returned by the upload batch endpoints.

    Example:
        {
            "batch_id": "...",
            "submitted": 3, "committed": 2, "failed": 0, "uploading": 1,
            "ready": false,
            "records": [...],
            "committed_refs": ["https://...", "https://..."]
        }
    """
    batch_id: str
    submitted: int
    committed: int
    failed: int
    uploading: int
    ready: bool
    records: list[AssetRecord]
    committed_refs: list[str]

    @classmethod
    def from_snapshot(cls, snapshot: LedgerSnapshot) -> "BatchResponse":
        return cls(
            **snapshot.summary(),
            records=list(snapshot.records),
            committed_refs=list(snapshot.committed_refs),
        )


class HandoffResponse(BaseModel):
    """Committed URLs released to the downstream consumer, in completion order."""
    batch_id: str
    refs: list[str]
