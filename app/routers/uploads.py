# =============================================================================
# app/routers/uploads.py - Photo Upload Batches
# =============================================================================
# Endpoints:
# - POST   /uploads/batches                                start a batch (multipart)
# - GET    /uploads/batches/{batch_id}                     current ledger
# - POST   /uploads/batches/{batch_id}/assets/{id}/retry   re-upload a failed photo
# - DELETE /uploads/batches/{batch_id}/assets/{id}         remove a photo
# - POST   /uploads/batches/{batch_id}/handoff             release committed URLs
#
# Hand-off ends a batch. Batches never handed off are evicted once they have
# sat quiescent for UPLOAD_BATCH_IDLE_TTL_S.
#
# Uploads run in the background after POST returns. Progress is pushed over
# the WebSocket at /ws/uploads/{batch_id}; GET is the polling alternative.
# =============================================================================

import logging
import mimetypes
from typing import Annotated

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile

from app.auth import AuthUser, get_current_user
from app.dependencies import RegistryDep
from app.exceptions import AssetNotFoundError, BatchNotFoundError
from core.models.asset import BatchResponse, HandoffResponse, RawAsset
from lib.errors import OperationTimeoutError
from studio.uploads import UploadCoordinator, UploadRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def _get_batch(registry: UploadRegistry, batch_id: str, user: AuthUser) -> UploadCoordinator:
    coordinator = registry.get(batch_id, owner_id=user.user_id)
    if coordinator is None:
        raise BatchNotFoundError(batch_id)
    return coordinator


async def _to_raw_asset(file: UploadFile) -> RawAsset:
    filename = (file.filename or "photo")[:255]
    content_type = file.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return RawAsset(filename=filename, content_type=content_type, data=await file.read())


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/batches", response_model=BatchResponse, status_code=202)
async def create_batch(
    files: Annotated[list[UploadFile], File(description="Photos to upload")],
    registry: RegistryDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Start uploading a batch of photos.

    Every photo is validated before anything is uploaded; one bad file
    rejects the whole request. Returns immediately with every record in
    `uploading`.
    """
    raw_assets = [await _to_raw_asset(f) for f in files]

    coordinator = registry.create(owner_id=user.user_id)
    try:
        snapshot = await coordinator.submit_batch(raw_assets, credential=user.token)
    except Exception:
        registry.discard(coordinator.batch_id)
        raise

    logger.info(f"User {user.user_id} started batch {coordinator.batch_id} ({len(raw_assets)} file(s))")
    return BatchResponse.from_snapshot(snapshot)


@router.get("/batches/{batch_id}", response_model=BatchResponse)
async def get_batch(
    batch_id: Annotated[str, Path(description="Upload batch ID")],
    registry: RegistryDep,
    user: AuthUser = Depends(get_current_user),
):
    """Get the current state of a batch."""
    coordinator = _get_batch(registry, batch_id, user)
    return BatchResponse.from_snapshot(coordinator.snapshot())


@router.post("/batches/{batch_id}/assets/{asset_id}/retry", response_model=BatchResponse)
async def retry_asset(
    batch_id: Annotated[str, Path(description="Upload batch ID")],
    asset_id: Annotated[str, Path(description="Asset ID")],
    registry: RegistryDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Re-upload a failed photo. Other photos in the batch are untouched.

    Returns 409 if the photo is not in the failed state.
    """
    coordinator = _get_batch(registry, batch_id, user)
    if asset_id not in {r.id for r in coordinator.snapshot().records}:
        raise AssetNotFoundError(batch_id, asset_id)
    snapshot = await coordinator.retry(asset_id)
    return BatchResponse.from_snapshot(snapshot)


@router.delete("/batches/{batch_id}/assets/{asset_id}", response_model=BatchResponse)
async def remove_asset(
    batch_id: Annotated[str, Path(description="Upload batch ID")],
    asset_id: Annotated[str, Path(description="Asset ID")],
    registry: RegistryDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Remove a photo from the batch.

    A committed photo is also deleted from storage; an upload still in
    flight is abandoned.
    """
    coordinator = _get_batch(registry, batch_id, user)
    if not await coordinator.remove(asset_id):
        raise AssetNotFoundError(batch_id, asset_id)
    return BatchResponse.from_snapshot(coordinator.snapshot())


@router.post("/batches/{batch_id}/handoff", response_model=HandoffResponse)
async def handoff_batch(
    batch_id: Annotated[str, Path(description="Upload batch ID")],
    registry: RegistryDep,
    wait: Annotated[float, Query(ge=0, le=60, description="Seconds to wait for running uploads")] = 0,
    user: AuthUser = Depends(get_current_user),
):
    """
    Release the committed photo URLs (in completion order).

    Returns 409 while any upload is still running, unless they all finish
    within `wait` seconds. A successful hand-off is final: the batch is
    released and later requests for it return 404.
    """
    coordinator = _get_batch(registry, batch_id, user)
    if wait and not coordinator.is_ready_to_submit():
        try:
            await coordinator.wait_until_quiescent(timeout=wait)
        except OperationTimeoutError:
            logger.info(f"Batch {batch_id} still uploading after {wait}s")

    refs = coordinator.committed_refs()
    registry.discard(batch_id)
    logger.info(f"Batch {batch_id} handed off with {len(refs)} photo(s)")
    return HandoffResponse(batch_id=batch_id, refs=refs)
