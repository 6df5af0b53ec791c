# =============================================================================
# app/routers/studio.py - AI Studio Endpoints
# =============================================================================
# Endpoints:
# - POST /studio/generate          images + listing copy (60s ceiling)
# - POST /studio/generate-images   catalogue photos only (60s ceiling)
# - POST /studio/generate-listing  listing copy only (30s ceiling)
# - POST /studio/generate-image    regenerate a single photo
# - POST /studio/apply             persist chosen results onto the item
#
# Every generation endpoint returns the StudioResponse envelope:
#   {success, result | error, partial, duration_ms}
# A partially successful run is still HTTP 200 with partial=true.
# =============================================================================

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.auth import AuthUser, get_current_user
from app.config import settings
from app.dependencies import ItemServiceDep, OrchestratorDep
from core.models.generation import (
    GenerateImageRequest,
    GenerationMode,
    GenerationRequest,
    StudioRequest,
    StudioResponse,
)
from core.models.item import ApplyGenerationRequest, ApplyGenerationResponse, InventoryItem
from studio.prompts import build_item_facts

logger = logging.getLogger(__name__)

router = APIRouter()

# Envelope error code -> HTTP status (anything else is a 500)
_ENVELOPE_STATUS = {
    "AUTH_ERROR": 401,
    "VALIDATION_ERROR": 400,
}


# =============================================================================
# Helper Functions
# =============================================================================

def _select_sources(body: StudioRequest, item: InventoryItem) -> list[str]:
    """Requested refs, else the item's photos; capped by max_count and the per-request limit."""
    refs = body.source_refs or item.photos
    limit = min(body.max_count or len(refs), settings.MAX_IMAGES_PER_REQUEST)
    return refs[:limit]


def _to_generation_request(body: StudioRequest, item: InventoryItem, mode: GenerationMode) -> GenerationRequest:
    return GenerationRequest(
        target_asset_refs=_select_sources(body, item) if mode.wants_images else [],
        mode=mode,
        extra_facts=build_item_facts(item.product_name, item.description, item.product_id, body.extra_facts),
    )


def _envelope(response: StudioResponse) -> StudioResponse | JSONResponse:
    if response.success:
        return response
    code = (response.error or {}).get("code")
    return JSONResponse(
        status_code=_ENVELOPE_STATUS.get(code, 500),
        content=response.model_dump(mode="json"),
    )


async def _generate(
    body: StudioRequest,
    mode: GenerationMode,
    budget_ms: int,
    user: AuthUser,
    orchestrator: OrchestratorDep,
    items: ItemServiceDep,
) -> StudioResponse | JSONResponse:
    item = await items.get_item_for_member(body.item_id, user.user_id)
    request = _to_generation_request(body, item, mode)
    logger.info(f"Studio {mode.value} for item {item.id} by user {user.user_id}")

    response = await orchestrator.respond(
        request,
        credential=user.token,
        owner_id=user.user_id,
        budget_ms=budget_ms,
    )
    return _envelope(response)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/generate", response_model=StudioResponse)
async def generate(
    body: StudioRequest,
    orchestrator: OrchestratorDep,
    items: ItemServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Generate catalogue photos and listing copy for an item.

    `mode` selects images, listing or both. The listing call runs alongside
    the image loop; both share one budget.
    """
    return await _generate(body, body.mode, settings.IMAGE_BATCH_BUDGET_MS, user, orchestrator, items)


@router.post("/generate-images", response_model=StudioResponse)
async def generate_images(
    body: StudioRequest,
    orchestrator: OrchestratorDep,
    items: ItemServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Generate catalogue photos only."""
    return await _generate(body, GenerationMode.IMAGES, settings.IMAGE_BATCH_BUDGET_MS, user, orchestrator, items)


@router.post("/generate-listing", response_model=StudioResponse)
async def generate_listing(
    body: StudioRequest,
    orchestrator: OrchestratorDep,
    items: ItemServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Generate listing copy only (augmented, falling back to quick)."""
    return await _generate(body, GenerationMode.LISTING, settings.LISTING_BUDGET_MS, user, orchestrator, items)


@router.post("/generate-image", response_model=StudioResponse)
async def generate_image(
    body: GenerateImageRequest,
    orchestrator: OrchestratorDep,
    items: ItemServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """Regenerate one catalogue photo from a single source image."""
    studio_body = StudioRequest(item_id=body.item_id, source_refs=[body.source_ref], max_count=1)
    return await _generate(studio_body, GenerationMode.IMAGES, settings.IMAGE_BATCH_BUDGET_MS, user, orchestrator, items)


@router.post("/apply", response_model=ApplyGenerationResponse)
async def apply_generation(
    body: ApplyGenerationRequest,
    items: ItemServiceDep,
    user: AuthUser = Depends(get_current_user),
):
    """
    Persist chosen studio output onto the item.

    Photos are appended, a notes block is added, and the listing fields are
    overwritten only when `update_listing_fields` is true.
    """
    updated = await items.apply_generation(body, user.user_id)
    return ApplyGenerationResponse(success=True, item=updated)
