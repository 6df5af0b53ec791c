# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - asset.py: Upload ledger (records, snapshots, events)
# - generation.py: Studio requests, results and the response envelope
# - item.py: Inventory item slice and the apply request
#
# These models define the "contract" between API and clients.
# =============================================================================

# -----------------------------------------------------------------------------
# Asset Models - Upload ledger
# -----------------------------------------------------------------------------
from .asset import (
    AssetRecord,
    AssetStatus,
    BatchResponse,
    HandoffResponse,
    LedgerEvent,
    LedgerEventKind,
    LedgerSnapshot,
    RawAsset,
)

# -----------------------------------------------------------------------------
# Generation Models - AI studio pipeline
# -----------------------------------------------------------------------------
from .generation import (
    DegradedModeNotice,
    GenerateImageRequest,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    ImageOutcome,
    ImageStatus,
    ListingCopy,
    Source,
    StudioRequest,
    StudioResponse,
    TextMode,
)

# -----------------------------------------------------------------------------
# Item Models - Inventory item store
# -----------------------------------------------------------------------------
from .item import (
    ApplyGenerationRequest,
    ApplyGenerationResponse,
    InventoryItem,
)

__all__ = [
    # Asset
    "AssetRecord",
    "AssetStatus",
    "BatchResponse",
    "HandoffResponse",
    "LedgerEvent",
    "LedgerEventKind",
    "LedgerSnapshot",
    "RawAsset",
    # Generation
    "DegradedModeNotice",
    "GenerateImageRequest",
    "GenerationMode",
    "GenerationRequest",
    "GenerationResult",
    "ImageOutcome",
    "ImageStatus",
    "ListingCopy",
    "Source",
    "StudioRequest",
    "StudioResponse",
    "TextMode",
    # Item
    "ApplyGenerationRequest",
    "ApplyGenerationResponse",
    "InventoryItem",
]
