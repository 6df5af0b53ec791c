# =============================================================================
# core/models/generation.py - AI Studio Generation Schemas
# =============================================================================
# These models define the contract of the generation pipeline:
# - GenerationRequest: what to generate (images, listing copy, or both)
# - GenerationResult: what was produced, including partial-failure metadata
# - ImageOutcome: per-asset result of the image loop
# - ListingCopy: marketplace text parsed from model output
# - DegradedModeNotice: a fallback path was used (not an error)
# - StudioResponse: the envelope every studio endpoint returns
# - StudioRequest / GenerateImageRequest: HTTP bodies of the studio router
#
# A result is "partial" whenever any sub-operation was skipped, degraded
# or failed. Callers never get a hard error for a partially successful run.
# =============================================================================

from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class GenerationMode(str, Enum):
    """Which parts of the studio pipeline to run."""
    IMAGES = "images"
    LISTING = "listing"
    BOTH = "both"

    @property
    def wants_images(self) -> bool:
        return self in (GenerationMode.IMAGES, GenerationMode.BOTH)

    @property
    def wants_listing(self) -> bool:
        return self in (GenerationMode.LISTING, GenerationMode.BOTH)


class TextMode(str, Enum):
    """
    Which listing path produced the text.

    - augmented: model call with web research tools enabled
    - quick: bare model call using only locally supplied facts
    """
    AUGMENTED = "augmented"
    QUICK = "quick"


class ImageStatus(str, Enum):
    """
    Outcome of one target asset in the image loop.

    not_attempted is distinct from failed: the budget ran out before the
    item was started, so nothing was tried.
    """
    COMPLETED = "completed"
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


class Source(BaseModel):
    """A research source cited by the listing generator."""
    title: str | None = None
    url: str | None = None


class ListingCopy(BaseModel):
    """
    Marketplace listing text parsed from model output.

    Every field is optional: missing keys default to empty values instead
    of failing the parse.
    """

    listing_title: str = Field(default="", description="SEO-ready listing title")
    listing_description: str = Field(default="", description="Multi-paragraph listing body")
    analysis_text: str = Field(default="", description="Internal notes: price range and reasoning")
    sources: list[Source] = Field(default_factory=list, description="Research sources")

    @field_validator("listing_title", "listing_description", "analysis_text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("sources", mode="before")
    @classmethod
    def _keep_well_formed_sources(cls, value: Any) -> list[dict[str, Any]]:
        # Models sometimes return strings or nulls in the list; keep only dicts
        if not isinstance(value, list):
            return []
        sources = []
        for entry in value:
            if not isinstance(entry, dict):
                continue
            title = entry.get("title")
            url = entry.get("url") or entry.get("uri")
            if title is None and url is None:
                continue
            sources.append({
                "title": str(title) if title is not None else None,
                "url": str(url) if url is not None else None,
            })
        return sources

    def has_content(self) -> bool:
        return bool(self.listing_title.strip() or self.listing_description.strip())


class DegradedModeNotice(BaseModel):
    """
    A fallback execution path was used.

    Examples:
        {"kind": "inline_storage", "message": "...", "asset_ref": "https://..."}
        {"kind": "quick_text", "message": "Augmented listing failed: ..."}
    """
    kind: str = Field(..., description="inline_storage | quick_text | listing_skipped | budget")
    message: str
    asset_ref: str | None = None


class GenerationRequest(BaseModel):
    """
    Input to the GenerationOrchestrator.

    Example:
        {
            "target_asset_refs": ["https://.../photo1.jpg"],
            "mode": "both",
            "extra_facts": "Signed lower right, 1962"
        }
    """

    target_asset_refs: list[str] = Field(
        default_factory=list,
        description="Source photos to transform, processed in order"
    )

    mode: GenerationMode = Field(
        default=GenerationMode.BOTH,
        description="images | listing | both"
    )

    # Free-form facts used by the listing prompt (item name, description, ids)
    extra_facts: str | None = Field(
        default=None,
        max_length=4000,
        description="Locally known facts about the item"
    )


class ImageOutcome(BaseModel):
    """Per-asset result of the image loop."""
    source_ref: str
    status: ImageStatus
    ref: str | None = Field(default=None, description="Stored (or inline) generated image")
    degraded: bool = Field(default=False, description="True when stored inline instead of durably")
    error: str | None = None
    duration_ms: int | None = None


class GenerationResult(BaseModel):
    """
    Output of the GenerationOrchestrator.

    `images` lists the references of completed images in target order.
    `image_outcomes` keeps every target, including failed and not-attempted.
    """

    images: list[str] = Field(default_factory=list)
    image_outcomes: list[ImageOutcome] = Field(default_factory=list)

    title: str = ""
    description: str = ""
    analysis_text: str = ""
    sources: list[Source] = Field(default_factory=list)

    # None when no listing text was produced (not requested, failed, or out of budget)
    text_mode: TextMode | None = None

    partial: bool = False
    notices: list[DegradedModeNotice] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    def outcomes_with(self, status: ImageStatus) -> list[ImageOutcome]:
        return [o for o in self.image_outcomes if o.status == status]


class StudioResponse(BaseModel):
    """
    Envelope returned by every studio entry point.

    Example:
        {"success": true, "result": {...}, "partial": false, "duration_ms": 8421}
    """
    success: bool
    result: GenerationResult | None = None
    error: dict[str, Any] | None = None
    partial: bool = False
    duration_ms: int = 0


class StudioRequest(BaseModel):
    """
    Body of the studio generation endpoints.

    When `source_refs` is empty the item's own photos are used.

    Example:
        {
            "item_id": "550e8400-...",
            "source_refs": ["https://.../photo1.jpg"],
            "max_count": 2,
            "extra_facts": "Signed lower right, 1962"
        }
    """

    item_id: UUID = Field(..., description="Inventory item to generate for")
    source_refs: list[str] = Field(default_factory=list)
    mode: GenerationMode = GenerationMode.BOTH
    max_count: int | None = Field(default=None, ge=1)
    extra_facts: str | None = Field(default=None, max_length=2000)


class GenerateImageRequest(BaseModel):
    """Body of the single-image regenerate endpoint."""
    item_id: UUID = Field(..., description="Inventory item to generate for")
    source_ref: str = Field(..., min_length=1)
