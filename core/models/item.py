# =============================================================================
# core/models/item.py - Inventory Item Schemas
# =============================================================================
# The slice of an inventory item the AI studio reads and writes:
# - InventoryItem: facts used by the listing prompt, current photos/notes
# - ApplyGenerationRequest: persist studio output onto an item
# - ApplyGenerationResponse: the updated item
#
# The full item schema is owned by the database; unknown columns are ignored.
# =============================================================================

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .generation import Source


class InventoryItem(BaseModel):
    """
    An inventory item as stored in `inventory_items`.

    Example:
        {
            "id": "550e8400-...",
            "project_id": "660e8400-...",
            "product_name": "Oil on canvas, harbour scene",
            "photos": ["https://.../photo1.jpg"]
        }
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    project_id: str
    product_name: str | None = None
    description: str | None = None
    product_id: str | None = None
    photos: list[str] = Field(default_factory=list)
    notes: str | None = None
    listing_title: str | None = None
    listing_description: str | None = None

    @field_validator("photos", mode="before")
    @classmethod
    def _photos_as_list(cls, value: Any) -> list[str]:
        # Legacy rows store NULL or a non-array here
        if not isinstance(value, list):
            return []
        return [str(p) for p in value if p]


class ApplyGenerationRequest(BaseModel):
    """
    Schema for persisting studio output onto an item.

    Example:
        {
            "item_id": "550e8400-...",
            "image_urls": ["https://.../ai/u1/1700000000-ab12.png"],
            "listing_title": "Signed 1962 harbour oil painting",
            "update_listing_fields": true
        }
    """

    item_id: UUID = Field(..., description="Inventory item to update")
    image_urls: list[str] = Field(default_factory=list)
    listing_title: str | None = None
    listing_description: str | None = None
    analysis_text: str | None = None
    sources: list[Source] = Field(default_factory=list)

    # When false, listing text only lands in the notes block
    update_listing_fields: bool = False


class ApplyGenerationResponse(BaseModel):
    """Returned by POST /studio/apply."""
    success: bool = True
    item: dict[str, Any] | None = None
