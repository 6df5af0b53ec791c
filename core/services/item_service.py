# =============================================================================
# core/services/item_service.py - Inventory Item Business Logic
# =============================================================================
# The item store as seen by the AI studio:
# - get_item: load an item (facts for the listing prompt, current photos)
# - require_member: check the caller may work on the item's project
# - apply_generation: persist studio output (photos, notes, listing fields)
#
# The generation pipeline never writes here; persisting a result is an
# explicit, separate call made by the client.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from app.exceptions import ItemNotFoundError, ItemUpdateError, ProjectAccessDeniedError
from core.models.generation import Source
from core.models.item import ApplyGenerationRequest, InventoryItem
from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import normalize_uuid
from studio.storage_writer import StorageFallbackWriter, WriteMeta

logger = logging.getLogger(__name__)

ITEM_FACT_COLUMNS = "id, project_id, product_name, description, product_id, photos"
ITEM_APPLY_COLUMNS = "id, project_id, photos, notes, listing_title, listing_description"
STUDIO_ROLES = ("owner", "manager", "member")


def build_notes_append(
    listing_title: str | None = None,
    listing_description: str | None = None,
    analysis_text: str | None = None,
    sources: list[Source] | None = None,
    now: datetime | None = None,
) -> str:
    """
    Format studio output as a timestamped block appended to the item notes.

    Example:
        ---
        [2024-01-15 10:30] AI analysis
        Title: Signed harbour oil painting
        Sources:
        - Auction record (https://...)
    """
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M")
    lines = ["---", f"[{stamp}] AI analysis"]

    if listing_title:
        lines.append(f"Title: {listing_title.strip()}")
    if listing_description:
        lines.append(f"Description:\n{listing_description.strip()}")
    if analysis_text:
        lines.append(analysis_text.strip())

    if sources:
        lines.append("Sources:")
        for source in sources:
            url = (source.url or "").strip()
            title = (source.title or "").strip() or url or "Source"
            lines.append(f"- {title} ({url})" if url else f"- {title}")

    return "\n".join(lines)


class ItemService:
    """
    Service for the inventory items the studio works on.

    Supabase calls are synchronous, so each one runs in a worker thread.

    Example:
        service = ItemService()
        item = await service.get_item(item_id)
        await service.require_member(item.project_id, user.id)
    """

    def __init__(self, writer: StorageFallbackWriter | None = None):
        self.writer = writer or StorageFallbackWriter()

    async def get_item(self, item_id: str | UUID, columns: str = ITEM_FACT_COLUMNS) -> InventoryItem:
        """
        Load an item.

        Raises:
            ItemNotFoundError: If the item doesn't exist
        """
        item_id = normalize_uuid(item_id)
        row = await asyncio.to_thread(SupabaseClient.fetch_item, item_id, columns)
        if not row:
            raise ItemNotFoundError(item_id)
        return InventoryItem.model_validate(row)

    async def require_member(self, project_id: str, user_id: str) -> str:
        """
        Check the user is an owner, manager or member of the project.

        Returns:
            The user's role

        Raises:
            ProjectAccessDeniedError: If the user has no such role
        """
        role = await asyncio.to_thread(SupabaseClient.fetch_member_role, project_id, user_id, STUDIO_ROLES)
        if role is None:
            logger.info(f"User {user_id} denied access to project {project_id}")
            raise ProjectAccessDeniedError(project_id)
        return role

    async def get_item_for_member(
        self,
        item_id: str | UUID,
        user_id: str,
        columns: str = ITEM_FACT_COLUMNS,
    ) -> InventoryItem:
        """get_item() followed by require_member() on the item's project."""
        item = await self.get_item(item_id, columns)
        await self.require_member(item.project_id, user_id)
        return item

    async def apply_generation(self, request: ApplyGenerationRequest, user_id: str) -> dict[str, Any] | None:
        """
        Persist studio output onto an item.

        - Inline (data URL) images are uploaded first; ones that still fail
          are kept inline rather than dropped
        - New photos are appended after the existing ones
        - A notes block is appended; listing fields are only overwritten when
          `update_listing_fields` is set

        Returns:
            The updated item row

        Raises:
            ItemNotFoundError: If the item doesn't exist
            ProjectAccessDeniedError: If the user is not a project member
            ItemUpdateError: If the update fails
        """
        item = await self.get_item_for_member(request.item_id, user_id, ITEM_APPLY_COLUMNS)

        uploaded = await self.writer.ensure_durable(
            request.image_urls,
            WriteMeta(content_type="image/png", prefix="ai/applied", owner_id=user_id),
        )

        notes_append = build_notes_append(
            request.listing_title,
            request.listing_description,
            request.analysis_text,
            request.sources,
        )
        payload: dict[str, Any] = {
            "photos": item.photos + uploaded,
            "notes": f"{item.notes}\n\n{notes_append}" if item.notes else notes_append,
        }
        if request.update_listing_fields:
            if request.listing_title is not None:
                payload["listing_title"] = request.listing_title
            if request.listing_description is not None:
                payload["listing_description"] = request.listing_description

        try:
            updated = await asyncio.to_thread(SupabaseClient.update_item, item.id, item.project_id, payload)
        except SupabaseClientError as e:
            logger.error(f"Apply failed for item {item.id}: {e}")
            raise ItemUpdateError(item.id, e.message)

        logger.info(f"Applied studio output to item {item.id}: +{len(uploaded)} photo(s)")
        return updated
