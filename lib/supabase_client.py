# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides a typed wrapper for the Supabase operations the AI
# studio needs from the item store. It implements the singleton pattern to
# reuse a single client connection and provides specialized methods for:
# - Inventory items (read the facts/photos, apply generated results)
# - Project membership (who may run the studio on an item)
#
# Row-level permissions and the relational schema are owned by the
# database; this wrapper only issues the queries.
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   item = SupabaseClient.fetch_item(item_id, columns="id, project_id, photos")
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import create_client, Client

from app.config import settings
from lib.utils import normalize_uuid

# Set up logging for this module
logger = logging.getLogger(__name__)

# PostgREST code returned by .single() when no row matches
NO_ROWS_CODE = "PGRST116"

ITEMS_TABLE = "inventory_items"
MEMBERS_TABLE = "project_members"


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Provides actionable error messages following the principle:
    "Errors should tell HOW to fix, not just WHAT failed."
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class SupabaseClient:
    """
    Typed wrapper for Supabase database operations.

    Implements singleton pattern - one client instance is shared across
    the application. All methods are class methods for easy access without
    instantiation.

    Example:
        item = SupabaseClient.fetch_item("550e8400-...")
        role = SupabaseClient.fetch_member_role(item["project_id"], user_id)
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS), so
        callers must check membership themselves.

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached client (used by tests)."""
        cls._instance = None

    # -------------------------------------------------------------------------
    # Inventory Items
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_item(
        cls,
        item_id: str | UUID,
        columns: str = "id, project_id, product_name, description, product_id, photos",
    ) -> dict[str, Any] | None:
        """
        Fetch an inventory item by ID.

        Args:
            item_id: The item UUID
            columns: Comma-separated column list to select

        Returns:
            Item dict, or None if not found

        Raises:
            SupabaseClientError: If query fails
        """
        client = cls.get_client()
        item_id_str = normalize_uuid(item_id)

        try:
            response = (
                client.table(ITEMS_TABLE)
                .select(columns)
                .eq("id", item_id_str)
                .single()
                .execute()
            )
            return response.data

        except Exception as e:
            if NO_ROWS_CODE in str(e):
                return None
            raise SupabaseClientError(
                message=f"Failed to fetch item: {e}",
                code="FETCH_ITEM_FAILED",
                suggestion="Check that the item_id exists and inventory_items is accessible",
                details={"item_id": item_id_str}
            )

    @classmethod
    def update_item(
        cls,
        item_id: str | UUID,
        project_id: str | UUID,
        payload: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Update an inventory item, scoped to its project.

        Returns:
            The updated row, or None if nothing matched

        Raises:
            SupabaseClientError: If the update fails
        """
        client = cls.get_client()
        item_id_str = normalize_uuid(item_id)

        try:
            response = (
                client.table(ITEMS_TABLE)
                .update(payload)
                .eq("id", item_id_str)
                .eq("project_id", normalize_uuid(project_id))
                .execute()
            )
            rows = response.data or []
            logger.info(f"Updated item {item_id_str} ({', '.join(sorted(payload))})")
            return rows[0] if rows else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to update item: {e}",
                code="UPDATE_ITEM_FAILED",
                suggestion="Retry the apply; no partial update was made",
                details={"item_id": item_id_str}
            )

    # -------------------------------------------------------------------------
    # Project Membership
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_member_role(
        cls,
        project_id: str | UUID,
        user_id: str | UUID,
        roles: tuple[str, ...] = ("owner", "manager", "member"),
    ) -> str | None:
        """
        Fetch the user's role in a project, limited to the given roles.

        Returns:
            The role name, or None when the user is not a member with one
            of those roles

        Raises:
            SupabaseClientError: If query fails
        """
        client = cls.get_client()
        project_id_str = normalize_uuid(project_id)

        try:
            response = (
                client.table(MEMBERS_TABLE)
                .select("role")
                .eq("project_id", project_id_str)
                .eq("user_id", normalize_uuid(user_id))
                .in_("role", list(roles))
                .maybe_single()
                .execute()
            )
            # maybe_single() returns None (not an empty response) on no rows
            data = response.data if response is not None else None
            return data.get("role") if data else None

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch membership: {e}",
                code="FETCH_MEMBERSHIP_FAILED",
                suggestion="Check that project_members is accessible",
                details={"project_id": project_id_str}
            )
