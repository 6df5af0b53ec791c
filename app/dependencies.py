# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends(), and replaced with
# fakes in tests via app.dependency_overrides.
# =============================================================================

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.services.item_service import ItemService
from studio.orchestrator import GenerationOrchestrator
from studio.storage_writer import StorageFallbackWriter
from studio.uploads import UploadRegistry, get_upload_registry


@lru_cache
def get_storage_writer() -> StorageFallbackWriter:
    """Shared writer (one storage client, one retry policy)."""
    return StorageFallbackWriter()


@lru_cache
def get_orchestrator() -> GenerationOrchestrator:
    """Shared orchestrator; it holds no per-request state."""
    return GenerationOrchestrator(writer=get_storage_writer())


def get_item_service() -> ItemService:
    return ItemService(writer=get_storage_writer())


def get_registry() -> UploadRegistry:
    return get_upload_registry()


# Type aliases for dependency injection
OrchestratorDep = Annotated[GenerationOrchestrator, Depends(get_orchestrator)]
ItemServiceDep = Annotated[ItemService, Depends(get_item_service)]
RegistryDep = Annotated[UploadRegistry, Depends(get_registry)]
