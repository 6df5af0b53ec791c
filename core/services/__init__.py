# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================
# ItemService depends on the studio writer, so import it from its module:
#   from core.services.item_service import ItemService
# =============================================================================

from .storage_service import StorageNotConfiguredError, StorageService, StorageUploadError

__all__ = [
    "StorageService",
    "StorageNotConfiguredError",
    "StorageUploadError",
]
