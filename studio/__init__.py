# =============================================================================
# studio/ - AI Studio Pipeline
# =============================================================================
# Upload and generation orchestration for inventory photos:
# - uploads.py: UploadCoordinator, the ledger of concurrent uploads
# - orchestrator.py: GenerationOrchestrator, image loop + listing call
# - storage_writer.py: StorageFallbackWriter, durable write or inline data URL
# - inference.py: Generative model client (OpenAI)
# - fetcher.py: Source image fetcher (httpx)
# - prompts.py: Prompt templates
# =============================================================================

from studio.orchestrator import GenerationOrchestrator
from studio.storage_writer import StorageFallbackWriter, WriteMeta, WriteResult
from studio.uploads import UploadCoordinator, UploadRegistry, get_upload_registry

__all__ = [
    "GenerationOrchestrator",
    "StorageFallbackWriter",
    "WriteMeta",
    "WriteResult",
    "UploadCoordinator",
    "UploadRegistry",
    "get_upload_registry",
]
