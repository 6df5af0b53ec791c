# =============================================================================
# tests/ - Test Suite
# =============================================================================
# This package contains all tests for the Inventory Studio API:
# - test_resilience.py / test_response_normalizer.py: lib/ building blocks
# - test_storage_writer.py / test_orchestrator.py / test_uploads.py: studio/
# - test_inference.py: OpenAI client, image fetcher, prompts
# - test_item_service.py / test_models.py: core/
# - test_routers.py: API endpoints and WebSocket
#
# Run tests with: pytest
# =============================================================================
