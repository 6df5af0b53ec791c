# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Provides fast settings (short delays) and in-memory collaborators
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

import pytest

from app.config import settings
from lib.resilience import ResilientInvoker, RetryPolicy
from studio.storage_writer import StorageFallbackWriter
from tests.fakes import FakeFetcher, FakeInference, FakeStorage


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def fast_settings():
    """Settings with millisecond-scale delays so retries don't slow tests down."""
    return settings.model_copy(update={
        "RETRY_BASE_DELAY_MS": 5,
        "RETRY_BACKOFF_FACTOR": 2.0,
        "IMAGE_FETCH_TIMEOUT_MS": 1_000,
        "IMAGE_TRANSFORM_TIMEOUT_MS": 1_000,
        "AUGMENTED_LISTING_TIMEOUT_MS": 1_000,
        "QUICK_LISTING_TIMEOUT_MS": 1_000,
        "STORAGE_WRITE_TIMEOUT_MS": 1_000,
        "UPLOAD_TIMEOUT_MS": 1_000,
        "MIN_IMAGE_ITEM_BUDGET_MS": 50,
    })


@pytest.fixture
def fast_invoker():
    return ResilientInvoker(RetryPolicy(max_attempts=3, base_delay_ms=5, backoff_factor=2.0))


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def writer(fake_storage, fast_invoker):
    return StorageFallbackWriter(storage=fake_storage, invoker=fast_invoker, timeout_ms=1_000, max_attempts=1)


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def credential():
    return "test-bearer-token"
