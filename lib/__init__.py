# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - errors.py: Pipeline error taxonomy (auth, validation, transient, parse)
# - resilience.py: Timeout + bounded retry combinator, time budgets
# - response_normalizer.py: Lenient JSON reading of model output
# - supabase_client.py: Typed Supabase wrapper for the item store
# - utils.py: Shared utilities (base error, UUIDs, data URLs)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.errors import (
    AuthError,
    FATAL_ERRORS,
    OperationTimeoutError,
    ParseError,
    TransientExternalError,
    UploadsInFlightError,
    ValidationError,
    require_credential,
)
from lib.resilience import ResilientInvoker, RetryPolicy, TimeBudget
from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import ApplicationError, normalize_uuid

__all__ = [
    # Errors
    "AuthError",
    "FATAL_ERRORS",
    "OperationTimeoutError",
    "ParseError",
    "TransientExternalError",
    "UploadsInFlightError",
    "ValidationError",
    "require_credential",
    # Resilience
    "ResilientInvoker",
    "RetryPolicy",
    "TimeBudget",
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    # Utils
    "ApplicationError",
    "normalize_uuid",
]
