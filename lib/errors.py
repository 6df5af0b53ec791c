# =============================================================================
# lib/errors.py - Pipeline Error Taxonomy
# =============================================================================
# Every failure the upload/generation pipeline can raise, grouped by how it
# propagates:
#
#   Fatal preconditions (abort the whole operation before any work):
#     - AuthError: missing or invalid bearer credential
#     - ValidationError: malformed or missing required input
#
#   Isolated failures (recorded per item / sub-operation, never abort siblings):
#     - TransientExternalError: network, provider or timeout failure
#     - OperationTimeoutError: a single attempt exceeded its deadline
#     - ParseError: model output unintelligible after every strategy
#
#   Programming / state errors:
#     - InvalidTransitionError: an asset record moved backwards
#     - UploadsInFlightError: hand-off requested while uploads are running
#
# Degraded-mode notices are NOT errors; see core/models/generation.py.
# =============================================================================

from typing import Any

from lib.utils import ApplicationError


class AuthError(ApplicationError):
    """Raised when the bearer credential is missing or rejected."""

    def __init__(self, message: str = "Authorization credential required", **kwargs: Any):
        kwargs.setdefault("suggestion", "Send an 'Authorization: Bearer <token>' header from a signed-in session")
        super().__init__(message, code="AUTH_ERROR", **kwargs)


class ValidationError(ApplicationError):
    """
    Raised when required input is missing or malformed.

    Carries the offending field so the client can highlight it.
    """

    def __init__(self, field: str, message: str, **kwargs: Any):
        details = kwargs.pop("details", None) or {}
        details.setdefault("field", field)
        super().__init__(message, code="VALIDATION_ERROR", details=details, **kwargs)
        self.field = field


class TransientExternalError(ApplicationError):
    """
    Raised when a single external call fails (network, provider, storage).

    Retried by the ResilientInvoker; after retries it becomes a per-item
    failure and never aborts sibling operations.
    """

    def __init__(self, message: str, code: str = "TRANSIENT_EXTERNAL_ERROR", **kwargs: Any):
        kwargs.setdefault("suggestion", "Try again later; the external service may be busy")
        super().__init__(message, code=code, **kwargs)


class OperationTimeoutError(TransientExternalError):
    """Raised when an attempt does not settle within its timeout."""

    def __init__(self, label: str, timeout_ms: float):
        super().__init__(
            f"{label} timed out after {int(timeout_ms)}ms",
            code="OPERATION_TIMEOUT",
            details={"label": label, "timeout_ms": int(timeout_ms)},
        )
        self.label = label
        self.timeout_ms = timeout_ms


class BudgetExhaustedError(TransientExternalError):
    """Raised when an operation cannot start because its time budget is spent."""

    def __init__(self, label: str):
        super().__init__(
            f"{label} skipped: time budget exhausted",
            code="BUDGET_EXHAUSTED",
            suggestion="Request fewer images or retry the remaining ones separately",
            details={"label": label},
        )
        self.label = label


class ParseError(ApplicationError):
    """
    Raised when model output cannot be read as a JSON object.

    The first 300 characters of the offending text are kept for diagnostics.
    """

    SNIPPET_LENGTH = 300

    def __init__(self, reason: str, raw_text: str):
        snippet = (raw_text or "")[: self.SNIPPET_LENGTH]
        super().__init__(
            f"Could not parse model output: {reason}",
            code="PARSE_ERROR",
            suggestion="The model did not return valid JSON. Retry the generation.",
            details={"reason": reason, "snippet": snippet},
        )
        self.reason = reason
        self.snippet = snippet


class InvalidTransitionError(ApplicationError):
    """Raised when an asset record would move to a status it cannot reach."""

    def __init__(self, asset_id: str, current: str, target: str):
        super().__init__(
            f"Asset {asset_id} cannot move from {current} to {target}",
            code="INVALID_TRANSITION",
            details={"asset_id": asset_id, "from": current, "to": target},
        )


class UploadsInFlightError(ApplicationError):
    """Raised when a batch is handed off while some uploads are still running."""

    def __init__(self, uploading: int):
        super().__init__(
            f"{uploading} upload(s) still in progress",
            code="UPLOADS_IN_FLIGHT",
            suggestion="Wait for every photo to finish uploading before saving",
            details={"uploading": uploading},
        )
        self.uploading = uploading


FATAL_ERRORS = (AuthError, ValidationError)


def require_credential(credential: str | None) -> str:
    """
    Fail fast when the bearer credential is missing.

    Called at the top of every pipeline entry point, before any network call.

    Raises:
        AuthError: If the credential is None or blank
    """
    if credential is None or not str(credential).strip():
        raise AuthError()
    return str(credential).strip()
