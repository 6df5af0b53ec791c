# =============================================================================
# app/exceptions.py - Custom Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
# Errors should tell HOW to fix, not just WHAT failed.
#
# Two families reach these handlers:
# - StudioException: HTTP-level errors raised by routes and the item store
#   (carry their own status code)
# - ApplicationError: pipeline errors from lib/errors.py (status derived
#   from the error class)
# =============================================================================

import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from lib.errors import (
    AuthError,
    InvalidTransitionError,
    ParseError,
    TransientExternalError,
    UploadsInFlightError,
    ValidationError,
)
from lib.utils import ApplicationError

logger = logging.getLogger(__name__)


class StudioException(Exception):
    """
    Base exception for the Inventory Studio API.

    All HTTP-level exceptions inherit from this class.
    Provides structured error responses with actionable suggestions.
    """

    def __init__(
        self,
        message: str,
        code: str = "STUDIO_ERROR",
        status_code: int = 500,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.suggestion = suggestion
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Item Store Exceptions
# =============================================================================

class ItemNotFoundError(StudioException):
    """Raised when an inventory item ID doesn't exist."""

    def __init__(self, item_id: str):
        super().__init__(
            message=f"Item not found: {item_id}",
            code="ITEM_NOT_FOUND",
            status_code=404,
            suggestion="Check that the item_id is correct and the item hasn't been deleted",
            details={"item_id": item_id}
        )


class ProjectAccessDeniedError(StudioException):
    """Raised when the user is not a member of the item's project."""

    def __init__(self, project_id: str):
        super().__init__(
            message="No access to this project",
            code="PROJECT_ACCESS_DENIED",
            status_code=403,
            suggestion="Ask a project owner or manager to invite you",
            details={"project_id": project_id}
        )


class ItemUpdateError(StudioException):
    """Raised when applying generated results to an item fails."""

    def __init__(self, item_id: str, error: str):
        super().__init__(
            message=f"Failed to update item: {error}",
            code="ITEM_UPDATE_FAILED",
            status_code=500,
            suggestion="Try again later; the item was not modified",
            details={"item_id": item_id, "error": error}
        )


# =============================================================================
# Upload Batch Exceptions
# =============================================================================

class BatchNotFoundError(StudioException):
    """Raised when an upload batch ID doesn't exist (or isn't yours)."""

    def __init__(self, batch_id: str):
        super().__init__(
            message=f"Upload batch not found: {batch_id}",
            code="BATCH_NOT_FOUND",
            status_code=404,
            suggestion="Start a new batch with POST /api/v1/uploads/batches",
            details={"batch_id": batch_id}
        )


class AssetNotFoundError(StudioException):
    """Raised when an asset ID is not part of the batch."""

    def __init__(self, batch_id: str, asset_id: str):
        super().__init__(
            message=f"Asset not found in batch: {asset_id}",
            code="ASSET_NOT_FOUND",
            status_code=404,
            suggestion="Fetch the batch to see its current assets",
            details={"batch_id": batch_id, "asset_id": asset_id}
        )


# =============================================================================
# Pipeline Error Mapping
# =============================================================================

# Checked in order; first matching class wins
_STATUS_BY_ERROR: list[tuple[type[ApplicationError], int]] = [
    (AuthError, 401),
    (ValidationError, 400),
    (UploadsInFlightError, 409),
    (InvalidTransitionError, 409),
    (ParseError, 502),
    (TransientExternalError, 503),
]


def status_for(exc: ApplicationError) -> int:
    """HTTP status code for a pipeline error."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def application_error_body(exc: ApplicationError) -> dict[str, Any]:
    """Same body shape as StudioException.to_dict()."""
    result = {
        "detail": exc.message,
        "code": exc.code,
    }
    if exc.suggestion:
        result["suggestion"] = exc.suggestion
    if exc.details:
        result["details"] = exc.details
    return result


# =============================================================================
# Exception Handlers
# =============================================================================

async def studio_exception_handler(
    request: Request,
    exc: StudioException
) -> JSONResponse:
    """
    Convert StudioException to JSON response.

    Returns structured error with:
    - detail: Human-readable message
    - code: Machine-readable error code
    - suggestion: How to fix (if available)
    - details: Additional context
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def application_error_handler(
    request: Request,
    exc: ApplicationError
) -> JSONResponse:
    """Convert a pipeline ApplicationError to JSON response."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content=application_error_body(exc)
    )
