# =============================================================================
# lib/utils.py - Shared Utilities
# =============================================================================
# Common utilities used across the pipeline:
# - UUID normalization for Supabase queries
# - Inline (data URL) encoding used when durable storage is unavailable
# - The base error class every pipeline error derives from
# =============================================================================

import base64
import binascii
from typing import Any
from uuid import UUID


# =============================================================================
# UUID Utilities
# =============================================================================

def normalize_uuid(value: str | UUID) -> str:
    """
    Normalize a UUID to string format.

    Example:
        item_id = normalize_uuid(uuid_obj)  # "550e8400-..."
        item_id = normalize_uuid("550e8400-...")  # "550e8400-..."
    """
    return str(value) if isinstance(value, UUID) else value


# =============================================================================
# Data URL Utilities
# =============================================================================

DATA_URL_PREFIX = "data:"


def is_data_url(ref: str | None) -> bool:
    """Check whether a reference is an inline data URL rather than a stored object."""
    return bool(ref) and ref.startswith(DATA_URL_PREFIX)


def to_data_url(data: bytes, content_type: str = "image/png") -> str:
    """
    Encode raw bytes as a base64 data URL.

    The result is always dereferenceable by a browser, which makes it the
    fallback reference when an object-storage write fails.

    Example:
        to_data_url(b"\\x89PNG...", "image/png")  # "data:image/png;base64,iVBO..."
    """
    encoded = base64.b64encode(data).decode("ascii")
    return f"{DATA_URL_PREFIX}{content_type};base64,{encoded}"


def parse_data_url(ref: str) -> tuple[bytes, str]:
    """
    Decode a base64 data URL into (bytes, content_type).

    Raises:
        ValueError: If the reference is not a base64 data URL
    """
    if not is_data_url(ref) or "," not in ref:
        raise ValueError("Not a data URL")

    header, payload = ref.split(",", 1)
    media = header[len(DATA_URL_PREFIX):]
    if not media.endswith(";base64"):
        raise ValueError("Only base64 data URLs are supported")

    content_type = media[: -len(";base64")] or "application/octet-stream"
    try:
        return base64.b64decode(payload, validate=True), content_type
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 payload: {e}") from e


# =============================================================================
# Base Error Class
# =============================================================================

class ApplicationError(Exception):
    """
    Base error class for application-specific errors.

    Provides actionable error messages following the principle:
    "Errors should tell HOW to fix, not just WHAT failed."

    Attributes:
        code: Error code for categorization
        message: Human-readable error message
        suggestion: Actionable suggestion for fixing the error
        details: Additional context for debugging

    Example:
        class MyServiceError(ApplicationError):
            def __init__(self, message: str, **kwargs):
                super().__init__(message, code="MY_SERVICE_ERROR", **kwargs)
    """

    def __init__(
        self,
        message: str,
        code: str = "APPLICATION_ERROR",
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
            result += f"\n  Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion,
            "details": self.details,
        }
