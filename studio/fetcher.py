# =============================================================================
# studio/fetcher.py - Source Image Fetcher
# =============================================================================
# Loads the bytes of a target asset before it is transformed. Accepts:
# - http(s) URLs of committed photos (fetched with httpx)
# - inline data URLs (decoded locally, no network call)
# =============================================================================

from __future__ import annotations

import logging

import httpx

from lib.errors import TransientExternalError, ValidationError
from lib.utils import is_data_url, parse_data_url
from studio.inference import SourceImage

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"


class ImageFetchError(TransientExternalError):
    """Raised when a source image cannot be downloaded."""

    def __init__(self, ref: str, error: str):
        super().__init__(
            f"Failed to fetch image: {error}",
            code="IMAGE_FETCH_ERROR",
            details={"ref": ref[:200], "error": error},
        )


class HttpImageFetcher:
    """
    Fetch source images over HTTP.

    A single httpx.AsyncClient is reused across calls; pass one in to share
    a connection pool (or a mock transport in tests).
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    async def fetch(self, ref: str) -> SourceImage:
        """
        Load the bytes behind a reference.

        Raises:
            ValidationError: If the reference is neither http(s) nor a data URL
            ImageFetchError: If the download fails
        """
        if is_data_url(ref):
            try:
                data, content_type = parse_data_url(ref)
            except ValueError as e:
                raise ValidationError("source_refs", f"Invalid inline image: {e}")
            return SourceImage(data=data, mime_type=content_type)

        if not ref.startswith(("http://", "https://")):
            raise ValidationError("source_refs", f"Unsupported image reference: {ref[:80]}")

        try:
            response = await self._get_client().get(ref)
        except httpx.HTTPError as e:
            raise ImageFetchError(ref, str(e) or type(e).__name__)

        if response.status_code != 200:
            raise ImageFetchError(ref, f"HTTP {response.status_code}")

        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE).split(";")[0].strip()
        logger.debug(f"Fetched {len(response.content)} bytes ({content_type})")
        return SourceImage(data=response.content, mime_type=content_type or DEFAULT_CONTENT_TYPE)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
