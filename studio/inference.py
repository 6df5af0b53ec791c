# =============================================================================
# studio/inference.py - Generative Inference Collaborator
# =============================================================================
# One call shape for every model invocation the studio makes:
#
#   generate(prompt, image=None, tools=None) -> InferenceOutput
#
# - image given        -> catalogue photo transform (Images edit API)
# - tools=["web_search"] -> augmented listing copy (Responses API + web search)
# - neither            -> quick listing copy (Chat Completions, JSON mode)
#
# Provider failures are wrapped in TransientExternalError so the
# ResilientInvoker retries them like any other transport failure.
# =============================================================================

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from openai import APIError, AsyncOpenAI

from app.config import settings
from core.models.generation import Source
from lib.errors import TransientExternalError

logger = logging.getLogger(__name__)

WEB_SEARCH = "web_search"

# Our tool names -> Responses API tool specs
_TOOL_SPECS = {
    WEB_SEARCH: {"type": "web_search_preview"},
}


@dataclass
class SourceImage:
    """Raw image bytes plus their content type."""
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class InferenceOutput:
    """What a model call produced."""
    text: str = ""
    media: list[bytes] = field(default_factory=list)
    grounding_sources: list[Source] = field(default_factory=list)


class InferenceError(TransientExternalError):
    """Raised when the inference provider fails or returns nothing usable."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message,
            code="INFERENCE_ERROR",
            suggestion="Check OPENAI_API_KEY and the model names, then retry",
            details=details,
        )


class GenerativeClient(ABC):
    """Interface of the generative inference collaborator."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        image: SourceImage | None = None,
        tools: list[str] | None = None,
    ) -> InferenceOutput:
        ...


class OpenAIInferenceClient(GenerativeClient):
    """
    OpenAI-backed generative client.

    Example:
        client = OpenAIInferenceClient()
        out = await client.generate(CATALOGUE_PHOTO_PROMPT, image=SourceImage(data, "image/jpeg"))
        png_bytes = out.media[0]
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        text_model: str | None = None,
        image_model: str | None = None,
        temperature: float | None = None,
    ):
        # max_retries=0: retries are owned by the ResilientInvoker
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)
        self.text_model = text_model or settings.OPENAI_TEXT_MODEL
        self.image_model = image_model or settings.OPENAI_IMAGE_MODEL
        self.temperature = temperature if temperature is not None else settings.LISTING_TEMPERATURE

    async def generate(
        self,
        prompt: str,
        image: SourceImage | None = None,
        tools: list[str] | None = None,
    ) -> InferenceOutput:
        try:
            if image is not None:
                return await self._transform_image(prompt, image)
            if tools:
                return await self._generate_with_tools(prompt, tools)
            return await self._generate_text(prompt)
        except APIError as e:
            raise InferenceError(f"OpenAI API call failed: {e}", details={"type": type(e).__name__})

    # -------------------------------------------------------------------------
    # Image Transform
    # -------------------------------------------------------------------------

    async def _transform_image(self, prompt: str, image: SourceImage) -> InferenceOutput:
        extension = image.mime_type.split("/")[-1] or "png"
        response = await self.client.images.edit(
            model=self.image_model,
            image=(f"source.{extension}", image.data, image.mime_type),
            prompt=prompt,
        )

        media = [
            base64.b64decode(entry.b64_json)
            for entry in (response.data or [])
            if getattr(entry, "b64_json", None)
        ]
        if not media:
            raise InferenceError("Model did not return image data", details={"model": self.image_model})

        logger.debug(f"Image transform returned {len(media)} image(s)")
        return InferenceOutput(media=media)

    # -------------------------------------------------------------------------
    # Listing Copy
    # -------------------------------------------------------------------------

    async def _generate_with_tools(self, prompt: str, tools: list[str]) -> InferenceOutput:
        tool_specs = [_TOOL_SPECS[name] for name in tools if name in _TOOL_SPECS]
        response = await self.client.responses.create(
            model=self.text_model,
            input=prompt,
            tools=tool_specs,
            temperature=self.temperature,
        )

        text = response.output_text or ""
        sources = _extract_citations(response)
        logger.debug(f"Augmented call returned {len(text)} chars, {len(sources)} citations")
        return InferenceOutput(text=text, grounding_sources=sources)

    async def _generate_text(self, prompt: str) -> InferenceOutput:
        response = await self.client.chat.completions.create(
            model=self.text_model,
            temperature=self.temperature,
            response_format={"type": "json_object"},
            messages=[{"role": "user", "content": prompt}],
        )

        text = response.choices[0].message.content or ""
        return InferenceOutput(text=text)


def _extract_citations(response: Any) -> list[Source]:
    """Collect url_citation annotations from a Responses API result."""
    sources: list[Source] = []
    seen: set[str] = set()

    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) != "message":
            continue
        for part in getattr(item, "content", None) or []:
            for annotation in getattr(part, "annotations", None) or []:
                if getattr(annotation, "type", None) != "url_citation":
                    continue
                url = getattr(annotation, "url", None)
                if not url or url in seen:
                    continue
                seen.add(url)
                sources.append(Source(title=getattr(annotation, "title", None), url=url))

    return sources
