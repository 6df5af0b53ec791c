# =============================================================================
# studio/orchestrator.py - AI Studio Generation Orchestrator
# =============================================================================
# Drives one studio request end to end under a single TimeBudget:
#
#   received -> (image loop || listing call) -> assembling -> done
#
# Image loop (sequential, in target order):
#   fetch source -> transform -> write (StorageFallbackWriter) -> append
#   An item is only started when the remaining budget can cover it, i.e.
#   remaining > max(min item budget, mean duration of items so far).
#   Items never started are reported as not_attempted, not failed.
#
# Listing call (runs concurrently with the image loop):
#   augmented (web search tool) -> on any failure -> quick (local facts only)
#   The join waits at most for whatever budget the image loop left over.
#
# Nothing here raises for partial failure: the result carries per-item
# outcomes, notices and `partial`. Only AuthError / ValidationError escape.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from app.config import Settings, settings as default_settings
from core.models.generation import (
    DegradedModeNotice,
    GenerationRequest,
    GenerationResult,
    ImageOutcome,
    ImageStatus,
    ListingCopy,
    Source,
    StudioResponse,
    TextMode,
)
from lib.errors import AuthError, ParseError, ValidationError, require_credential
from lib.resilience import ResilientInvoker, RetryPolicy, TimeBudget
from lib.response_normalizer import parse_listing
from lib.utils import ApplicationError
from studio.fetcher import HttpImageFetcher
from studio.inference import WEB_SEARCH, GenerativeClient, OpenAIInferenceClient
from studio.prompts import CATALOGUE_PHOTO_PROMPT, build_listing_prompt
from studio.storage_writer import StorageFallbackWriter, WriteMeta

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class GenerationOrchestrator:
    """
    Sequences image transforms and listing generation under a time budget.

    Example:
        orchestrator = GenerationOrchestrator()
        result = await orchestrator.run(
            GenerationRequest(target_asset_refs=[url1, url2], mode="both"),
            credential=token,
            budget=TimeBudget.start(60_000),
        )
        if result.partial:
            ...  # inspect result.image_outcomes / result.notices
    """

    def __init__(
        self,
        inference: GenerativeClient | None = None,
        writer: StorageFallbackWriter | None = None,
        fetcher: HttpImageFetcher | None = None,
        invoker: ResilientInvoker | None = None,
        config: Settings | None = None,
        min_item_budget_ms: float | None = None,
    ):
        self.config = config or default_settings
        self.inference = inference or OpenAIInferenceClient()
        self.writer = writer or StorageFallbackWriter()
        self.fetcher = fetcher or HttpImageFetcher()
        self.invoker = invoker or ResilientInvoker(RetryPolicy(
            base_delay_ms=self.config.RETRY_BASE_DELAY_MS,
            backoff_factor=self.config.RETRY_BACKOFF_FACTOR,
        ))
        self.min_item_budget_ms = (
            self.config.MIN_IMAGE_ITEM_BUDGET_MS if min_item_budget_ms is None else min_item_budget_ms
        )

    # -------------------------------------------------------------------------
    # Entry Points
    # -------------------------------------------------------------------------

    async def run(
        self,
        request: GenerationRequest,
        credential: str | None,
        *,
        owner_id: str | None = None,
        budget: TimeBudget | None = None,
    ) -> GenerationResult:
        """
        Run the requested parts of the pipeline.

        Args:
            request: Targets, mode and optional item facts
            credential: Bearer token of the caller; checked before any work
            owner_id: Used to namespace stored images
            budget: Deadline for the whole request (defaults to the image batch ceiling)

        Returns:
            GenerationResult, possibly partial

        Raises:
            AuthError: If the credential is missing
            ValidationError: If an image mode has no targets, or too many
        """
        require_credential(credential)
        self._validate(request)
        budget = budget or TimeBudget.start(self.config.IMAGE_BATCH_BUDGET_MS)

        result = GenerationResult()
        logger.info(
            f"Studio run: mode={request.mode.value}, targets={len(request.target_asset_refs)}, "
            f"budget={budget.total_ms:.0f}ms"
        )

        listing_task: asyncio.Task | None = None
        if request.mode.wants_listing:
            listing_task = asyncio.ensure_future(self._generate_listing(request.extra_facts, budget))

        if request.mode.wants_images:
            await self._image_loop(request.target_asset_refs, owner_id, budget, result)

        if listing_task is not None:
            await self._join_listing(listing_task, budget, result)

        result.partial = bool(
            result.notices
            or result.errors
            or any(o.status != ImageStatus.COMPLETED for o in result.image_outcomes)
        )
        logger.info(
            f"Studio run done in {budget.elapsed_ms():.0f}ms: "
            f"{len(result.images)} image(s), text_mode={result.text_mode}, partial={result.partial}"
        )
        return result

    async def respond(
        self,
        request: GenerationRequest,
        credential: str | None,
        *,
        owner_id: str | None = None,
        budget_ms: float | None = None,
    ) -> StudioResponse:
        """
        Run and wrap the outcome in the studio response envelope.

        Fatal preconditions become `success=False` with the error body; any
        partial result is still `success=True`.
        """
        started = time.monotonic()
        budget = TimeBudget.start(budget_ms or self.config.IMAGE_BATCH_BUDGET_MS)

        try:
            result = await self.run(request, credential, owner_id=owner_id, budget=budget)
        except (AuthError, ValidationError) as e:
            logger.info(f"Studio request rejected: {e.code} - {e.message}")
            return StudioResponse(success=False, error=e.to_dict(), duration_ms=_elapsed_ms(started))
        except ApplicationError as e:
            logger.error(f"Studio request failed: {e}")
            return StudioResponse(success=False, error=e.to_dict(), duration_ms=_elapsed_ms(started))

        return StudioResponse(
            success=True,
            result=result,
            partial=result.partial,
            duration_ms=_elapsed_ms(started),
        )

    def _validate(self, request: GenerationRequest) -> None:
        if not request.mode.wants_images:
            return
        refs = [ref for ref in request.target_asset_refs if ref and ref.strip()]
        if not refs:
            raise ValidationError("target_asset_refs", "At least one source image is required")
        if len(refs) != len(request.target_asset_refs):
            raise ValidationError("target_asset_refs", "Source image references cannot be blank")
        if len(refs) > self.config.MAX_IMAGES_PER_REQUEST:
            raise ValidationError(
                "target_asset_refs",
                f"At most {self.config.MAX_IMAGES_PER_REQUEST} images per request",
            )

    # -------------------------------------------------------------------------
    # Image Loop
    # -------------------------------------------------------------------------

    def _item_fits(self, budget: TimeBudget, durations: list[float]) -> bool:
        """Whether the remaining budget can cover one more item."""
        expected = sum(durations) / len(durations) if durations else 0.0
        return budget.remaining_ms() > max(self.min_item_budget_ms, expected)

    async def _image_loop(
        self,
        refs: list[str],
        owner_id: str | None,
        budget: TimeBudget,
        result: GenerationResult,
    ) -> None:
        durations: list[float] = []

        for index, ref in enumerate(refs):
            if not self._item_fits(budget, durations):
                skipped = refs[index:]
                logger.warning(
                    f"Budget too low for another image ({budget.remaining_ms():.0f}ms left); "
                    f"{len(skipped)} not attempted"
                )
                for source_ref in skipped:
                    result.image_outcomes.append(
                        ImageOutcome(source_ref=source_ref, status=ImageStatus.NOT_ATTEMPTED)
                    )
                result.notices.append(DegradedModeNotice(
                    kind="budget",
                    message=f"{len(skipped)} image(s) not attempted: time budget exhausted",
                ))
                return

            started = time.monotonic()
            outcome = await self._process_image(ref, owner_id, budget)
            outcome.duration_ms = _elapsed_ms(started)
            durations.append(outcome.duration_ms)

            result.image_outcomes.append(outcome)
            if outcome.status == ImageStatus.COMPLETED:
                result.images.append(outcome.ref)
                if outcome.degraded:
                    result.notices.append(DegradedModeNotice(
                        kind="inline_storage",
                        message="Storage unavailable; image returned inline",
                        asset_ref=ref,
                    ))
            else:
                result.errors.append(f"Image {index + 1}: {outcome.error}")

    async def _process_image(self, ref: str, owner_id: str | None, budget: TimeBudget) -> ImageOutcome:
        """Fetch, transform and store one image. Failures stay on the outcome."""
        try:
            source = await self.invoker.invoke(
                lambda: self.fetcher.fetch(ref),
                timeout_ms=self.config.IMAGE_FETCH_TIMEOUT_MS,
                max_attempts=self.config.IMAGE_FETCH_ATTEMPTS,
                label="image fetch",
                budget=budget,
            )
            output = await self.invoker.invoke(
                lambda: self.inference.generate(CATALOGUE_PHOTO_PROMPT, image=source),
                timeout_ms=self.config.IMAGE_TRANSFORM_TIMEOUT_MS,
                max_attempts=self.config.IMAGE_TRANSFORM_ATTEMPTS,
                label="image transform",
                budget=budget,
            )
        except AuthError:
            raise
        except Exception as e:
            logger.warning(f"Image failed for {ref[:80]}: {e}")
            return ImageOutcome(source_ref=ref, status=ImageStatus.FAILED, error=str(e))

        if not output.media:
            return ImageOutcome(source_ref=ref, status=ImageStatus.FAILED, error="Model returned no image")

        stored = await self.writer.write(
            output.media[0],
            WriteMeta(content_type="image/png", prefix="ai", owner_id=owner_id),
            budget=budget,
        )
        return ImageOutcome(
            source_ref=ref,
            status=ImageStatus.COMPLETED,
            ref=stored.ref,
            degraded=stored.degraded,
        )

    # -------------------------------------------------------------------------
    # Listing Call
    # -------------------------------------------------------------------------

    async def _listing_attempt(
        self,
        facts: str | None,
        augmented: bool,
        budget: TimeBudget,
    ) -> ListingCopy:
        prompt = build_listing_prompt(facts, augmented=augmented)
        tools = [WEB_SEARCH] if augmented else None

        async def attempt() -> ListingCopy:
            output = await self.inference.generate(prompt, tools=tools)
            # Parsed inside the attempt so unreadable output is retried
            copy = parse_listing(output.text)
            if not copy.has_content():
                raise ParseError("listing has no title or description", output.text)
            copy.sources = _merge_sources(copy.sources, output.grounding_sources)
            return copy

        if augmented:
            timeout_ms = self.config.AUGMENTED_LISTING_TIMEOUT_MS
            attempts = self.config.AUGMENTED_LISTING_ATTEMPTS
        else:
            timeout_ms = self.config.QUICK_LISTING_TIMEOUT_MS
            attempts = self.config.QUICK_LISTING_ATTEMPTS

        return await self.invoker.invoke(
            attempt,
            timeout_ms=timeout_ms,
            max_attempts=attempts,
            label="augmented listing" if augmented else "quick listing",
            budget=budget,
        )

    async def _generate_listing(
        self,
        facts: str | None,
        budget: TimeBudget,
    ) -> tuple[ListingCopy, TextMode, str | None]:
        """
        Augmented first, quick on any failure.

        Returns:
            (copy, text mode that produced it, reason augmented failed or None)
        """
        try:
            copy = await self._listing_attempt(facts, augmented=True, budget=budget)
            return copy, TextMode.AUGMENTED, None
        except AuthError:
            raise
        except Exception as e:
            logger.warning(f"Augmented listing failed, falling back to quick mode: {e}")
            reason = str(e)

        copy = await self._listing_attempt(facts, augmented=False, budget=budget)
        return copy, TextMode.QUICK, reason

    async def _join_listing(
        self,
        task: asyncio.Task,
        budget: TimeBudget,
        result: GenerationResult,
    ) -> None:
        done, _ = await asyncio.wait({task}, timeout=budget.remaining_seconds())

        if not done:
            # Left running; whatever it produces later is dropped
            task.add_done_callback(_drop_listing)
            logger.warning("Listing text not ready within budget; returning without it")
            result.notices.append(DegradedModeNotice(
                kind="listing_skipped",
                message="Listing text was not ready within the time budget",
            ))
            return

        try:
            copy, text_mode, fallback_reason = task.result()
        except AuthError:
            raise
        except Exception as e:
            logger.warning(f"Listing generation failed: {e}")
            result.errors.append(f"Listing: {e}")
            result.notices.append(DegradedModeNotice(
                kind="listing_skipped",
                message=f"Listing text unavailable: {e}",
            ))
            return

        result.title = copy.listing_title
        result.description = copy.listing_description
        result.analysis_text = copy.analysis_text
        result.sources = copy.sources
        result.text_mode = text_mode
        if fallback_reason is not None:
            result.notices.append(DegradedModeNotice(
                kind="quick_text",
                message=f"Augmented listing failed ({fallback_reason}); used quick mode",
            ))


def _drop_listing(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug(f"Discarded late listing failure: {exc}")


def _merge_sources(parsed: list[Source], grounding: list[Source]) -> list[Source]:
    """Parsed sources first, then provider citations not already listed."""
    merged = list(parsed)
    seen: set[Any] = {s.url for s in parsed if s.url}
    for source in grounding:
        if source.url and source.url in seen:
            continue
        seen.add(source.url)
        merged.append(source)
    return merged
