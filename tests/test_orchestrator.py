# =============================================================================
# tests/test_orchestrator.py - GenerationOrchestrator Tests
# =============================================================================
# This module contains tests for:
# - Budget-aware sequential image loop (not_attempted vs failed)
# - Augmented -> quick listing fallback
# - Listing join bounded by the leftover budget
# - Degraded storage notices and the `partial` flag
# - Fatal preconditions and the response envelope
#
# Timings are scaled down (hundreds of milliseconds) so the suite stays fast;
# the ratios between budget, item duration and minimum item budget are what
# the loop reacts to.
# =============================================================================

import asyncio
import time

import pytest

from core.models.generation import GenerationMode, GenerationRequest, ImageStatus, TextMode
from lib.errors import AuthError, TransientExternalError, ValidationError
from lib.resilience import TimeBudget
from studio.orchestrator import GenerationOrchestrator, _merge_sources
from studio.storage_writer import StorageFallbackWriter
from tests.fakes import FakeFetcher, FakeInference, FakeStorage, source


def make_orchestrator(fast_settings, fast_invoker, inference, writer, fetcher=None, **overrides):
    config = fast_settings.model_copy(update=overrides) if overrides else fast_settings
    return GenerationOrchestrator(
        inference=inference,
        writer=writer,
        fetcher=fetcher or FakeFetcher(),
        invoker=fast_invoker,
        config=config,
    )


def run(orchestrator, request, credential="token", budget_ms=2_000, owner_id="user-1"):
    async def scenario():
        return await orchestrator.run(
            request, credential, owner_id=owner_id, budget=TimeBudget.start(budget_ms)
        )
    return asyncio.run(scenario())


# =============================================================================
# Image Loop Tests
# =============================================================================

class TestImageLoop:
    """Test the sequential, budget-aware image loop."""

    def test_all_images_complete_in_order(self, fast_settings, fast_invoker, writer):
        inference = FakeInference()
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(orchestrator, GenerationRequest(target_asset_refs=["a", "b"], mode=GenerationMode.IMAGES))

        assert [o.source_ref for o in result.image_outcomes] == ["a", "b"]
        assert all(o.status == ImageStatus.COMPLETED for o in result.image_outcomes)
        assert len(result.images) == 2
        assert all(ref.startswith("https://cdn.test/ai/user-1/") for ref in result.images)
        assert not result.partial
        assert result.text_mode is None
        assert inference.calls == ["image", "image"]

    def test_budget_stops_loop_with_not_attempted(self, fast_settings, fast_invoker, writer):
        # Each transform takes ~120ms; a 300ms budget fits two of five
        inference = FakeInference(image_delay=0.12)
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(
            orchestrator,
            GenerationRequest(target_asset_refs=["1", "2", "3", "4", "5"], mode=GenerationMode.IMAGES),
            budget_ms=300,
        )

        statuses = [o.status for o in result.image_outcomes]
        assert statuses == [
            ImageStatus.COMPLETED,
            ImageStatus.COMPLETED,
            ImageStatus.NOT_ATTEMPTED,
            ImageStatus.NOT_ATTEMPTED,
            ImageStatus.NOT_ATTEMPTED,
        ]
        assert len(result.images) == 2
        assert result.partial
        assert [n.kind for n in result.notices] == ["budget"]
        assert inference.calls.count("image") == 2
        # not_attempted is not an error
        assert result.errors == []

    def test_failed_item_does_not_stop_siblings(self, fast_settings, fast_invoker, writer):
        fetcher = FakeFetcher(failing={"b"})
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer, fetcher)

        result = run(orchestrator, GenerationRequest(target_asset_refs=["a", "b", "c"], mode=GenerationMode.IMAGES))

        assert [o.status for o in result.image_outcomes] == [
            ImageStatus.COMPLETED,
            ImageStatus.FAILED,
            ImageStatus.COMPLETED,
        ]
        assert "cannot fetch b" in result.image_outcomes[1].error
        assert result.errors[0].startswith("Image 2:")
        assert result.partial

    def test_transform_failure_is_recorded(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(image_error=TransientExternalError("model overloaded"))
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(orchestrator, GenerationRequest(target_asset_refs=["a"], mode=GenerationMode.IMAGES))

        assert result.image_outcomes[0].status == ImageStatus.FAILED
        assert result.images == []
        # IMAGE_TRANSFORM_ATTEMPTS attempts were made
        assert inference.calls.count("image") == fast_settings.IMAGE_TRANSFORM_ATTEMPTS

    def test_degraded_storage_returns_inline_image(self, fast_settings, fast_invoker):
        writer = StorageFallbackWriter(storage=FakeStorage(fail_always=True), invoker=fast_invoker, max_attempts=1)
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer)

        result = run(orchestrator, GenerationRequest(target_asset_refs=["a"], mode=GenerationMode.IMAGES))

        outcome = result.image_outcomes[0]
        assert outcome.status == ImageStatus.COMPLETED
        assert outcome.degraded
        assert result.images[0].startswith("data:image/png;base64,")
        assert [n.kind for n in result.notices] == ["inline_storage"]
        assert result.notices[0].asset_ref == "a"
        assert result.partial


# =============================================================================
# Listing Tests
# =============================================================================

class TestListing:
    """Test augmented/quick listing generation and the budgeted join."""

    def test_listing_only_uses_augmented(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(grounding=[
            source("Auction record", "https://auction.test/1"),
            source("Museum page", "https://museum.test/2"),
        ])
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(orchestrator, GenerationRequest(mode=GenerationMode.LISTING, extra_facts="Oil on canvas"))

        assert result.text_mode == TextMode.AUGMENTED
        assert result.title == "Harbour at dusk, oil on canvas"
        assert [s.url for s in result.sources] == ["https://auction.test/1", "https://museum.test/2"]
        assert result.images == []
        assert not result.partial
        assert inference.calls == ["augmented"]

    def test_augmented_timeout_falls_back_to_quick(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(augmented_delay=0.5)
        orchestrator = make_orchestrator(
            fast_settings, fast_invoker, inference, writer, AUGMENTED_LISTING_TIMEOUT_MS=100
        )

        result = run(orchestrator, GenerationRequest(mode=GenerationMode.LISTING))

        assert result.text_mode == TextMode.QUICK
        assert result.title == "Quick title"
        assert result.description
        assert [n.kind for n in result.notices] == ["quick_text"]
        assert "timed out" in result.notices[0].message
        assert result.partial

    def test_unparseable_augmented_output_falls_back(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(augmented_text="Sorry, I could not find anything.")
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(orchestrator, GenerationRequest(mode=GenerationMode.LISTING))

        assert result.text_mode == TextMode.QUICK
        assert inference.calls == ["augmented", "quick"]

    def test_both_listing_paths_failing(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(
            augmented_error=TransientExternalError("search down"),
            quick_error=TransientExternalError("model down"),
        )
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(orchestrator, GenerationRequest(mode=GenerationMode.LISTING))

        assert result.text_mode is None
        assert result.title == ""
        assert any(e.startswith("Listing:") for e in result.errors)
        assert [n.kind for n in result.notices] == ["listing_skipped"]
        assert result.partial

    def test_listing_not_ready_is_skipped(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(augmented_delay=1.0, quick_delay=1.0)
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        result = run(
            orchestrator,
            GenerationRequest(target_asset_refs=["a"], mode=GenerationMode.BOTH),
            budget_ms=300,
        )

        assert result.image_outcomes[0].status == ImageStatus.COMPLETED
        assert result.text_mode is None
        assert "listing_skipped" in [n.kind for n in result.notices]
        assert result.partial

    def test_listing_runs_alongside_images(self, fast_settings, fast_invoker, writer):
        inference = FakeInference(image_delay=0.2, augmented_delay=0.3)
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer)

        started = time.monotonic()
        result = run(orchestrator, GenerationRequest(target_asset_refs=["a", "b"], mode=GenerationMode.BOTH))
        elapsed = time.monotonic() - started

        assert result.text_mode == TextMode.AUGMENTED
        assert len(result.images) == 2
        # Sequential execution would take 0.2 + 0.2 + 0.3 seconds
        assert elapsed < 0.65


class TestMergeSources:
    """Test combining parsed sources with provider citations."""

    def test_dedupes_by_url_keeping_parsed_first(self):
        parsed = [source("Parsed", "https://a.test")]
        grounding = [source("Cited", "https://a.test"), source("Other", "https://b.test")]

        merged = _merge_sources(parsed, grounding)

        assert [(s.title, s.url) for s in merged] == [
            ("Parsed", "https://a.test"),
            ("Other", "https://b.test"),
        ]


# =============================================================================
# End-to-End Scenario
# =============================================================================

class TestEndToEnd:
    """Three photos, a budget that fits two, listing copy in parallel."""

    def test_partial_run_with_listing(self, fast_settings, fast_invoker, writer, fake_storage):
        inference = FakeInference(image_delay=0.2)
        orchestrator = make_orchestrator(
            fast_settings, fast_invoker, inference, writer, MIN_IMAGE_ITEM_BUDGET_MS=100
        )

        result = run(
            orchestrator,
            GenerationRequest(
                target_asset_refs=["p1", "p2", "p3"],
                mode=GenerationMode.BOTH,
                extra_facts="Harbour scene, signed 1962",
            ),
            budget_ms=500,
        )

        assert [o.status for o in result.image_outcomes] == [
            ImageStatus.COMPLETED,
            ImageStatus.COMPLETED,
            ImageStatus.NOT_ATTEMPTED,
        ]
        assert len(result.images) == 2
        assert len(fake_storage.puts) == 2
        assert result.text_mode == TextMode.AUGMENTED
        assert result.title
        assert result.partial


# =============================================================================
# Precondition & Envelope Tests
# =============================================================================

class TestPreconditions:
    """Fatal errors abort before any external call."""

    def test_missing_credential_raises_before_any_call(self, fast_settings, fast_invoker, writer):
        inference = FakeInference()
        fetcher = FakeFetcher()
        orchestrator = make_orchestrator(fast_settings, fast_invoker, inference, writer, fetcher)

        with pytest.raises(AuthError):
            run(orchestrator, GenerationRequest(target_asset_refs=["a"]), credential=None)

        assert inference.calls == []
        assert fetcher.fetched == []

    @pytest.mark.parametrize("refs", [[], ["a", "  "]])
    def test_image_mode_requires_targets(self, fast_settings, fast_invoker, writer, refs):
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer)

        with pytest.raises(ValidationError) as exc_info:
            run(orchestrator, GenerationRequest(target_asset_refs=refs, mode=GenerationMode.IMAGES))
        assert exc_info.value.field == "target_asset_refs"

    def test_too_many_targets(self, fast_settings, fast_invoker, writer):
        orchestrator = make_orchestrator(
            fast_settings, fast_invoker, FakeInference(), writer, MAX_IMAGES_PER_REQUEST=2
        )

        with pytest.raises(ValidationError):
            run(orchestrator, GenerationRequest(target_asset_refs=["a", "b", "c"]))


class TestRespond:
    """Test the success/error envelope."""

    def test_success_envelope(self, fast_settings, fast_invoker, writer):
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer)

        response = asyncio.run(orchestrator.respond(
            GenerationRequest(target_asset_refs=["a"]), "token", owner_id="u", budget_ms=2_000
        ))

        assert response.success
        assert response.error is None
        assert response.partial is False
        assert response.result.text_mode == TextMode.AUGMENTED
        assert response.duration_ms >= 0

    def test_auth_error_envelope(self, fast_settings, fast_invoker, writer):
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer)

        response = asyncio.run(orchestrator.respond(GenerationRequest(target_asset_refs=["a"]), None))

        assert not response.success
        assert response.result is None
        assert response.error["code"] == "AUTH_ERROR"

    def test_validation_error_envelope(self, fast_settings, fast_invoker, writer):
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer)

        response = asyncio.run(orchestrator.respond(
            GenerationRequest(mode=GenerationMode.IMAGES), "token"
        ))

        assert not response.success
        assert response.error["code"] == "VALIDATION_ERROR"
        assert response.error["details"]["field"] == "target_asset_refs"

    def test_partial_run_is_still_success(self, fast_settings, fast_invoker, writer):
        fetcher = FakeFetcher(failing={"a"})
        orchestrator = make_orchestrator(fast_settings, fast_invoker, FakeInference(), writer, fetcher)

        response = asyncio.run(orchestrator.respond(
            GenerationRequest(target_asset_refs=["a"], mode=GenerationMode.IMAGES), "token", budget_ms=2_000
        ))

        assert response.success
        assert response.partial
