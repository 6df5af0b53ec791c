# =============================================================================
# tests/test_storage_writer.py - StorageFallbackWriter Tests
# =============================================================================
# This module contains tests for:
# - Durable writes and fresh object names per attempt
# - Inline data-URL fallback (never raises)
# - The strict write_durable() path used by uploads
# - Best-effort delete and ensure_durable()
# =============================================================================

import asyncio
from unittest.mock import patch

import pytest

from core.services.storage_service import StorageNotConfiguredError, StorageService
from lib.errors import TransientExternalError
from lib.utils import parse_data_url, to_data_url
from studio.storage_writer import StorageFallbackWriter, WriteMeta
from tests.fakes import FakeStorage


class TestWrite:
    """Test the never-raising write path."""

    def test_durable_write_returns_storage_url(self, writer, fake_storage):
        result = asyncio.run(writer.write(b"png-bytes", WriteMeta(owner_id="user-1")))

        assert not result.degraded
        assert result.ref.startswith("https://cdn.test/ai/user-1/")
        assert result.ref.endswith(".png")
        assert len(fake_storage.puts) == 1

    def test_failing_storage_degrades_to_inline(self, fast_invoker):
        storage = FakeStorage(fail_always=True)
        writer = StorageFallbackWriter(storage=storage, invoker=fast_invoker, timeout_ms=1_000, max_attempts=2)

        result = asyncio.run(writer.write(b"png-bytes", WriteMeta(content_type="image/png")))

        assert result.degraded
        assert result.error
        assert parse_data_url(result.ref) == (b"png-bytes", "image/png")
        assert storage.calls == 2

    def test_unconfigured_storage_degrades_without_calls(self, fast_invoker):
        storage = FakeStorage(configured=False)
        writer = StorageFallbackWriter(storage=storage, invoker=fast_invoker)

        result = asyncio.run(writer.write(b"data", WriteMeta()))

        assert result.degraded
        assert storage.calls == 0

    def test_slow_storage_times_out_to_inline(self, fast_invoker):
        storage = FakeStorage(delay=0.3)
        writer = StorageFallbackWriter(storage=storage, invoker=fast_invoker, timeout_ms=20, max_attempts=1)

        result = asyncio.run(writer.write(b"data", WriteMeta()))

        assert result.degraded
        assert "timed out" in result.error

    def test_each_attempt_uses_a_fresh_name(self, fast_invoker):
        storage = FakeStorage(fail_times=1)
        writer = StorageFallbackWriter(storage=storage, invoker=fast_invoker, timeout_ms=1_000, max_attempts=2)
        names = []
        original = writer.object_name

        def recording_name(meta):
            name = original(meta)
            names.append(name)
            return name

        with patch.object(writer, "object_name", side_effect=recording_name):
            result = asyncio.run(writer.write(b"data", WriteMeta(owner_id="u")))

        assert not result.degraded
        assert len(names) == 2
        assert names[0] != names[1]


class TestWriteDurable:
    """Test the strict path."""

    def test_raises_after_retries(self, fast_invoker):
        writer = StorageFallbackWriter(storage=FakeStorage(fail_always=True), invoker=fast_invoker)

        with pytest.raises(TransientExternalError):
            asyncio.run(writer.write_durable(b"data", WriteMeta(), max_attempts=3))

    def test_raises_when_not_configured(self, fast_invoker):
        writer = StorageFallbackWriter(storage=FakeStorage(configured=False), invoker=fast_invoker)

        with pytest.raises(StorageNotConfiguredError):
            asyncio.run(writer.write_durable(b"data", WriteMeta()))

    def test_object_name_layout(self):
        name = StorageFallbackWriter.object_name(WriteMeta(prefix="uploads", owner_id="u1", content_type="image/jpeg"))
        prefix, owner, filename = name.split("/")

        assert (prefix, owner) == ("uploads", "u1")
        assert filename.endswith(".jpg")


class TestDeleteAndEnsureDurable:
    """Test best-effort delete and re-upload of inline refs."""

    def test_delete_skips_inline_refs(self, writer, fake_storage):
        assert asyncio.run(writer.delete(to_data_url(b"x"))) is False
        assert fake_storage.deleted == []

    def test_delete_stored_ref(self, writer, fake_storage):
        assert asyncio.run(writer.delete("https://cdn.test/uploads/u/1.jpg")) is True
        assert fake_storage.deleted == ["https://cdn.test/uploads/u/1.jpg"]

    def test_delete_never_raises(self, fast_invoker):
        storage = FakeStorage()

        async def broken_delete(url_or_path):
            raise TransientExternalError("delete failed")

        storage.delete = broken_delete
        writer = StorageFallbackWriter(storage=storage, invoker=fast_invoker)

        assert asyncio.run(writer.delete("https://cdn.test/x.png")) is False

    def test_ensure_durable_uploads_inline_only(self, writer, fake_storage):
        refs = ["https://cdn.test/existing.png", to_data_url(b"new", "image/png")]

        out = asyncio.run(writer.ensure_durable(refs, WriteMeta(prefix="ai/applied", owner_id="u")))

        assert out[0] == "https://cdn.test/existing.png"
        assert out[1].startswith("https://cdn.test/ai/applied/u/")
        assert len(fake_storage.puts) == 1

    def test_ensure_durable_keeps_ref_on_failure(self, fast_invoker):
        writer = StorageFallbackWriter(storage=FakeStorage(fail_always=True), invoker=fast_invoker)
        inline = to_data_url(b"new")

        out = asyncio.run(writer.ensure_durable([inline, "data:broken"], WriteMeta()))

        assert out == [inline, "data:broken"]


class TestStorageService:
    """Test URL helpers of the Supabase storage collaborator."""

    def test_path_from_public_url(self):
        service = StorageService(bucket="inventory-photos")
        url = "https://x.supabase.co/storage/v1/object/public/inventory-photos/ai/u1/a%20b.png"
        assert service.path_from_url(url) == "ai/u1/a b.png"

    def test_plain_path_unchanged(self):
        assert StorageService(bucket="b").path_from_url("ai/u1/x.png") == "ai/u1/x.png"

    def test_put_uploads_in_thread(self):
        service = StorageService(bucket="inventory-photos")

        with patch("core.services.storage_service.SupabaseClient") as mock_client:
            bucket = mock_client.get_client.return_value.storage.from_.return_value
            bucket.get_public_url.return_value = "https://public/ai/x.png"
            with patch.object(StorageService, "is_configured", True):
                stored = asyncio.run(service.put("ai/x.png", b"data", content_type="image/png"))

        assert stored == {"url": "https://public/ai/x.png", "path": "ai/x.png"}
        bucket.upload.assert_called_once()
        assert bucket.upload.call_args.kwargs["file_options"]["upsert"] == "false"
