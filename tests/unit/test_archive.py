"""Unit tests for archive assembly and delayed cleanup."""

import asyncio
import io
import zipfile
from unittest import mock

import httpx
import pytest
from botocore.exceptions import EndpointConnectionError

from image_upscaler.core.archive import ArchiveService, CleanupManager, build_zip
from image_upscaler.core.exceptions import ArchiveEntryUnresolvable
from image_upscaler.core.models import ProcessingOutcome
from image_upscaler.storage.s3 import S3ArtifactStore


def read_zip(data):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


def outcome(name, key=None, url=None):
    return ProcessingOutcome(
        success=True,
        original_name=f"{name}.jpg",
        processed_name=name,
        artifact_key=key,
        download_url=url if url is not None else (f"/artifacts/{key}" if key else None),
    )


class TestBuildZip:
    def test_entries_are_deflated(self):
        data = build_zip([("a.png", b"a" * 1000)])
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            info = archive.getinfo("a.png")
            assert info.compress_type == zipfile.ZIP_DEFLATED
            assert info.compress_size < info.file_size

    def test_empty_archive_is_valid(self):
        assert read_zip(build_zip([])) == {}


class TestArchiveService:
    """Tests for ArchiveService."""

    async def test_archive_uses_processed_names(self, archive_service, fake_store):
        await fake_store.put("k1.png", b"one")
        await fake_store.put("k2.png", b"two")

        data = await archive_service.create_archive(
            [outcome("product_1", "k1.png"), outcome("product_2", "k2.png")]
        )

        assert read_zip(data) == {"product_1.png": b"one", "product_2.png": b"two"}

    async def test_unresolvable_entry_is_skipped(self, archive_service, fake_store, fake_logger):
        await fake_store.put("k1.png", b"one")

        data = await archive_service.create_archive(
            [outcome("image_1", "k1.png"), outcome("image_2", "deleted.png")]
        )

        assert list(read_zip(data)) == ["image_1.png"]
        assert any("Skipping archive entry" in m for m in fake_logger.messages("WARNING"))

    async def test_unreachable_s3_entry_is_skipped(self, fake_logger, unreachable_http):
        client = mock.Mock()

        def get_object(Bucket, Key):
            if Key == "down.png":
                raise EndpointConnectionError(endpoint_url="http://127.0.0.1:1")
            return {"Body": io.BytesIO(b"one")}

        client.get_object.side_effect = get_object
        service = ArchiveService(
            S3ArtifactStore("bucket", client=client), unreachable_http, fake_logger
        )

        data = await service.create_archive(
            [outcome("image_1", "up.png"), outcome("image_2", "down.png")]
        )

        assert read_zip(data) == {"image_1.png": b"one"}
        assert any("S3 unavailable" in m for m in fake_logger.messages("WARNING"))

    async def test_duplicate_names_get_suffixes(self, archive_service, fake_store):
        await fake_store.put("k1.png", b"one")
        await fake_store.put("k2.png", b"two")

        data = await archive_service.create_archive(
            [outcome("photo", "k1.png"), outcome("photo", "k2.png")]
        )

        assert sorted(read_zip(data)) == ["photo.png", "photo_2.png"]

    async def test_local_url_without_key_maps_back_to_key(self, archive_service, fake_store):
        await fake_store.put("k1.png", b"one")

        resolved = await archive_service.resolve_bytes(
            outcome("image_1", url="/api/serve-image/k1.png")
        )

        assert resolved == b"one"

    async def test_remote_url_is_fetched(self, fake_store, fake_logger):
        def handler(request):
            return httpx.Response(200, content=b"remote-bytes")

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = ArchiveService(fake_store, http, fake_logger)

        resolved = await service.resolve_bytes(
            outcome("image_1", url="https://cdn.example.com/out.png")
        )

        assert resolved == b"remote-bytes"

    async def test_store_is_preferred_over_remote_url(self, fake_store, fake_logger):
        def handler(request):
            raise AssertionError("should not fetch")

        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service = ArchiveService(fake_store, http, fake_logger)
        await fake_store.put("k1.png", b"stored")

        resolved = await service.resolve_bytes(
            outcome("image_1", key="k1.png", url="https://cdn.example.com/k1.png")
        )

        assert resolved == b"stored"

    async def test_nothing_to_resolve_raises(self, archive_service):
        with pytest.raises(ArchiveEntryUnresolvable, match="image_1"):
            await archive_service.resolve_bytes(outcome("image_1"))


class TestCleanupManager:
    """Tests for CleanupManager."""

    async def test_schedule_deletes_registered_keys(self, cleanup_manager, fake_store):
        await fake_store.put("a.png", b"a")
        await fake_store.put("b.png", b"b")
        cleanup_manager.register("run_1", ["a.png", "b.png"])

        deleted = await cleanup_manager.schedule("run_1")

        assert deleted == 2
        assert fake_store.objects == {}
        assert cleanup_manager.manifest("run_1") == []
        assert cleanup_manager.pending == []

    async def test_other_runs_are_untouched(self, cleanup_manager, fake_store):
        await fake_store.put("old.png", b"a")
        await fake_store.put("new.png", b"b")
        cleanup_manager.register("run_old", ["old.png"])
        cleanup_manager.register("run_new", ["new.png"])

        await cleanup_manager.schedule("run_old")

        assert list(fake_store.objects) == ["new.png"]
        assert cleanup_manager.manifest("run_new") == ["new.png"]

    async def test_rescheduling_replaces_pending_task(self, cleanup_manager, fake_store):
        await fake_store.put("a.png", b"a")
        cleanup_manager.register("run_1", ["a.png"])

        slow = cleanup_manager.schedule("run_1", delay=60)
        fast = cleanup_manager.schedule("run_1", delay=0)
        await fast
        await asyncio.sleep(0)

        assert slow.cancelled()
        assert fake_store.deleted == ["a.png"]

    async def test_cancel(self, cleanup_manager, fake_store):
        cleanup_manager.register("run_1", ["a.png"])
        cleanup_manager.schedule("run_1", delay=60)

        assert cleanup_manager.cancel("run_1") is True
        assert cleanup_manager.cancel("run_1") is False
        assert cleanup_manager.manifest("run_1") == ["a.png"]

    async def test_delete_failures_are_logged_not_raised(
        self, cleanup_manager, fake_store, fake_logger
    ):
        fake_store.fail_deletes = True
        cleanup_manager.register("run_1", ["a.png", "b.png"])

        deleted = await cleanup_manager.purge("run_1")

        assert deleted == 0
        warnings = fake_logger.messages("WARNING")
        assert len(warnings) == 2
        assert warnings[0].startswith("Failed to delete artifact a.png")

    async def test_runs_for_outcomes(self, cleanup_manager):
        cleanup_manager.register("run_1", ["a.png"])
        cleanup_manager.register("run_2", ["b.png"])

        assert cleanup_manager.runs_for([outcome("x", "b.png")]) == ["run_2"]
        assert cleanup_manager.runs_for([outcome("x")]) == []

    async def test_shutdown_cancels_pending(self, cleanup_manager, fake_store):
        await fake_store.put("a.png", b"a")
        cleanup_manager.register("run_1", ["a.png"])
        cleanup_manager.schedule("run_1", delay=60)

        await cleanup_manager.shutdown()

        assert cleanup_manager.pending == []
        assert "a.png" in fake_store.objects

    async def test_shutdown_can_drain(self, cleanup_manager, fake_store):
        await fake_store.put("a.png", b"a")
        cleanup_manager.register("run_1", ["a.png"])
        cleanup_manager.schedule("run_1", delay=0)

        await cleanup_manager.shutdown(wait=True)

        assert fake_store.objects == {}
