"""Caller-facing facade over the batch pipeline."""

from typing import AsyncIterator, List, Optional, Sequence, Union

from .archive import ArchiveService, CleanupManager
from .exceptions import ArchiveEntryUnresolvable, StorageError
from .models import BatchProgress, BatchResult, ProcessingOutcome, ProcessingSettings, SourceImage
from .protocols import LoggerProtocol
from .services import (
    ArtifactCallback,
    BatchOrchestrator,
    CancellationToken,
    ProgressCallback,
    new_run_id,
)


class UpscalePipeline:
    """Entry point used by a UI or the CLI.

    Besides running batches it owns the artifact lifecycle: every stored
    artifact is registered with the cleanup manager as it is written, and
    each run that ends, finished or not, gets an expiry timer when
    ``orphan_ttl_seconds`` is positive so artifacts that are never archived
    are still reclaimed. Requesting an archive shortens that timer to the
    grace delay.
    """

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        archive_service: ArchiveService,
        cleanup_manager: CleanupManager,
        logger: LoggerProtocol,
        orphan_ttl_seconds: float = 3600.0,
        owned_resources: Sequence = (),
    ):
        self.orchestrator = orchestrator
        self.archive_service = archive_service
        self.cleanup_manager = cleanup_manager
        self._logger = logger
        self._orphan_ttl_seconds = orphan_ttl_seconds
        self._owned_resources = list(owned_resources)

    def _tracker(self, run_id: str) -> ArtifactCallback:
        return lambda key: self.cleanup_manager.register(run_id, [key])

    def _expire(self, run_id: str) -> None:
        if self._orphan_ttl_seconds > 0 and self.cleanup_manager.manifest(run_id):
            self.cleanup_manager.schedule(run_id, self._orphan_ttl_seconds)

    async def submit_batch(
        self,
        images: Sequence[SourceImage],
        settings: ProcessingSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        run_id = new_run_id()
        try:
            return await self.orchestrator.run(
                images,
                settings,
                on_progress=on_progress,
                cancel_token=cancel_token,
                run_id=run_id,
                on_artifact=self._tracker(run_id),
            )
        finally:
            self._expire(run_id)

    async def stream_batch(
        self,
        images: Sequence[SourceImage],
        settings: ProcessingSettings,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[Union[BatchProgress, BatchResult]]:
        """Stream a run's events; its artifacts are tracked even if the stream is abandoned."""
        run_id = new_run_id()
        events = self.orchestrator.stream(
            images,
            settings,
            cancel_token=cancel_token,
            run_id=run_id,
            on_artifact=self._tracker(run_id),
        )
        try:
            async for event in events:
                yield event
        finally:
            await events.aclose()
            self._expire(run_id)

    def cancel_run(self, run_id: str) -> bool:
        """Ask a running batch to stop before its next item."""
        return self.orchestrator.cancel(run_id)

    @property
    def active_runs(self) -> List[str]:
        return list(self.orchestrator.active_runs)

    async def download_one(self, outcome: ProcessingOutcome) -> bytes:
        """Return the bytes behind one outcome's download URL."""
        try:
            return await self.archive_service.resolve_bytes(outcome)
        except ArchiveEntryUnresolvable as e:
            raise StorageError(str(e)) from e

    async def download_archive(self, outcomes: Sequence[ProcessingOutcome]) -> bytes:
        """Build the archive and schedule cleanup of the runs it came from."""
        archive = await self.archive_service.create_archive(outcomes)
        for run_id in self.cleanup_manager.runs_for(outcomes):
            self.cleanup_manager.schedule(run_id)
        return archive

    async def discard_run(self, run_id: str) -> int:
        """Cancel a run's timer and delete its artifacts immediately."""
        self.cleanup_manager.cancel(run_id)
        return await self.cleanup_manager.purge(run_id)

    async def aclose(self, drain_cleanup: bool = False) -> None:
        """Stop cleanup timers (or let them run) and release owned clients."""
        await self.cleanup_manager.shutdown(wait=drain_cleanup)
        for resource in self._owned_resources:
            await resource.aclose()

    async def __aenter__(self) -> "UpscalePipeline":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def pending_cleanups(self) -> List[str]:
        return self.cleanup_manager.pending
