"""Archive assembly and delayed cleanup of run artifacts."""

import asyncio
import io
import zipfile
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import httpx

from .exceptions import ArchiveEntryUnresolvable, CleanupError, ImageUpscalerError
from .image_utils import OUTPUT_EXTENSION
from .models import ProcessingOutcome
from .protocols import ArtifactStoreProtocol, LoggerProtocol
from .remote import fetch_remote_bytes, is_remote_url


def build_zip(entries: Iterable[Tuple[str, bytes]]) -> bytes:
    """Pack (name, bytes) entries into a deflate-compressed zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as archive:
        for name, data in entries:
            archive.writestr(name, data)
    return buffer.getvalue()


def _unique_name(name: str, used: Set[str]) -> str:
    if name not in used:
        used.add(name)
        return name
    stem, _, ext = name.rpartition(".")
    counter = 2
    while f"{stem}_{counter}.{ext}" in used:
        counter += 1
    unique = f"{stem}_{counter}.{ext}"
    used.add(unique)
    return unique


class ArchiveService:
    """Resolve outcome bytes and bundle them into one archive."""

    def __init__(
        self,
        store: ArtifactStoreProtocol,
        http_client: httpx.AsyncClient,
        logger: LoggerProtocol,
        download_timeout_seconds: float = 60.0,
    ):
        self._store = store
        self._http = http_client
        self._logger = logger
        self._download_timeout_seconds = download_timeout_seconds

    async def resolve_bytes(self, outcome: ProcessingOutcome) -> bytes:
        """
        Return the current artifact bytes for an outcome.

        The stored artifact is read when the outcome carries its key; a
        remote download URL is fetched otherwise, and a local URL is mapped
        back to its key from the last path segment.

        Raises:
            ArchiveEntryUnresolvable: If no source yields the bytes
        """
        url = outcome.download_url or ""
        key = outcome.artifact_key
        if key is None and url and not is_remote_url(url):
            key = url.rstrip("/").rsplit("/", 1)[-1] or None

        errors: List[str] = []
        if key:
            try:
                return await self._store.get(key)
            except ImageUpscalerError as e:
                errors.append(str(e))
        if is_remote_url(url):
            try:
                return await fetch_remote_bytes(
                    self._http, url, timeout=self._download_timeout_seconds
                )
            except ImageUpscalerError as e:
                errors.append(str(e))

        name = outcome.processed_name or outcome.original_name or "unknown"
        detail = "; ".join(errors) if errors else "no artifact or download URL"
        raise ArchiveEntryUnresolvable(f"Cannot resolve bytes for {name}: {detail}")

    async def create_archive(self, outcomes: Sequence[ProcessingOutcome]) -> bytes:
        """Bundle outcomes as ``<processed_name>.png`` entries, skipping unresolvable ones."""
        entries: List[Tuple[str, bytes]] = []
        used: Set[str] = set()

        self._logger.info(f"Creating archive with {len(outcomes)} image(s)")
        for outcome in outcomes:
            try:
                data = await self.resolve_bytes(outcome)
            except ArchiveEntryUnresolvable as e:
                self._logger.warning(f"Skipping archive entry: {e}")
                continue
            base = outcome.processed_name or outcome.original_name or "image"
            name = _unique_name(f"{base}.{OUTPUT_EXTENSION}", used)
            entries.append((name, data))
            self._logger.debug(f"Added {name} ({len(data)} bytes)")

        archive = await asyncio.to_thread(build_zip, entries)
        self._logger.info(
            f"Archive ready: {len(entries)}/{len(outcomes)} entries, {len(archive)} bytes"
        )
        return archive


class CleanupManager:
    """Own run manifests and their scheduled deletion.

    Each run has at most one pending deletion task. Scheduling again for the
    same run replaces the pending task, and deletion only ever touches the
    keys registered for that run.
    """

    def __init__(
        self,
        store: ArtifactStoreProtocol,
        logger: LoggerProtocol,
        grace_delay_seconds: float = 5.0,
    ):
        self._store = store
        self._logger = logger
        self._grace_delay_seconds = grace_delay_seconds
        self._manifests: Dict[str, List[str]] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def register(self, run_id: str, keys: Iterable[str]) -> None:
        self._manifests.setdefault(run_id, []).extend(keys)

    def manifest(self, run_id: str) -> List[str]:
        return list(self._manifests.get(run_id, []))

    def runs_for(self, outcomes: Iterable[ProcessingOutcome]) -> List[str]:
        """Return the runs that own the artifacts referenced by ``outcomes``."""
        keys = {o.artifact_key for o in outcomes if o.artifact_key}
        return [
            run_id
            for run_id, manifest in self._manifests.items()
            if keys.intersection(manifest)
        ]

    @property
    def pending(self) -> List[str]:
        return [run_id for run_id, task in self._tasks.items() if not task.done()]

    def schedule(self, run_id: str, delay: Optional[float] = None) -> asyncio.Task:
        """Schedule deletion of a run's artifacts, replacing any pending timer."""
        self.cancel(run_id)
        delay = self._grace_delay_seconds if delay is None else delay
        self._logger.info(f"Cleanup for {run_id} scheduled in {delay:.0f}s")
        task = asyncio.create_task(self._cleanup_after(run_id, delay))
        self._tasks[run_id] = task
        return task

    def cancel(self, run_id: str) -> bool:
        task = self._tasks.pop(run_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def _cleanup_after(self, run_id: str, delay: float) -> int:
        await asyncio.sleep(delay)
        if self._tasks.get(run_id) is asyncio.current_task():
            del self._tasks[run_id]
        return await self.purge(run_id)

    async def purge(self, run_id: str) -> int:
        """Delete a run's artifacts now; failures are logged, never raised."""
        keys = self._manifests.pop(run_id, [])
        deleted = 0
        for key in keys:
            try:
                await self._store.delete(key)
                deleted += 1
            except Exception as exc:  # noqa: BLE001
                error = CleanupError(f"Failed to delete artifact {key}: {exc}")
                self._logger.warning(str(error))
        self._logger.info(f"Cleanup for {run_id}: deleted {deleted}/{len(keys)} artifact(s)")
        return deleted

    async def shutdown(self, wait: bool = False) -> None:
        """Cancel pending timers, or wait for them to run when ``wait`` is set."""
        tasks = list(self._tasks.values())
        if not wait:
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
