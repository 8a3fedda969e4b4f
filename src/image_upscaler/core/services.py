"""Pipeline stages and the batch orchestrator."""

import asyncio
import inspect
import time
import uuid
from dataclasses import dataclass, field
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Union,
)

import httpx
from PIL import Image

from .error_handling import BatchOperationContextManager
from .exceptions import (
    BatchCancelledError,
    DecodeError,
    StorageError,
    UpscaleProviderError,
    ValidationError,
)
from .image_utils import (
    OUTPUT_EXTENSION,
    decode_image,
    encode_image,
    ensure_output_format,
    resize_image,
)
from .models import (
    BatchProgress,
    BatchResult,
    BatchState,
    ImageDimensions,
    ProcessingOutcome,
    ProcessingSettings,
    SourceImage,
    UpscaleResult,
)
from .observability import LogContext, RunLog
from .protocols import ArtifactStoreProtocol, LoggerProtocol, UpscaleProviderProtocol
from .remote import fetch_remote_bytes
from .responses import (
    CANCELED,
    FAILED,
    StatusWrapped,
    classify_response,
    decode_data_url,
    describe_raw,
    resolve_output,
)
from .sizing import (
    MAX_FILE_SIZE_BYTES,
    calculate_resize_dimensions,
    calculate_upscale_factor,
    ensure_valid_image_file,
    generate_processed_file_name,
)

CANCELLED_MESSAGE = "Batch cancelled before this item was processed"

ProgressCallback = Callable[[BatchProgress], Union[None, Awaitable[None]]]
ArtifactCallback = Callable[[str], None]


def make_artifact_key(processed_name: str, prefix: str = "") -> str:
    """Build a collision-free artifact key for a processed name."""
    stamp = int(time.time() * 1000)
    return f"{prefix}{stamp}_{uuid.uuid4().hex}_{processed_name}.{OUTPUT_EXTENSION}"


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


class CancellationToken:
    """Cooperative cancellation flag checked before each item starts."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


@dataclass
class RunContext:
    """Per-run state handed explicitly to every stage call."""

    run_id: str
    log: RunLog
    cancel_token: Optional[CancellationToken] = None
    state: BatchState = BatchState.IDLE
    artifact_keys: List[str] = field(default_factory=list)
    start_time: float = field(default_factory=time.time)
    on_track: Optional[ArtifactCallback] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_token is not None and self.cancel_token.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise BatchCancelledError(CANCELLED_MESSAGE)

    def track(self, key: str) -> None:
        self.artifact_keys.append(key)
        if self.on_track is not None:
            self.on_track(key)

    def untrack(self, key: str) -> None:
        if key in self.artifact_keys:
            self.artifact_keys.remove(key)

    def log_context(self, operation: str, **metadata: Any) -> LogContext:
        return LogContext(
            correlation_id=self.run_id, operation=operation, component="pipeline"
        ).with_metadata(**metadata)


async def store_artifact(
    store: ArtifactStoreProtocol, run: RunContext, key: str, data: bytes
) -> str:
    """Write an artifact, tracking its key first.

    A write interrupted by cancellation may still land, so the key stays
    tracked unless the store reports the write as failed.
    """
    run.track(key)
    try:
        return await store.put(key, data)
    except StorageError:
        run.untrack(key)
        raise


@dataclass
class ProcessedItem:
    """Output of the single-item stage: the baseline outcome and its bytes."""

    outcome: ProcessingOutcome
    data: Optional[bytes] = None


class ItemProcessingService:
    """Validate, resize and re-encode one image, then store it."""

    def __init__(
        self,
        store: ArtifactStoreProtocol,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ):
        self._store = store
        self._max_file_size = max_file_size

    @staticmethod
    def _transform(
        image: Image.Image, dimensions: ImageDimensions, was_resized: bool
    ) -> bytes:
        if was_resized:
            image = resize_image(image, dimensions)
        return encode_image(image)

    async def process(
        self,
        source: SourceImage,
        settings: ProcessingSettings,
        index: int,
        run: RunContext,
    ) -> ProcessedItem:
        processed_name = generate_processed_file_name(
            source.original_name, settings.name_prefix, index
        )
        outcome = ProcessingOutcome(
            original_name=source.original_name, processed_name=processed_name
        )
        log_context = run.log_context(
            "process_image", item=index + 1, file=source.original_name
        )

        try:
            ensure_valid_image_file(
                source.mime_type, source.size_in_bytes, self._max_file_size
            )
        except ValidationError as e:
            outcome.error = str(e)
            run.log.warning(f"Rejected {source.original_name}: {e}", log_context)
            return ProcessedItem(outcome)

        try:
            image, original_size = await asyncio.to_thread(decode_image, source.data)
            final_size, was_resized = calculate_resize_dimensions(
                original_size, settings.max_dimension
            )
            run.log.debug(
                f"Decoded {original_size}, target {final_size}", log_context
            )
            encoded = await asyncio.to_thread(
                self._transform, image, final_size, was_resized
            )

            key = make_artifact_key(processed_name)
            download_url = await store_artifact(self._store, run, key, encoded)
        except (DecodeError, StorageError) as e:
            outcome.error = str(e)
            run.log.error(f"Processing failed for {source.original_name}: {e}", log_context)
            return ProcessedItem(outcome)

        outcome.success = True
        outcome.original_size = original_size
        outcome.final_size = final_size
        outcome.was_resized = was_resized
        outcome.scale_factor = 1.0
        outcome.download_url = download_url
        outcome.artifact_key = key

        run.log.info(
            f"Basic processing done: {processed_name}.{OUTPUT_EXTENSION}",
            log_context,
            original=str(original_size),
            final=str(final_size),
            resized=was_resized,
        )
        return ProcessedItem(outcome, encoded)


class UpscaleService:
    """Magnify a processed artifact through the external provider.

    Any failure is returned as an unsuccessful ``UpscaleResult``; the caller
    keeps the pre-upscale artifact.
    """

    def __init__(
        self,
        provider: UpscaleProviderProtocol,
        store: ArtifactStoreProtocol,
        http_client: httpx.AsyncClient,
        timeout_seconds: Optional[float] = 300.0,
        download_timeout_seconds: float = 60.0,
    ):
        self._provider = provider
        self._store = store
        self._http = http_client
        self._timeout_seconds = timeout_seconds
        self._download_timeout_seconds = download_timeout_seconds

    async def _result_bytes(self, raw: Any) -> bytes:
        response = classify_response(raw)
        if isinstance(response, StatusWrapped) and response.status in (FAILED, CANCELED):
            raise UpscaleProviderError(
                f"Upscale prediction {response.status}: {response.error or 'Unknown error'}",
                raw_response=raw,
            )

        output = resolve_output(response)
        if output is None:
            raise UpscaleProviderError(
                f"Unrecognized upscale response shape: {describe_raw(raw)}",
                raw_response=raw,
            )
        if isinstance(output, bytes):
            return output

        embedded = decode_data_url(output)
        if embedded is not None:
            return embedded
        return await fetch_remote_bytes(
            self._http, output, timeout=self._download_timeout_seconds
        )

    async def upscale(
        self, item: ProcessedItem, settings: ProcessingSettings, run: RunContext
    ) -> UpscaleResult:
        outcome = item.outcome
        current = outcome.final_size
        log_context = run.log_context("upscale_image", item=outcome.processed_name)

        scale_factor = calculate_upscale_factor(current, settings.target_size)
        if scale_factor <= 1:
            run.log.info(
                f"Image already at target size or larger "
                f"(current: {current.max_dimension}px, target: {settings.target_size}px)",
                log_context,
            )
            return UpscaleResult(skipped=True, scale_factor=1.0)

        applied_scale = min(scale_factor, self._provider.max_scale)
        run.log.info(
            f"Starting upscale: current={current.max_dimension}px, "
            f"target={settings.target_size}px, scale={scale_factor:.3f}x "
            f"(sent {applied_scale:.3f}x)",
            log_context,
        )

        try:
            data = item.data
            if data is None:
                data = await self._store.get(outcome.artifact_key)
            raw = await asyncio.wait_for(
                self._provider.submit(data, applied_scale), self._timeout_seconds
            )
            upscaled = await self._result_bytes(raw)
            upscaled, measured = await asyncio.to_thread(ensure_output_format, upscaled)

            key = make_artifact_key(outcome.processed_name, prefix="upscaled_")
            download_url = await store_artifact(self._store, run, key, upscaled)
        except asyncio.TimeoutError:
            error = f"Upscale timed out after {self._timeout_seconds:.0f}s"
            run.log.error(error, log_context)
            return UpscaleResult(
                error=error, scale_factor=scale_factor, applied_scale_factor=applied_scale
            )
        except (UpscaleProviderError, DecodeError, StorageError) as e:
            run.log.error(f"Upscaling failed: {e}", log_context)
            return UpscaleResult(
                error=str(e), scale_factor=scale_factor, applied_scale_factor=applied_scale
            )

        run.log.info(
            f"Upscaled {outcome.processed_name} to {measured}",
            log_context,
            requested=f"{scale_factor:.3f}x",
        )
        return UpscaleResult(
            success=True,
            scale_factor=scale_factor,
            applied_scale_factor=applied_scale,
            final_size=measured,
            download_url=download_url,
            artifact_key=key,
        )


def merge_upscale(outcome: ProcessingOutcome, result: UpscaleResult) -> ProcessingOutcome:
    """Fold an upscale stage result into the item's outcome."""
    if result.success:
        return outcome.model_copy(
            update={
                "was_upscaled": True,
                "scale_factor": result.scale_factor,
                "applied_scale_factor": result.applied_scale_factor,
                "final_size": result.final_size,
                "download_url": result.download_url,
                "artifact_key": result.artifact_key,
            }
        )
    if result.skipped:
        return outcome
    return outcome.model_copy(update={"upscale_error": result.error})


def should_upscale(outcome: ProcessingOutcome, settings: ProcessingSettings) -> bool:
    return (
        settings.enable_upscaling
        and outcome.success
        and outcome.final_size is not None
        and outcome.final_size.max_dimension < settings.target_size
    )


class BatchOrchestrator:
    """Run the item and upscale stages over a batch.

    Items run one at a time in submission order unless ``concurrency`` is
    raised, in which case a bounded pool is used and progress events are
    keyed by item index. The outcome list always mirrors the input order
    and length, and no item error escapes as an exception.
    """

    def __init__(
        self,
        item_service: ItemProcessingService,
        upscale_service: UpscaleService,
        logger: LoggerProtocol,
        concurrency: int = 1,
    ):
        self._item_service = item_service
        self._upscale_service = upscale_service
        self._logger = logger
        self._concurrency = max(1, concurrency)
        self.active_runs: Dict[str, RunContext] = {}

    async def _process_item(
        self,
        source: SourceImage,
        settings: ProcessingSettings,
        index: int,
        run: RunContext,
    ) -> ProcessingOutcome:
        try:
            run.raise_if_cancelled()
        except BatchCancelledError as e:
            return ProcessingOutcome(original_name=source.original_name, error=str(e))

        log_context = run.log_context("process_item", item=index + 1)
        try:
            processed = await self._item_service.process(source, settings, index, run)
        except Exception as e:  # noqa: BLE001
            run.log.error(
                f"Unexpected error processing {source.original_name}: {e}", log_context
            )
            return ProcessingOutcome(
                original_name=source.original_name, error=f"Unexpected error: {e}"
            )

        outcome = processed.outcome
        if not should_upscale(outcome, settings):
            return outcome

        # The baseline artifact survives any upscale failure.
        try:
            result = await self._upscale_service.upscale(processed, settings, run)
        except Exception as e:  # noqa: BLE001
            run.log.error(
                f"Unexpected error upscaling {source.original_name}: {e}", log_context
            )
            result = UpscaleResult(error=f"Unexpected error: {e}")
        return merge_upscale(outcome, result)

    async def _emit(
        self, on_progress: Optional[ProgressCallback], event: BatchProgress, run: RunContext
    ) -> None:
        if on_progress is None:
            return
        try:
            returned = on_progress(event)
            if inspect.isawaitable(returned):
                await returned
        except Exception as e:  # noqa: BLE001
            run.log.warning(f"Progress callback failed: {e}")

    def cancel(self, run_id: str) -> bool:
        """Stop an active run before its next item; False if it is not running."""
        run = self.active_runs.get(run_id)
        if run is None or run.cancel_token is None:
            return False
        run.cancel_token.cancel()
        return True

    async def run(
        self,
        images: Sequence[SourceImage],
        settings: ProcessingSettings,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
        on_artifact: Optional[ArtifactCallback] = None,
    ) -> BatchResult:
        """Process every image and return the ordered outcomes.

        ``on_artifact`` is called with each artifact key before it is written,
        so a caller can reclaim artifacts of a run that never finishes.
        """
        run_id = run_id or new_run_id()
        run = RunContext(
            run_id=run_id,
            log=RunLog(self._logger, run_id),
            cancel_token=cancel_token or CancellationToken(),
            on_track=on_artifact,
        )
        self.active_runs[run_id] = run
        try:
            return await self._run(run, images, settings, on_progress)
        finally:
            self.active_runs.pop(run_id, None)

    async def _run(
        self,
        run: RunContext,
        images: Sequence[SourceImage],
        settings: ProcessingSettings,
        on_progress: Optional[ProgressCallback],
    ) -> BatchResult:
        run_id = run.run_id
        run.state = BatchState.RUNNING

        total = len(images)
        outcomes: List[Optional[ProcessingOutcome]] = [None] * total
        completed = 0
        run.log.info(
            f"Starting batch of {total} image(s)",
            run.log_context("run_batch"),
            max_dimension=settings.max_dimension,
            upscaling=settings.enable_upscaling,
            target_size=settings.target_size,
        )

        with BatchOperationContextManager(
            operation_name=f"Batch {run_id}", logger=run.log
        ) as batch_errors:

            async def finish(index: int, outcome: ProcessingOutcome) -> None:
                nonlocal completed
                outcomes[index] = outcome
                completed += 1
                if not outcome.success:
                    batch_errors.add_error(
                        outcome.error or "Unknown error", images[index].original_name
                    )
                await self._emit(
                    on_progress,
                    BatchProgress(
                        run_id=run_id,
                        index=index,
                        completed=completed,
                        total=total,
                        outcome=outcome,
                    ),
                    run,
                )

            if self._concurrency == 1:
                for index, source in enumerate(images):
                    outcome = await self._process_item(source, settings, index, run)
                    await finish(index, outcome)
            else:
                semaphore = asyncio.Semaphore(self._concurrency)

                async def worker(index: int, source: SourceImage) -> None:
                    async with semaphore:
                        outcome = await self._process_item(source, settings, index, run)
                    await finish(index, outcome)

                await asyncio.gather(
                    *(worker(index, source) for index, source in enumerate(images))
                )

        run.state = BatchState.COMPLETED

        result = BatchResult(
            run_id=run_id,
            state=run.state,
            outcomes=[outcome for outcome in outcomes if outcome is not None],
            artifact_keys=list(run.artifact_keys),
            processing_time=time.time() - run.start_time,
        )
        run.log.info(
            f"Finished: {result.success_count}/{total} image(s) processed successfully",
            run.log_context("run_batch"),
        )
        result.logs = run.log.drain()
        return result

    async def stream(
        self,
        images: Sequence[SourceImage],
        settings: ProcessingSettings,
        cancel_token: Optional[CancellationToken] = None,
        run_id: Optional[str] = None,
        on_artifact: Optional[ArtifactCallback] = None,
    ) -> AsyncIterator[Union[BatchProgress, BatchResult]]:
        """Yield progress events as items finish, then the final result.

        Closing the iterator early cancels the run and waits for it to stop.
        """
        queue: "asyncio.Queue[Any]" = asyncio.Queue()
        done = object()

        task = asyncio.create_task(
            self.run(
                images,
                settings,
                on_progress=queue.put_nowait,
                cancel_token=cancel_token,
                run_id=run_id,
                on_artifact=on_artifact,
            )
        )
        task.add_done_callback(lambda _: queue.put_nowait(done))
        try:
            while True:
                event = await queue.get()
                if event is done:
                    break
                yield event
            yield task.result()
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
