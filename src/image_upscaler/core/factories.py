"""Factory classes for creating configured service instances."""

from typing import Any, Dict, List, Optional

import httpx
import pydantic

from .archive import ArchiveService, CleanupManager
from .config import AppSettings, get_settings
from .exceptions import ConfigurationError
from .observability import StructuredLogger
from .pipeline import UpscalePipeline
from .protocols import ArtifactStoreProtocol, LoggerProtocol, UpscaleProviderProtocol
from .services import BatchOrchestrator, ItemProcessingService, UpscaleService


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str = "image-upscaler") -> LoggerProtocol:
        """Create a structured logger on top of the shared logging config."""
        return StructuredLogger(name)


class ArtifactStoreFactory:
    """Factory for creating the configured artifact store."""

    @staticmethod
    def create_store(settings: AppSettings) -> ArtifactStoreProtocol:
        if settings.storage_backend == "s3":
            from ..storage.s3 import S3ArtifactStore

            if not settings.s3_bucket:
                raise ConfigurationError(
                    "UPSCALER_S3_BUCKET is required for the s3 storage backend"
                )
            return S3ArtifactStore(
                bucket=settings.s3_bucket,
                prefix=settings.s3_prefix,
                public_base_url=settings.s3_public_base_url,
                url_expiry=settings.s3_url_expiry_seconds,
                endpoint_url=settings.s3_endpoint_url,
            )

        from ..storage.local import LocalArtifactStore

        return LocalArtifactStore(settings.artifact_dir, settings.public_base_url)


class UpscaleProviderFactory:
    """Factory for creating the upscaling provider client."""

    @staticmethod
    def create_provider(
        settings: AppSettings, http_client: Optional[httpx.AsyncClient] = None
    ) -> UpscaleProviderProtocol:
        from ..providers.replicate import ReplicateUpscaleProvider

        return ReplicateUpscaleProvider(
            api_token=settings.replicate_api_token,
            client=http_client,
            api_url=settings.replicate_api_url,
            model_version=settings.replicate_model_version,
            max_scale=settings.provider_max_scale,
            timeout_seconds=settings.provider_timeout_seconds,
            poll_interval_seconds=settings.provider_poll_interval_seconds,
            max_attempts=settings.provider_max_attempts,
            retry_delay_seconds=settings.provider_retry_delay_seconds,
        )


class PipelineFactory:
    """Factory for creating the complete processing pipeline."""

    @staticmethod
    def load_settings(overrides: Optional[Dict[str, Any]] = None) -> AppSettings:
        """Load settings from the environment, applying explicit overrides."""
        try:
            if overrides:
                return AppSettings(**overrides)
            return get_settings()
        except pydantic.ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @staticmethod
    def create_pipeline(
        settings: Optional[AppSettings] = None,
        store: Optional[ArtifactStoreProtocol] = None,
        provider: Optional[UpscaleProviderProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config_overrides: Optional[Dict[str, Any]] = None,
    ) -> UpscalePipeline:
        """Create a fully configured pipeline.

        Collaborators that are passed in are used as-is; the rest are built
        from ``settings``. Clients created here are closed by
        ``UpscalePipeline.aclose``.
        """
        if settings is None:
            settings = PipelineFactory.load_settings(config_overrides)

        if logger is None:
            logger = LoggerFactory.create_logger("image-upscaler")

        owned: List[Any] = []
        if http_client is None:
            http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.provider_timeout_seconds, connect=10.0)
            )
            owned.append(http_client)

        if store is None:
            store = ArtifactStoreFactory.create_store(settings)

        if provider is None:
            provider = UpscaleProviderFactory.create_provider(settings, http_client)

        # Covers every retry attempt plus polling for the slowest one.
        upscale_timeout = (
            settings.provider_timeout_seconds * settings.provider_max_attempts
            + settings.provider_retry_delay_seconds * settings.provider_max_attempts
        )

        item_service = ItemProcessingService(
            store, max_file_size=settings.max_file_size_bytes
        )
        upscale_service = UpscaleService(
            provider,
            store,
            http_client,
            timeout_seconds=upscale_timeout,
        )
        orchestrator = BatchOrchestrator(
            item_service=item_service,
            upscale_service=upscale_service,
            logger=logger,
            concurrency=settings.concurrency,
        )
        archive_service = ArchiveService(store, http_client, logger)
        cleanup_manager = CleanupManager(
            store, logger, grace_delay_seconds=settings.cleanup_delay_seconds
        )

        return UpscalePipeline(
            orchestrator=orchestrator,
            archive_service=archive_service,
            cleanup_manager=cleanup_manager,
            logger=logger,
            orphan_ttl_seconds=settings.orphan_ttl_seconds,
            owned_resources=owned,
        )
