"""Core utilities and shared components for the image upscaler."""

from .logging_config import get_logger, setup_logger
from .exceptions import (
    ArchiveEntryUnresolvable,
    BatchCancelledError,
    CleanupError,
    ConfigurationError,
    DecodeError,
    ImageUpscalerError,
    StorageError,
    UpscaleProviderError,
    ValidationError,
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
from .sizing import (
    calculate_resize_dimensions,
    calculate_upscale_factor,
    format_file_size,
    generate_processed_file_name,
    sanitize_file_name,
    validate_image_file,
)
from .config import AppSettings, get_settings
from .services import CancellationToken
from .pipeline import UpscalePipeline
from .factories import PipelineFactory

__all__ = [
    "AppSettings",
    "ArchiveEntryUnresolvable",
    "BatchCancelledError",
    "BatchProgress",
    "BatchResult",
    "BatchState",
    "CancellationToken",
    "CleanupError",
    "ConfigurationError",
    "DecodeError",
    "ImageDimensions",
    "ImageUpscalerError",
    "PipelineFactory",
    "ProcessingOutcome",
    "ProcessingSettings",
    "SourceImage",
    "StorageError",
    "UpscalePipeline",
    "UpscaleProviderError",
    "UpscaleResult",
    "ValidationError",
    "calculate_resize_dimensions",
    "calculate_upscale_factor",
    "format_file_size",
    "generate_processed_file_name",
    "get_logger",
    "get_settings",
    "sanitize_file_name",
    "setup_logger",
    "validate_image_file",
]
