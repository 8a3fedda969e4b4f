"""Custom exceptions for the image upscaler."""

from __future__ import annotations

from typing import Any, Optional


class ImageUpscalerError(Exception):
    """Base exception for all image upscaler errors."""


class ValidationError(ImageUpscalerError):
    """Error raised when a submitted file has an unsupported type or size."""


class DecodeError(ImageUpscalerError):
    """Error raised when image bytes cannot be decoded."""


class StorageError(ImageUpscalerError):
    """Error raised for artifact store read, write or delete failures."""


class UpscaleProviderError(ImageUpscalerError):
    """Error raised when the external upscaling provider fails.

    ``retryable`` marks transient failures (network errors, throttling,
    server errors) that a bounded retry may recover from. ``raw_response``
    keeps whatever the provider sent back for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = False,
        raw_response: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.raw_response = raw_response


class ArchiveEntryUnresolvable(ImageUpscalerError):
    """Error raised when an archive entry's bytes cannot be resolved."""


class CleanupError(ImageUpscalerError):
    """Error raised when deleting a temporary artifact fails."""


class ConfigurationError(ImageUpscalerError):
    """Error raised for invalid configuration options."""


class BatchCancelledError(ImageUpscalerError):
    """Error raised when a cancelled batch reaches an item boundary."""
