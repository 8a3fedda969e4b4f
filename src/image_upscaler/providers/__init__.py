"""External upscaling providers."""

from .replicate import ReplicateUpscaleProvider

__all__ = ["ReplicateUpscaleProvider"]
