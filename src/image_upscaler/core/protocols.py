"""Protocol definitions for dependency injection and testability."""

from typing import Any, Protocol


class ArtifactStoreProtocol(Protocol):
    """Protocol for temporary artifact storage."""

    async def put(self, key: str, data: bytes) -> str:
        """Store bytes under ``key`` and return a retrievable URL."""
        ...

    async def get(self, key: str) -> bytes:
        """Read the bytes stored under ``key``."""
        ...

    async def delete(self, key: str) -> None:
        """Delete the artifact stored under ``key``."""
        ...


class UpscaleProviderProtocol(Protocol):
    """Protocol for the external upscaling capability."""

    max_scale: float

    async def submit(self, image_bytes: bytes, scale: float) -> Any:
        """Submit image bytes for magnification and return the raw response."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...
