"""Testing utilities and fakes for the image upscaler."""

from .fakes import (
    FakeArtifactStore,
    FakeLogger,
    FakeUpscaleProvider,
    create_test_image,
    magnify_image,
    make_source_image,
)

__all__ = [
    "FakeArtifactStore",
    "FakeLogger",
    "FakeUpscaleProvider",
    "create_test_image",
    "magnify_image",
    "make_source_image",
]
