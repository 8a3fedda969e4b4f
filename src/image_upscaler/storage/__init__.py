"""Temporary artifact stores."""

from .local import LocalArtifactStore
from .s3 import S3ArtifactStore

__all__ = [
    "LocalArtifactStore",
    "S3ArtifactStore",
]
