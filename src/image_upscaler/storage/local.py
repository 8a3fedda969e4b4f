"""Local filesystem artifact store."""

import asyncio
from pathlib import Path
from typing import Union

from ..core.exceptions import StorageError
from ..core.logging_config import get_logger

logger = get_logger("image-upscaler.storage")


class LocalArtifactStore:
    """Stores artifacts as flat files under a single directory.

    URLs are ``<public_base_url>/<key>``, matching a route that serves
    files from that directory.
    """

    def __init__(
        self, root: Union[str, Path], public_base_url: str = "/api/serve-image"
    ):
        self._root = Path(root)
        self._public_base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", "..") or ".." in key:
            raise StorageError(f"Invalid artifact key: {key!r}")
        return self._root / key

    def url_for(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    async def put(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        logger.debug(f"Writing artifact {key} ({len(data)} bytes)")
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise StorageError(f"Failed to write artifact {key}: {exc}") from exc
        return self.url_for(key)

    async def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise StorageError(f"Artifact not found: {key}") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read artifact {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as exc:
            raise StorageError(f"Failed to delete artifact {key}: {exc}") from exc
