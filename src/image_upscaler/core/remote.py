"""HTTP download helper for remote artifacts."""

from __future__ import annotations

import httpx

from .exceptions import StorageError


def is_remote_url(url: str) -> bool:
    return url.startswith(("http://", "https://"))


async def fetch_remote_bytes(
    client: httpx.AsyncClient, url: str, timeout: float = 60.0
) -> bytes:
    """Download bytes from a remote URL using the given HTTP client.

    Raises:
        StorageError: On timeouts, network errors and non-2xx responses
    """
    try:
        response = await client.get(url, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException as exc:
        raise StorageError(f"Timeout downloading {url[:100]}") from exc
    except httpx.RequestError as exc:
        raise StorageError(
            f"Network error downloading {url[:100]}: {type(exc).__name__}"
        ) from exc

    if response.status_code >= 400:
        raise StorageError(
            f"Failed to download {url[:100]}: HTTP {response.status_code}"
        )
    return response.content
