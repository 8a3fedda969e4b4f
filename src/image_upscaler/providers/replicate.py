"""Replicate (Real-ESRGAN) upscaling provider."""

from __future__ import annotations

import asyncio
import base64
from typing import Any, Dict, Optional

import httpx

from ..core.config import REAL_ESRGAN_VERSION
from ..core.error_handling import retry_async, with_error_handling
from ..core.exceptions import UpscaleProviderError
from ..core.image_utils import OUTPUT_MIME_TYPE
from ..core.logging_config import get_logger
from ..core.responses import PENDING_STATUSES, describe_raw

logger = get_logger("image-upscaler.provider")

DEFAULT_API_URL = "https://api.replicate.com/v1/predictions"


class ReplicateUpscaleProvider:
    """Submits images to a Replicate prediction endpoint.

    The prediction is created with ``Prefer: wait`` so short jobs answer in
    one round trip. A prediction that is still starting or processing, and
    has no output yet, is polled through its ``urls.get`` link until it
    settles or ``timeout_seconds`` elapses.
    """

    def __init__(
        self,
        api_token: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        api_url: str = DEFAULT_API_URL,
        model_version: str = REAL_ESRGAN_VERSION,
        max_scale: float = 4.0,
        timeout_seconds: float = 120.0,
        poll_interval_seconds: float = 1.0,
        max_attempts: int = 2,
        retry_delay_seconds: float = 1.0,
    ):
        self._api_token = api_token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0)
        )
        self._api_url = api_url
        self._model_version = model_version
        self.max_scale = max_scale
        self._timeout_seconds = timeout_seconds
        self._poll_interval_seconds = poll_interval_seconds
        self._submit_with_retry = retry_async(
            max_attempts=max_attempts, initial_delay=retry_delay_seconds
        )(self._submit_once)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, wait: bool = False) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        if wait:
            headers["Prefer"] = "wait"
        return headers

    async def submit(self, image_bytes: bytes, scale: float) -> Any:
        """Create a prediction and return the provider's decoded response."""
        if not self._api_token:
            raise UpscaleProviderError("REPLICATE_API_TOKEN not configured")
        return await self._submit_with_retry(image_bytes, scale)

    async def _submit_once(self, image_bytes: bytes, scale: float) -> Any:
        data_url = (
            f"data:{OUTPUT_MIME_TYPE};base64,"
            f"{base64.b64encode(image_bytes).decode('ascii')}"
        )
        payload = {
            "version": self._model_version,
            "input": {
                "image": data_url,
                "scale": min(scale, self.max_scale),
                "face_enhance": False,
            },
        }
        logger.info(
            f"Submitting {len(image_bytes)} bytes for {payload['input']['scale']:.2f}x upscale"
        )
        response = await self._request(
            "POST", self._api_url, json=payload, headers=self._headers(wait=True)
        )
        body = self._decode(response)
        return await self._wait_for_completion(body)

    @with_error_handling
    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self._client.request(method, url, **kwargs)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        """Check the status code and decode the body."""
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("image/") and response.is_success:
            return response.content

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = response.text

        if response.status_code == 429 or response.status_code >= 500:
            raise UpscaleProviderError(
                f"Replicate API error: {response.status_code}",
                retryable=True,
                raw_response=body,
            )
        if not response.is_success:
            raise UpscaleProviderError(
                f"Replicate API error: {response.status_code} {describe_raw(body)}",
                raw_response=body,
            )
        return body

    async def _wait_for_completion(self, body: Any) -> Any:
        if not isinstance(body, dict):
            return body

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_seconds
        while (
            str(body.get("status", "")).lower() in PENDING_STATUSES
            and not body.get("output")
        ):
            poll_url = (body.get("urls") or {}).get("get")
            if not poll_url:
                return body
            if loop.time() >= deadline:
                raise UpscaleProviderError(
                    f"Timed out after {self._timeout_seconds:.0f}s waiting for prediction "
                    f"{body.get('id', '?')}",
                    raw_response=body,
                )
            logger.debug(f"Prediction {body.get('id', '?')} is {body.get('status')}, polling")
            await asyncio.sleep(self._poll_interval_seconds)
            response = await self._request("GET", poll_url, headers=self._headers())
            body = self._decode(response)
            if not isinstance(body, dict):
                return body
        return body
