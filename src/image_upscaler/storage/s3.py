"""S3-backed artifact store."""

import asyncio
from typing import Any, Optional
from urllib.parse import urljoin

# Conditional import for type checking S3 client
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client
else:
    S3Client = Any

import boto3

from ..core.error_handling import with_error_handling
from ..core.image_utils import OUTPUT_MIME_TYPE
from ..core.logging_config import get_logger

logger = get_logger("image-upscaler.storage")


class S3ArtifactStore:
    """Stores artifacts as objects under a bucket prefix.

    The boto3 client is blocking, so each call runs in a worker thread.
    URLs point at ``public_base_url`` when one is configured, otherwise
    they are presigned GET URLs valid for ``url_expiry`` seconds.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        client: Optional[S3Client] = None,
        public_base_url: Optional[str] = None,
        url_expiry: int = 3600,
        endpoint_url: Optional[str] = None,
    ):
        self._bucket = bucket
        self._prefix = prefix
        if client is None:
            session = boto3.Session()
            client = session.client("s3", endpoint_url=endpoint_url)
        self._s3 = client
        self._public_base_url = public_base_url
        self._url_expiry = url_expiry

    def _object_key(self, key: str) -> str:
        if self._prefix and not self._prefix.endswith("/"):
            return f"{self._prefix}/{key}"
        return f"{self._prefix}{key}"

    def url_for(self, key: str) -> str:
        object_key = self._object_key(key)
        if self._public_base_url:
            return urljoin(self._public_base_url.rstrip("/") + "/", object_key)
        return self._s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": object_key},
            ExpiresIn=self._url_expiry,
        )

    def _put(self, key: str, data: bytes) -> str:
        object_key = self._object_key(key)
        logger.debug(f"Uploading to s3://{self._bucket}/{object_key}")
        self._s3.put_object(
            Bucket=self._bucket,
            Key=object_key,
            Body=data,
            ContentType=OUTPUT_MIME_TYPE,
        )
        return self.url_for(key)

    def _get(self, key: str) -> bytes:
        response = self._s3.get_object(Bucket=self._bucket, Key=self._object_key(key))
        return response["Body"].read()

    def _delete(self, key: str) -> None:
        self._s3.delete_object(Bucket=self._bucket, Key=self._object_key(key))

    @with_error_handling
    async def put(self, key: str, data: bytes) -> str:
        return await asyncio.to_thread(self._put, key, data)

    @with_error_handling
    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._get, key)

    @with_error_handling
    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
