"""S3-compatible storage for files attached to file-type messages."""
import asyncio
import functools
import logging
from typing import Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tribechat.exceptions import ObjectStoreError

logger = logging.getLogger(__name__)


class ObjectStorage:
    def __init__(self, bucket: str, region: str = "us-east-1",
                 endpoint_url: Optional[str] = None, client=None):
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url or None,
        )

    def key_from_url(self, public_url: str) -> str:
        """Object key of a public URL such as ``https://host/<bucket>/<key>``."""
        marker = f"{self.bucket}/"
        if marker in public_url:
            return unquote(public_url.split(marker, 1)[1])
        path = urlparse(public_url).path.lstrip("/")
        if not path:
            raise ObjectStoreError(f"Unexpected URL format: {public_url}")
        return unquote(path)

    async def delete_object(self, public_url: str) -> None:
        key = self.key_from_url(public_url)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                functools.partial(self._client.delete_object, Bucket=self.bucket, Key=key),
            )
        except (ClientError, BotoCoreError) as e:
            raise ObjectStoreError(f"Failed to delete {public_url}: {e}") from e
        logger.info("Deleted object %s from bucket %s", key, self.bucket)
