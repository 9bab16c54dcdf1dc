# backend/pigen/storage.py
import asyncio
import logging
import os
import re
from pathlib import Path
from typing import NamedTuple, Optional, Union
from urllib.parse import quote

import aiofiles
import boto3
from botocore.config import Config as BotoConfig

from .config import S3Settings
from .exceptions import UploadFailure

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")


class UploadResult(NamedTuple):
    url: Optional[str]
    key: str


def sanitize_key(key: str) -> str:
    """Flatten an object key into a single safe file name."""
    return _UNSAFE_KEY_CHARS.sub("_", key)


def get_s3_client(s3: S3Settings):
    session = boto3.session.Session(
        aws_access_key_id=s3.access_key,
        aws_secret_access_key=s3.secret_key,
        region_name=s3.region,
    )
    return session.client(
        "s3",
        endpoint_url=s3.endpoint_url,
        config=BotoConfig(
            s3={"addressing_style": "path"} if s3.endpoint_url else {},
            signature_version="s3v4",
        ),
    )


class StorageAdapter:
    """
    Uploads artifacts to S3 (or any S3-compatible store) when configured,
    otherwise, or when the remote call fails, writes them under fallback_dir.
    """

    def __init__(self, s3: S3Settings, fallback_dir: str, client=None):
        self.s3 = s3
        self.fallback_dir = fallback_dir
        self._client = client
        if self._client is None and s3.configured:
            self._client = get_s3_client(s3)

    @property
    def is_remote(self) -> bool:
        return self._client is not None and bool(self.s3.bucket)

    def object_url(self, key: str) -> str:
        if self.s3.public_base_url:
            return f"{self.s3.public_base_url.rstrip('/')}/{key}"
        if self.s3.endpoint_url:
            return f"{self.s3.endpoint_url.rstrip('/')}/{self.s3.bucket}/{key}"
        return f"https://{self.s3.bucket}.s3.{self.s3.region}.amazonaws.com/{quote(key, safe='')}"

    async def upload(self, source: Union[str, Path, bytes], key: str,
                     content_type: str = "application/pdf") -> UploadResult:
        if isinstance(source, (str, Path)):
            try:
                async with aiofiles.open(source, "rb") as f:
                    data = await f.read()
            except OSError as e:
                raise UploadFailure(f"cannot read {source}: {e}", key=key) from e
        else:
            data = source

        if self.is_remote:
            try:
                await asyncio.to_thread(self._put_object, data, key, content_type)
                return UploadResult(url=self.object_url(key), key=key)
            except Exception as e:
                logger.error("S3 upload of %s to bucket %s failed: %s", key, self.s3.bucket, e)

        return await self._save_local(data, key)

    def _put_object(self, data: bytes, key: str, content_type: str):
        self._client.put_object(
            Bucket=self.s3.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )

    async def _save_local(self, data: bytes, key: str) -> UploadResult:
        os.makedirs(self.fallback_dir, exist_ok=True)
        path = os.path.join(self.fallback_dir, sanitize_key(key))
        async with aiofiles.open(path, "wb") as out_file:
            await out_file.write(data)
        logger.info("stored %s locally at %s", key, path)
        return UploadResult(url=None, key=path)
