"""
Blob stores backing the cache, meter and audit log.
"""

import asyncio
import functools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from shared.errors import (
    StorageConfigurationError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageUnavailableError,
)


_MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}
_PERMISSION_CODES = {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken"}
_UNAVAILABLE_CODES = {"SlowDown", "RequestTimeout", "ServiceUnavailable", "InternalError", "503", "500"}


class BlobStore:
    """Minimal async key-value object store.

    ``get`` returns ``None`` when the key does not exist and raises
    ``StorageError`` for anything else. ``put`` overwrites unconditionally.
    """

    async def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    async def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        raise NotImplementedError


class InMemoryBlobStore(BlobStore):
    """Dict-backed store for local runs and tests."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[bytes]:
        return self.objects.get(key)

    async def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        self.objects[key] = bytes(data)
        self.content_types[key] = content_type


@dataclass(frozen=True)
class S3Config:
    """Settings for an S3 or S3-compatible bucket."""

    bucket: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    timeout_seconds: float = 2.5


class S3BlobStore(BlobStore):
    """Blob store on top of boto3.

    boto3 is blocking, so every call runs in the loop's default executor and
    is bounded by ``asyncio.wait_for``. botocore retries are disabled: each
    operation is attempted once.
    """

    def __init__(self, config: S3Config, *, client=None):
        self.config = config
        self.bucket = (config.bucket or "").strip()

        if not self.bucket:
            raise StorageConfigurationError("S3 bucket is required")

        if client is not None:
            self._client = client
            return

        self._client = boto3.client(
            "s3",
            region_name=config.region or None,
            endpoint_url=config.endpoint_url or None,
            config=BotoConfig(
                connect_timeout=config.timeout_seconds,
                read_timeout=config.timeout_seconds,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await self._run(functools.partial(self._get_object, key), action="get", key=key)
        except _ObjectMissing:
            return None

    async def put(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        await self._run(
            functools.partial(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            ),
            action="put",
            key=key,
        )

    def _get_object(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    async def _run(self, call: Callable[[], Any], *, action: str, key: str) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, call),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise StorageUnavailableError(f"Storage {action} timed out", details={"key": key}) from exc
        except Exception as exc:
            mapped = self._map_storage_error(exc, key=key, action=action)
            if mapped is None:
                raise _ObjectMissing() from exc
            raise mapped from exc

    def _map_storage_error(self, exc: Exception, *, key: str, action: str) -> Optional[StorageError]:
        """Translate botocore failures; ``None`` means the object is missing."""
        if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
            return StorageUnavailableError("Storage unavailable (timeout/connection)", details={"key": key})

        if isinstance(exc, ClientError):
            code = str((exc.response.get("Error") or {}).get("Code") or "")

            if code in _MISSING_OBJECT_CODES:
                return None
            if code == "NoSuchBucket":
                return StorageNotFoundError(self.bucket, details={"key": key})
            if code in _PERMISSION_CODES:
                return StoragePermissionError(details={"key": key, "code": code})
            if code in _UNAVAILABLE_CODES:
                return StorageUnavailableError(details={"key": key, "code": code})

            return StorageError(f"Storage {action} failed (code={code})", details={"key": key})

        return StorageError(f"Storage {action} failed: {exc}", details={"key": key})


class _ObjectMissing(Exception):
    """Internal signal for a missing key."""
