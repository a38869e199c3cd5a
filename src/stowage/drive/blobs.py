"""Blob store protocol and implementations.

``BlobStore`` is the only surface the drive uses to touch bytes.  Every
implementation must treat ``remove`` of a missing key as success and
report any other failure as ``UpstreamStorageError``.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets
import time
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import parse_qs, quote, unquote, urlsplit

from .exceptions import UpstreamStorageError

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

S3_DELETE_BATCH = 1000
"""Maximum keys per S3 ``DeleteObjects`` request."""


@runtime_checkable
class BlobStore(Protocol):
    """External object store holding file bytes."""

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None: ...

    async def remove(self, keys: Sequence[str]) -> None:
        """Remove *keys*.  Idempotent: missing keys are not an error."""
        ...

    async def copy(self, source_key: str, dest_key: str) -> None: ...

    async def sign(self, key: str, ttl_seconds: int) -> str:
        """Return a time-limited retrieval URL for *key*."""
        ...

    async def sign_upload(self, key: str, ttl_seconds: int) -> str:
        """Return a time-limited upload URL for *key*."""
        ...


class MemoryBlobStore:
    """In-process blob store with HMAC-signed ``memory://`` URLs.

    Useful for tests and single-process deployments.
    """

    def __init__(self, bucket: str = "user-data", secret: bytes | None = None) -> None:
        self.bucket = bucket
        self._secret = secret or secrets.token_bytes(32)
        self._blobs: dict[str, bytes] = {}
        self._content_types: dict[str, str | None] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)

    def keys(self) -> list[str]:
        return sorted(self._blobs)

    def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        self._blobs[key] = bytes(data)
        self._content_types[key] = content_type

    async def remove(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._blobs.pop(key, None)
            self._content_types.pop(key, None)

    async def copy(self, source_key: str, dest_key: str) -> None:
        if source_key not in self._blobs:
            raise UpstreamStorageError(f"Blob not found: {source_key}")
        self._blobs[dest_key] = self._blobs[source_key]
        self._content_types[dest_key] = self._content_types.get(source_key)

    async def sign(self, key: str, ttl_seconds: int) -> str:
        return self._signed_url("get", key, ttl_seconds)

    async def sign_upload(self, key: str, ttl_seconds: int) -> str:
        return self._signed_url("put", key, ttl_seconds)

    def verify_url(self, url: str, *, now: float | None = None) -> str | None:
        """Return the key a URL grants access to, or ``None`` if invalid or expired."""
        parts = urlsplit(url)
        query = parse_qs(parts.query)
        try:
            expires = int(query["expires"][0])
            method = query["method"][0]
            signature = query["signature"][0]
        except (KeyError, ValueError, IndexError):
            return None
        key = unquote(parts.path.lstrip("/"))
        expected = self._signature(method, key, expires)
        if not hmac.compare_digest(expected, signature):
            return None
        if expires < (now if now is not None else time.time()):
            return None
        return key

    def _signed_url(self, method: str, key: str, ttl_seconds: int) -> str:
        expires = int(time.time()) + ttl_seconds
        signature = self._signature(method, key, expires)
        return (
            f"memory://{self.bucket}/{quote(key)}"
            f"?method={method}&expires={expires}&signature={signature}"
        )

    def _signature(self, method: str, key: str, expires: int) -> str:
        message = f"{method}\n{self.bucket}\n{key}\n{expires}".encode()
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()


class S3BlobStore:
    """S3-backed blob store.

    All SDK calls are wrapped in ``asyncio.to_thread`` because boto3 is
    sync-only.  ``botocore`` errors surface as ``UpstreamStorageError``.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    @classmethod
    def from_credentials(
        cls,
        bucket: str,
        *,
        region_name: str | None = None,
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        endpoint_url: str | None = None,
    ) -> S3BlobStore:
        """Build a store around a fresh boto3 S3 client."""
        import boto3

        client = boto3.client(
            "s3",
            region_name=region_name,
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            endpoint_url=endpoint_url,
        )
        return cls(client, bucket)

    async def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type
        await self._call("put", key, self._client.put_object, **kwargs)

    async def remove(self, keys: Sequence[str]) -> None:
        unique = list(dict.fromkeys(keys))
        for start in range(0, len(unique), S3_DELETE_BATCH):
            chunk = unique[start : start + S3_DELETE_BATCH]
            resp = await self._call(
                "remove",
                chunk[0],
                self._client.delete_objects,
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
            )
            # S3 reports deleting a missing key as success; anything listed here failed.
            errors = resp.get("Errors") or []
            if errors:
                failed = ", ".join(f"{e.get('Key')} ({e.get('Code')})" for e in errors)
                raise UpstreamStorageError(f"Blob removal failed for {len(errors)} key(s): {failed}")

    async def copy(self, source_key: str, dest_key: str) -> None:
        await self._call(
            "copy",
            source_key,
            self._client.copy_object,
            Bucket=self.bucket,
            Key=dest_key,
            CopySource={"Bucket": self.bucket, "Key": source_key},
        )

    async def sign(self, key: str, ttl_seconds: int) -> str:
        return await self._call(
            "sign",
            key,
            self._client.generate_presigned_url,
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ResponseContentDisposition": "inline",
            },
            ExpiresIn=ttl_seconds,
        )

    async def sign_upload(self, key: str, ttl_seconds: int) -> str:
        return await self._call(
            "sign upload",
            key,
            self._client.generate_presigned_url,
            "put_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )

    async def _call(self, action: str, key: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamStorageError(f"S3 {action} failed for {key}: {exc}") from exc
