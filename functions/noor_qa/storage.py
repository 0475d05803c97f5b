"""
Key-value store abstraction over Redis, S3-compatible blob storage (Tencent
COS) and an in-memory implementation for tests and local runs.

Values are JSON documents. A missing key is reported as ``None``; transport
and authorization failures raise :class:`StoreError`.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

import boto3
import redis.asyncio as redis
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool
from redis import exceptions as redis_exceptions

from noor_qa.config import ConfigurationError, Settings

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """The backing store could not be reached or refused the operation."""


class KeyValueStore(Protocol):
    """Defines the operations the service needs from the key-value store."""

    async def get(self, key: str) -> Optional[Any]:
        ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...


@dataclass
class InMemoryKeyValueStore:
    """Test double for store interactions."""

    stored_objects: dict = field(default_factory=dict)
    expirations: dict = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic

    def _expired(self, key: str) -> bool:
        deadline = self.expirations.get(key)
        return deadline is not None and self.clock() >= deadline

    async def get(self, key: str) -> Optional[Any]:
        if self._expired(key):
            self.stored_objects.pop(key, None)
            self.expirations.pop(key, None)
        raw = self.stored_objects.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        # Keep the serialized form to mimic real backends.
        self.stored_objects[key] = json.dumps(value)
        if ttl:
            self.expirations[key] = self.clock() + ttl
        else:
            self.expirations.pop(key, None)

    async def delete(self, key: str) -> None:
        self.stored_objects.pop(key, None)
        self.expirations.pop(key, None)

    async def close(self) -> None:
        return None


@dataclass
class RedisKeyValueStore:
    """Redis-backed store using native key expiry for TTLs."""

    url: str
    namespace: str = "questions"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._key(key))
        except redis_exceptions.RedisError as exc:
            raise StoreError(f"Redis GET failed for {key!r}") from exc
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            await self.client.set(self._key(key), json.dumps(value), ex=ttl or None)
        except redis_exceptions.RedisError as exc:
            raise StoreError(f"Redis SET failed for {key!r}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except redis_exceptions.RedisError as exc:
            raise StoreError(f"Redis DEL failed for {key!r}") from exc

    async def close(self) -> None:
        await self.client.aclose()


@dataclass
class CosKeyValueStore:
    """
    Blob-backed store on an S3-compatible bucket (Tencent COS).

    Each key is one JSON object. Buckets have no per-object expiry, so a TTL
    is written into the envelope and enforced on read.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    namespace: str = "questions"
    clock: Callable[[], float] = time.time

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _object_key(self, key: str) -> str:
        return f"{self.namespace}/{key}.json"

    def _get_sync(self, key: str) -> Optional[Any]:
        try:
            response = self._client.get_object(
                Bucket=self.bucket, Key=self._object_key(key)
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise StoreError(f"Blob GET failed for {key!r}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Blob GET failed for {key!r}") from exc

        try:
            envelope = json.loads(response["Body"].read())
        except ValueError as exc:
            raise StoreError(f"Blob object for {key!r} is not valid JSON") from exc
        if not isinstance(envelope, dict) or "value" not in envelope:
            raise StoreError(f"Blob object for {key!r} is not a stored envelope")
        expires_at = envelope.get("expires_at")
        if expires_at is not None and self.clock() >= expires_at:
            self._delete_sync(key)
            return None
        return envelope.get("value")

    def _set_sync(self, key: str, value: Any, ttl: Optional[int]) -> None:
        envelope = {
            "value": value,
            "expires_at": self.clock() + ttl if ttl else None,
            "written_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self._object_key(key),
                Body=json.dumps(envelope).encode("utf-8"),
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Blob PUT failed for {key!r}") from exc

    def _delete_sync(self, key: str) -> None:
        # S3 DELETE succeeds for missing objects.
        try:
            self._client.delete_object(Bucket=self.bucket, Key=self._object_key(key))
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Blob DELETE failed for {key!r}") from exc

    async def get(self, key: str) -> Optional[Any]:
        return await run_in_threadpool(self._get_sync, key)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await run_in_threadpool(self._set_sync, key, value, ttl)

    async def delete(self, key: str) -> None:
        await run_in_threadpool(self._delete_sync, key)

    async def close(self) -> None:
        self._client.close()


def build_key_value_store(settings: Settings) -> KeyValueStore:
    """
    Resolve the configured backend into a store handle, or fail fast.
    """
    backend = settings.store_backend
    if backend == "redis":
        if not settings.redis_url:
            raise ConfigurationError("REDIS_URL is required for the redis store")
        store: KeyValueStore = RedisKeyValueStore(
            url=settings.redis_url, namespace=settings.store_namespace
        )
    elif backend == "cos":
        if not settings.cos_bucket:
            raise ConfigurationError("COS_BUCKET is required for the cos store")
        store = CosKeyValueStore(
            bucket=settings.cos_bucket,
            region=settings.cos_region or "",
            endpoint=settings.cos_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            namespace=settings.store_namespace,
        )
    elif backend == "memory":
        logger.warning("Using the in-memory store; data will not survive restarts")
        store = InMemoryKeyValueStore()
    else:
        raise ConfigurationError(f"Unknown STORE_BACKEND {backend!r}")
    logger.info("Key-value store: %s", store.__class__.__name__)
    return store
