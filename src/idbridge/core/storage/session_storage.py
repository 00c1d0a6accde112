"""Session storage interface and implementations.

Login attempts and user sessions share one storage backend: Redis when it is
configured, an in-process dictionary otherwise. Both honour the same contract.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from typing import Any, TypeVar

import redis.asyncio as redis
from loguru import logger
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from src.idbridge.runtime.config.config_data import ConfigData
from src.idbridge.runtime.context import get_config

T = TypeVar("T", bound=BaseModel)


class SessionStorageError(RuntimeError):
    """The storage backend could not complete an operation."""


class SessionStorage(ABC):
    """Abstract interface for session storage backends."""

    @abstractmethod
    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        """Store a session with TTL.

        Args:
            key: Session identifier
            value: Session data (Pydantic model)
            ttl_seconds: Time to live in seconds
        """

    @abstractmethod
    async def get(self, key: str, model_class: type[T]) -> T | None:
        """Retrieve a session, or None if not found or expired."""

    @abstractmethod
    async def pop(self, key: str, model_class: type[T]) -> T | None:
        """Atomically retrieve and delete a session.

        Of several concurrent callers at most one receives the value.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a session."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Clean up expired sessions.

        Returns:
            Number of sessions cleaned up
        """


class InMemorySessionStorage(SessionStorage):
    """In-memory session storage with TTL support, for single instances."""

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}

    def _live_entry(self, key: str) -> dict[str, Any] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if time.time() > entry["expires_at"]:
            del self._data[key]
            return None
        return entry

    def _load(self, key: str, entry: dict[str, Any], model_class: type[T]) -> T | None:
        try:
            return model_class.model_validate(entry["data"])
        except ValidationError:
            logger.warning("Discarding corrupted session {}", key)
            self._data.pop(key, None)
            return None

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        self._data[key] = {
            "data": json.loads(value.model_dump_json()),
            "expires_at": time.time() + ttl_seconds,
        }

    async def get(self, key: str, model_class: type[T]) -> T | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        return self._load(key, entry, model_class)

    async def pop(self, key: str, model_class: type[T]) -> T | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        del self._data[key]
        return self._load(key, entry, model_class)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired_keys = [
            key for key, entry in self._data.items() if now > entry["expires_at"]
        ]

        for key in expired_keys:
            del self._data[key]

        return len(expired_keys)


class RedisSessionStorage(SessionStorage):
    """Redis-based session storage, shared between instances."""

    def __init__(self, redis_client: redis.Redis):
        self._redis = redis_client

    async def _call(self, operation: str, coro):
        try:
            return await coro
        except RedisError as e:
            raise SessionStorageError(f"Redis {operation} failed: {e}") from e

    @staticmethod
    def _decode(data: str | bytes | None, model_class: type[T]) -> T | None:
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            return model_class.model_validate_json(data)
        except ValidationError:
            logger.warning("Discarding corrupted session payload from Redis")
            return None

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        await self._call("set", self._redis.setex(key, ttl_seconds, value.model_dump_json()))

    async def get(self, key: str, model_class: type[T]) -> T | None:
        data = await self._call("get", self._redis.get(key))
        return self._decode(data, model_class)

    async def pop(self, key: str, model_class: type[T]) -> T | None:
        data = await self._call("getdel", self._redis.getdel(key))
        return self._decode(data, model_class)

    async def delete(self, key: str) -> None:
        await self._call("delete", self._redis.delete(key))

    async def cleanup_expired(self) -> int:
        """Redis handles expiration automatically."""
        return 0

    async def ping(self) -> bool:
        """Test Redis connection health."""
        try:
            await self._redis.ping()
        except (RedisError, OSError):
            return False
        return True

    async def close(self) -> None:
        await self._redis.aclose()


# Global storage instance
_storage: SessionStorage | None = None


async def create_session_storage(config: ConfigData) -> SessionStorage:
    """Build the storage backend selected by ``config.redis``.

    An unreachable Redis falls back to memory outside production and is an
    error in production.
    """
    if not config.redis.enabled or not config.redis.url:
        logger.info("Session storage: in-memory")
        return InMemorySessionStorage()

    redis_client = redis.from_url(
        config.redis.connection_string,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    redis_storage = RedisSessionStorage(redis_client)
    if await redis_storage.ping():
        logger.info("Session storage: Redis connected")
        return redis_storage

    await redis_storage.close()
    if config.app.environment == "production":
        raise SessionStorageError("Redis is configured but unreachable")

    logger.warning("Redis unavailable, using in-memory session storage")
    return InMemorySessionStorage()


async def get_session_storage() -> SessionStorage:
    """Get the configured session storage instance."""
    global _storage

    if _storage is None:
        _storage = await create_session_storage(get_config())

    return _storage


def _reset_storage() -> None:
    """Reset storage instance (for testing)."""
    global _storage
    _storage = None
