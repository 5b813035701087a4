"""Redis implementation of CacheStore.

For deployments where several service processes on different hosts share
one cache. Each entry is a JSON string under "<prefix>:<key>".
"""

import json
import time
from collections.abc import Callable
from typing import Any

import redis

from asana_cache.config import get_redis_client, settings
from asana_cache.entities import CacheEntryEntity
from asana_cache.exceptions import StorageError


class RedisCacheRepository:
    """Redis-backed cache store.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed.

    No Redis EXPIRE is set on entries: expired entries must stay
    readable so they can be served as a stale fallback.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        prefix: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the Redis cache repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            prefix: Key namespace. Defaults to settings.cache_key_prefix.
            clock: Source of "now" for stored_at timestamps.
        """
        self._client = redis_client or get_redis_client()
        self._prefix = prefix or settings.cache_key_prefix
        self._clock = clock

    @classmethod
    def create(
        cls,
        redis_client: redis.Redis | None = None,
        prefix: str | None = None,
    ) -> "RedisCacheRepository":
        """Factory method to create RedisCacheRepository with defaults.

        Args:
            redis_client: Redis client. If None, built from settings.
            prefix: Key namespace. If None, uses settings.

        Returns:
            Configured RedisCacheRepository
        """
        return cls(redis_client=redis_client, prefix=prefix)

    def _redis_key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _strip(self, redis_key: bytes | str) -> str:
        if isinstance(redis_key, bytes):
            redis_key = redis_key.decode()
        return redis_key[len(self._prefix) + 1 :]

    def get(self, key: str) -> CacheEntryEntity | None:
        """Read an entry by key.

        Returns:
            The entry (possibly expired), or None if absent
        """
        try:
            raw = self._client.get(self._redis_key(key))
        except redis.RedisError as e:
            raise StorageError("Redis read failed", key=key, original_error=e) from e

        if raw is None:
            return None

        try:
            return CacheEntryEntity.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError("Corrupt cache entry", key=key, original_error=e) from e

    def put(self, key: str, body: Any, ttl_seconds: int, negative: bool = False) -> CacheEntryEntity:
        """Write an entry, replacing any existing one.

        Returns:
            The stored entry
        """
        entry = CacheEntryEntity(
            key=key,
            body=body,
            stored_at=self._clock(),
            ttl_seconds=ttl_seconds,
            negative=negative,
        )
        try:
            payload = json.dumps(entry.to_dict())
        except (TypeError, ValueError) as e:
            raise StorageError("Cache body is not JSON serializable", key=key, original_error=e) from e

        try:
            self._client.set(self._redis_key(key), payload)
        except redis.RedisError as e:
            raise StorageError("Redis write failed", key=key, original_error=e) from e

        return entry

    def delete(self, key: str) -> bool:
        """Delete a specific entry by key.

        Returns:
            True if deleted, False if it was not there
        """
        try:
            result: int = self._client.delete(self._redis_key(key))  # type: ignore[assignment]
        except redis.RedisError as e:
            raise StorageError("Redis delete failed", key=key, original_error=e) from e
        return result > 0

    def _scan(self) -> list[bytes | str]:
        try:
            return list(self._client.scan_iter(match=f"{self._prefix}:*"))
        except redis.RedisError as e:
            raise StorageError("Redis scan failed", original_error=e) from e

    def clear(self) -> int:
        """Clear all entries under the prefix.

        Returns:
            Number of entries deleted
        """
        redis_keys = self._scan()
        if not redis_keys:
            return 0
        try:
            result: int = self._client.delete(*redis_keys)  # type: ignore[assignment]
        except redis.RedisError as e:
            raise StorageError("Redis delete failed", original_error=e) from e
        return result

    def keys(self) -> list[str]:
        """List all stored keys."""
        return [self._strip(k) for k in self._scan()]

    def count_all(self) -> int:
        """Count total entries in the cache."""
        return len(self._scan())

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def get_stats(self) -> dict:
        """Get repository statistics.

        Returns:
            Dictionary with stats
        """
        return {
            "backend": "redis",
            "location": self._prefix,
            "total_entries": self.count_all(),
        }

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
