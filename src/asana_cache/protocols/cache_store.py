"""Cache storage protocol.

Defines the interface for a durable key -> response store. The store is a
passive persistence layer: it does not decide freshness and never drops
entries on its own when they expire.

Implementations:
- Directory of JSON files (default)
- Redis
"""

from typing import Any, Protocol, runtime_checkable

from asana_cache.entities import CacheEntryEntity


@runtime_checkable
class CacheStore(Protocol):
    """Protocol for cache storage backends.

    Any type that implements these methods satisfies the protocol,
    no explicit inheritance needed.
    """

    def get(self, key: str) -> CacheEntryEntity | None:
        """Read an entry.

        Args:
            key: The cache key

        Returns:
            The entry (fresh or expired), or None if absent

        Raises:
            StorageError: On I/O fault
        """
        ...

    def put(self, key: str, body: Any, ttl_seconds: int, negative: bool = False) -> CacheEntryEntity:
        """Write an entry, replacing any existing one for the key.

        Args:
            key: The cache key
            body: JSON-compatible payload
            ttl_seconds: Freshness window in seconds
            negative: Marks a cached "not found" result

        Returns:
            The stored entry

        Raises:
            CacheDirectoryError: Storage location missing or not writable
            StorageError: Any other I/O fault
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete an entry. Deleting an absent key is not an error.

        Returns:
            True if something was removed
        """
        ...

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries deleted
        """
        ...

    def keys(self) -> list[str]:
        """List all stored keys."""
        ...

    def count_all(self) -> int:
        """Count stored entries."""
        ...

    def health_check(self) -> bool:
        """Check that the store is reachable and writable."""
        ...

    def get_stats(self) -> dict:
        """Get repository statistics (implementation-specific)."""
        ...
