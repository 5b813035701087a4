"""File-system implementation of CacheStore.

One JSON file per key inside the cache directory. This is the default
backend: it survives process restarts, which matters because the service
runs as many short-lived processes in front of a rate-limited API.
"""

import errno
import hashlib
import json
import logging
import os
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from asana_cache.config import settings
from asana_cache.entities import CacheEntryEntity
from asana_cache.exceptions import CacheDirectoryError, StorageError

logger = logging.getLogger(__name__)

_DIRECTORY_ERRNOS = {errno.ENOENT, errno.EACCES, errno.EPERM, errno.EROFS, errno.ENOTDIR}


class FileCacheRepository:
    """Directory-backed cache store.

    This class satisfies the CacheStore protocol through structural
    typing - no explicit inheritance needed.

    Layout:
        <cache_dir>/<sha256(key)>.json  ->  {"key", "body", "stored_at", "ttl_seconds", "negative"}

    Keys are hashed for the filename because they contain characters
    like ":" and "?" and can be arbitrarily long. Writes go to a temp file
    in the same directory and are moved into place with os.replace, so a
    reader sees either the old record or the new one.
    """

    SUFFIX = ".json"

    def __init__(
        self,
        cache_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the repository and make sure the directory exists.

        Args:
            cache_dir: Directory for cache files. Defaults to settings.
            clock: Source of "now" for stored_at timestamps.

        Raises:
            CacheDirectoryError: If the directory cannot be created
        """
        self._dir = Path(cache_dir or settings.cache_dir)
        self._clock = clock
        self._ensure_dir()

    @classmethod
    def create(
        cls,
        cache_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "FileCacheRepository":
        """Factory method to create FileCacheRepository with defaults.

        Args:
            cache_dir: Cache directory. If None, uses settings.
            clock: Time source, mostly useful in tests.

        Returns:
            Configured FileCacheRepository
        """
        return cls(cache_dir=cache_dir, clock=clock)

    def _ensure_dir(self) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheDirectoryError(str(self._dir), original_error=e) from e
        if not os.access(self._dir, os.W_OK):
            raise CacheDirectoryError(str(self._dir))

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self._dir / f"{digest}{self.SUFFIX}"

    def _read(self, path: Path) -> CacheEntryEntity | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read cache file {path.name}", original_error=e) from e

        try:
            return CacheEntryEntity.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError(f"Corrupt cache file {path.name}", original_error=e) from e

    def get(self, key: str) -> CacheEntryEntity | None:
        """Read an entry by key.

        Args:
            key: The cache key

        Returns:
            The entry (possibly expired), or None if absent
        """
        entry = self._read(self._path_for(key))
        if entry is not None and entry.key != key:
            # sha256 collision or a hand-edited file; either way not ours
            logger.warning("Cache file for %s holds key %s, ignoring", key, entry.key)
            return None
        return entry

    def put(self, key: str, body: Any, ttl_seconds: int, negative: bool = False) -> CacheEntryEntity:
        """Write an entry, replacing any existing one.

        Args:
            key: The cache key
            body: JSON-compatible payload
            ttl_seconds: Freshness window
            negative: Marks a cached "not found"

        Returns:
            The stored entry

        Raises:
            CacheDirectoryError: Directory missing and cannot be recreated, or not writable
            StorageError: Serialization or other I/O fault
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

        if not self._dir.is_dir():
            logger.warning("Cache directory %s disappeared, recreating", self._dir)
            self._ensure_dir()

        target = self._path_for(key)
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".tmp-", suffix=self.SUFFIX)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, target)
            tmp_name = None
        except OSError as e:
            if e.errno in _DIRECTORY_ERRNOS:
                raise CacheDirectoryError(str(self._dir), original_error=e) from e
            raise StorageError("Failed to write cache entry", key=key, original_error=e) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

        return entry

    def delete(self, key: str) -> bool:
        """Delete an entry by key. Absent keys are fine.

        Returns:
            True if a file was removed
        """
        try:
            self._path_for(key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError("Failed to delete cache entry", key=key, original_error=e) from e

    def _files(self) -> list[Path]:
        try:
            return sorted(p for p in self._dir.glob(f"*{self.SUFFIX}") if not p.name.startswith(".tmp-"))
        except OSError as e:
            raise StorageError("Failed to list cache directory", original_error=e) from e

    def clear(self) -> int:
        """Remove all entries.

        Returns:
            Number of entries deleted
        """
        count = 0
        for path in self._files():
            try:
                path.unlink()
                count += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to delete cache file {path.name}", original_error=e) from e
        return count

    def keys(self) -> list[str]:
        """List all stored keys. Unreadable files are skipped."""
        keys = []
        for path in self._files():
            try:
                entry = self._read(path)
            except StorageError as e:
                logger.warning("Skipping unreadable cache file %s: %s", path.name, e.message)
                continue
            if entry is not None:
                keys.append(entry.key)
        return keys

    def count_all(self) -> int:
        """Count total entries in the cache."""
        return len(self._files())

    def health_check(self) -> bool:
        """Check that the cache directory exists and is writable."""
        return self._dir.is_dir() and os.access(self._dir, os.W_OK)

    def get_stats(self) -> dict:
        """Get repository statistics.

        Returns:
            Dictionary with stats
        """
        return {
            "backend": "file",
            "location": str(self._dir.resolve()),
            "total_entries": self.count_all(),
        }

    @property
    def cache_dir(self) -> Path:
        """Get the cache directory."""
        return self._dir
