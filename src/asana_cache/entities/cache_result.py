"""Cache lookup and status entities."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class CacheState(str, Enum):
    """What the caller is getting back."""

    FRESH = "fresh"
    STALE = "stale"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CacheLookupEntity:
    """Result of a Cache Service lookup.

    Attributes:
        key: Cache key of the resource
        body: Payload (None for not_found)
        state: fresh, stale or not_found
        stored_at: When the served data was fetched from upstream
        expires_at: When the served data stops being fresh
        degraded: True when upstream failed and cached data was served instead
        source: "cache" or "upstream"
    """

    key: str
    body: Any
    state: CacheState
    stored_at: float | None
    expires_at: float | None
    degraded: bool = False
    source: str = "cache"

    @property
    def is_stale(self) -> bool:
        return self.state is CacheState.STALE


@dataclass(frozen=True)
class CacheStatusEntity:
    """Summary of what the cache currently holds."""

    total_entries: int
    fresh_entries: int
    stale_entries: int
    negative_entries: int
    oldest_stored_at: float | None
    newest_stored_at: float | None
    next_expiry_at: float | None
    project_count: int | None = None

    @property
    def has_data(self) -> bool:
        return self.total_entries > 0

    @property
    def is_expired(self) -> bool:
        return self.has_data and self.fresh_entries == 0
