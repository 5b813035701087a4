"""Cache service for core business logic.

This service orchestrates lookups by coordinating the cache store
(persistence) and the upstream client (Asana API).

Per request:
    CHECK_CACHE -> HIT_FRESH            -> respond from cache
                -> HIT_STALE or MISS    -> fetch upstream -> respond

Upstream failures are absorbed where a stale entry can stand in for
fresh data; only when there is nothing to serve do they reach the caller.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from asana_cache.config import settings
from asana_cache.entities import (
    CacheEntryEntity,
    CacheLookupEntity,
    CacheState,
    CacheStatusEntity,
    ResourceDescriptor,
)
from asana_cache.exceptions import (
    AuthFailedError,
    RateLimitedError,
    ServiceUnavailableError,
    StorageError,
    TransientError,
    UpstreamError,
    UpstreamNotFoundError,
)
from asana_cache.protocols import CacheStore, UpstreamClient

logger = logging.getLogger(__name__)

ANALYZED_KEY = "analyzed"


def _consume_outcome(task: asyncio.Task) -> None:
    if not task.cancelled():
        task.exception()


def _is_project_list(key: str) -> bool:
    return key == "projects" or key.startswith("projects?")


class CacheService:
    """Core cache orchestration service.

    This service depends on PROTOCOLS, not concrete implementations:
    - CacheStore: file directory, Redis, or an in-memory fake in tests
    - UpstreamClient: the Asana API client or a fake

    Single-flight: at most one upstream fetch per key is in flight. Later
    callers for the same key await the running fetch instead of starting
    their own. The fetch runs as its own task and is shielded from caller
    cancellation, so it still fills the cache if the caller disconnects.

    Example:
        ```python
        from asana_cache.repositories import AsanaClient, FileCacheRepository
        from asana_cache.services import CacheService

        cache = CacheService.create(
            repository=FileCacheRepository.create(),
            upstream=AsanaClient.create(),
        )
        result = await cache.get(ResourceDescriptor.project_tasks("123"))
        ```
    """

    def __init__(
        self,
        repository: CacheStore,
        upstream: UpstreamClient,
        ttl_by_kind: dict[str, int] | None = None,
        default_ttl: int | None = None,
        negative_ttl: int | None = None,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        backoff_max: float | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the cache service.

        Args:
            repository: Cache storage backend (required).
            upstream: Upstream API client (required).
            ttl_by_kind: Freshness window per resource kind. Defaults to settings.
            default_ttl: TTL for kinds missing from ttl_by_kind. Defaults to settings.
            negative_ttl: TTL for cached "not found" results. Defaults to settings.
            max_attempts: Total upstream attempts for transient failures. Defaults to settings.
            backoff_base: First retry delay in seconds; doubles per attempt.
            backoff_max: Upper bound for a single retry delay.
            clock: Source of "now" (seconds). Must match the repository's clock.
            sleep: Coroutine used for backoff delays.
        """
        self._repository = repository
        self._upstream = upstream
        self._ttl_by_kind = ttl_by_kind if ttl_by_kind is not None else settings.ttl_by_kind
        self._default_ttl = default_ttl if default_ttl is not None else settings.cache_ttl
        self._negative_ttl = negative_ttl if negative_ttl is not None else settings.cache_negative_ttl
        self._max_attempts = max_attempts if max_attempts is not None else settings.upstream_max_attempts
        self._backoff_base = backoff_base if backoff_base is not None else settings.upstream_backoff_base
        self._backoff_max = backoff_max if backoff_max is not None else settings.upstream_backoff_max
        self._clock = clock
        self._sleep = sleep

        if self._max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self._inflight: dict[str, asyncio.Task[CacheLookupEntity]] = {}
        self._counters = {
            "hits": 0,
            "misses": 0,
            "stale_refreshes": 0,
            "coalesced": 0,
            "upstream_calls": 0,
            "upstream_failures": 0,
            "degraded_responses": 0,
            "storage_errors": 0,
        }

    @classmethod
    def create(
        cls,
        repository: CacheStore,
        upstream: UpstreamClient,
        **options: Any,
    ) -> "CacheService":
        """Factory method to create CacheService with defaults from settings.

        Args:
            repository: Cache storage backend (required).
            upstream: Upstream API client (required).
            **options: Any keyword accepted by __init__ (TTLs, retry policy, clock).

        Returns:
            Configured CacheService instance
        """
        return cls(repository=repository, upstream=upstream, **options)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, descriptor: ResourceDescriptor, refresh: bool = False) -> CacheLookupEntity:
        """Return the resource, from cache when fresh, otherwise from upstream.

        Args:
            descriptor: The upstream resource
            refresh: Skip a fresh cache hit and go upstream anyway

        Returns:
            CacheLookupEntity with state fresh, stale (degraded) or not_found

        Raises:
            AuthFailedError: Upstream rejected the credentials (never retried)
            ServiceUnavailableError: Upstream failed and nothing is cached
        """
        key = descriptor.key
        cached = self._read(key)

        if cached is not None and cached.is_fresh(self._clock()) and not refresh:
            self._counters["hits"] += 1
            logger.debug("Cache hit: %s", key)
            return self._lookup_from_entry(cached, degraded=False, source="cache")

        if cached is None:
            self._counters["misses"] += 1
            logger.debug("Cache miss: %s", key)
        else:
            self._counters["stale_refreshes"] += 1
            logger.debug("Cache entry stale or refresh requested: %s", key)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch_and_store(descriptor, cached))
            # every waiter may have been cancelled; retrieve the outcome anyway
            task.add_done_callback(_consume_outcome)
            self._inflight[key] = task
        else:
            self._counters["coalesced"] += 1
            logger.debug("Joining in-flight fetch: %s", key)

        return await asyncio.shield(task)

    async def refresh(self, descriptor: ResourceDescriptor) -> CacheLookupEntity:
        """Force an upstream fetch for the resource (still single-flighted)."""
        return await self.get(descriptor, refresh=True)

    def peek(self, key: str) -> CacheLookupEntity | None:
        """Return what is cached for a key without touching upstream."""
        cached = self._read(key)
        if cached is None:
            return None
        return self._lookup_from_entry(cached, degraded=False, source="cache")

    async def _fetch_and_store(
        self,
        descriptor: ResourceDescriptor,
        stale: CacheEntryEntity | None,
    ) -> CacheLookupEntity:
        key = descriptor.key
        try:
            try:
                body = await self._fetch_with_retry(descriptor)
            except UpstreamNotFoundError:
                logger.info("Upstream has no %s, caching negative result for %ds", key, self._negative_ttl)
                entry = self._write(key, None, self._negative_ttl, negative=True)
                return self._lookup_from_upstream(key, None, self._negative_ttl, entry, CacheState.NOT_FOUND)
            except AuthFailedError:
                self._counters["upstream_failures"] += 1
                logger.error("Upstream authentication failed for %s; check ASANA_ACCESS_TOKEN", key)
                raise
            except RateLimitedError as e:
                self._counters["upstream_failures"] += 1
                if stale is not None:
                    return self._fallback(stale, "rate limited")
                raise ServiceUnavailableError(
                    f"Asana rate limit hit and nothing cached for {key}",
                    reason="rate_limited",
                    retry_after=e.retry_after,
                ) from e
            except TransientError as e:
                self._counters["upstream_failures"] += 1
                if stale is not None:
                    return self._fallback(stale, f"unavailable after {self._max_attempts} attempts")
                raise ServiceUnavailableError(
                    f"Asana unavailable after {self._max_attempts} attempts and nothing cached for {key}: {e.message}",
                ) from e
            except UpstreamError as e:
                self._counters["upstream_failures"] += 1
                raise ServiceUnavailableError(f"Unexpected upstream error for {key}: {e.message}") from e

            ttl = self._ttl_for(descriptor)
            entry = self._write(key, body, ttl)
            return self._lookup_from_upstream(key, body, ttl, entry, CacheState.FRESH)
        finally:
            self._inflight.pop(key, None)

    async def _fetch_with_retry(self, descriptor: ResourceDescriptor) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception_type(TransientError),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return await retrying(self._call_upstream, descriptor)
        except TransientError as e:
            logger.warning("Giving up on %s after %d attempts: %s", descriptor.key, self._max_attempts, e.message)
            raise

    async def _call_upstream(self, descriptor: ResourceDescriptor) -> Any:
        self._counters["upstream_calls"] += 1
        return await self._upstream.fetch(descriptor)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        descriptor = retry_state.args[0]
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Transient upstream error for %s (attempt %d/%d), retrying in %.2fs: %s",
            descriptor.key,
            retry_state.attempt_number,
            self._max_attempts,
            delay,
            error,
        )

    def _ttl_for(self, descriptor: ResourceDescriptor) -> int:
        return self._ttl_by_kind.get(descriptor.kind.value, self._default_ttl)

    # ------------------------------------------------------------------
    # Store access (storage faults degrade, they do not fail the request)
    # ------------------------------------------------------------------

    def _read(self, key: str) -> CacheEntryEntity | None:
        try:
            return self._repository.get(key)
        except StorageError as e:
            self._counters["storage_errors"] += 1
            logger.error("Cache read failed for %s, treating as miss: %s", key, e.message, exc_info=e)
            return None

    def _write(self, key: str, body: Any, ttl: int, negative: bool = False) -> CacheEntryEntity | None:
        try:
            return self._repository.put(key, body, ttl, negative=negative)
        except StorageError as e:
            self._counters["storage_errors"] += 1
            logger.error("Cache write failed for %s, serving uncached: %s", key, e.message, exc_info=e)
            return None

    # ------------------------------------------------------------------
    # Result construction
    # ------------------------------------------------------------------

    def _lookup_from_entry(self, entry: CacheEntryEntity, degraded: bool, source: str) -> CacheLookupEntity:
        if entry.negative:
            state = CacheState.NOT_FOUND
        elif entry.is_fresh(self._clock()):
            state = CacheState.FRESH
        else:
            state = CacheState.STALE
        return CacheLookupEntity(
            key=entry.key,
            body=entry.body,
            state=state,
            stored_at=entry.stored_at,
            expires_at=entry.expires_at,
            degraded=degraded,
            source=source,
        )

    def _lookup_from_upstream(
        self,
        key: str,
        body: Any,
        ttl: int,
        entry: CacheEntryEntity | None,
        state: CacheState,
    ) -> CacheLookupEntity:
        stored_at = entry.stored_at if entry is not None else self._clock()
        return CacheLookupEntity(
            key=key,
            body=body,
            state=state,
            stored_at=stored_at,
            expires_at=stored_at + ttl,
            degraded=False,
            source="upstream",
        )

    def _fallback(self, cached: CacheEntryEntity, why: str) -> CacheLookupEntity:
        if cached.is_fresh(self._clock()):
            # forced refresh failed but the entry is still inside its window
            logger.info("Refresh of %s failed (upstream %s), serving fresh cached copy", cached.key, why)
            return self._lookup_from_entry(cached, degraded=False, source="cache")
        self._counters["degraded_responses"] += 1
        logger.warning("Serving stale %s (upstream %s)", cached.key, why)
        return self._lookup_from_entry(cached, degraded=True, source="cache")

    # ------------------------------------------------------------------
    # Analyzed data (pushed by the dashboard, never fetched upstream)
    # ------------------------------------------------------------------

    def store_analyzed(self, body: Any) -> CacheEntryEntity:
        """Keep the dashboard's computed analytics under a fixed key.

        Raises:
            StorageError: The snapshot could not be written
        """
        entry = self._repository.put(ANALYZED_KEY, body, self._default_ttl)
        logger.info("Stored analyzed data, fresh for %ds", self._default_ttl)
        return entry

    def get_analyzed(self) -> CacheLookupEntity | None:
        """Return the analytics snapshot, flagged degraded once it has gone stale."""
        cached = self._read(ANALYZED_KEY)
        if cached is None:
            return None
        return self._lookup_from_entry(cached, degraded=not cached.is_fresh(self._clock()), source="cache")

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def invalidate(self, key: str) -> bool:
        """Delete a cache entry by key.

        Returns:
            True if deleted, False if it was not cached
        """
        return self._repository.delete(key)

    def clear(self) -> int:
        """Clear all cache entries.

        Returns:
            Number of entries deleted
        """
        count = self._repository.clear()
        logger.info("Cache cleared (%d entries)", count)
        return count

    def status(self) -> CacheStatusEntity:
        """Summarize cache contents by freshness."""
        now = self._clock()
        entries = [e for e in (self._read(k) for k in self._repository.keys()) if e is not None]
        fresh = [e for e in entries if e.is_fresh(now)]
        stored = [e.stored_at for e in entries]
        project_lists = sorted(
            (e for e in entries if _is_project_list(e.key) and isinstance(e.body, list)),
            key=lambda e: e.stored_at,
        )
        return CacheStatusEntity(
            total_entries=len(entries),
            fresh_entries=len(fresh),
            stale_entries=len(entries) - len(fresh),
            negative_entries=sum(1 for e in entries if e.negative),
            oldest_stored_at=min(stored) if stored else None,
            newest_stored_at=max(stored) if stored else None,
            next_expiry_at=min((e.expires_at for e in fresh), default=None),
            project_count=len(project_lists[-1].body) if project_lists else None,
        )

    def get_stats(self) -> dict:
        """Get cache statistics.

        Returns:
            Dictionary with repository stats, counters and policy
        """
        stats = self._repository.get_stats()
        stats.update(self._counters)
        stats["in_flight"] = len(self._inflight)
        stats["ttl_by_kind"] = dict(self._ttl_by_kind)
        stats["negative_ttl"] = self._negative_ttl
        stats["max_attempts"] = self._max_attempts
        return stats

    def now(self) -> float:
        """Current time on the service clock."""
        return self._clock()

    def is_healthy(self) -> bool:
        """Check if the cache store is reachable."""
        return self._repository.health_check()

    @property
    def repository(self) -> CacheStore:
        """Get the underlying repository (for testing)."""
        return self._repository

    @property
    def upstream(self) -> UpstreamClient:
        """Get the underlying upstream client (for testing)."""
        return self._upstream
