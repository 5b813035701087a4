"""
Tests for CacheService: freshness, fallback, retries and single-flight.
"""

import asyncio
import gc
import shutil

import pytest
from conftest import FakeUpstream

from asana_cache.entities import CacheState, ResourceDescriptor
from asana_cache.exceptions import (
    AuthFailedError,
    RateLimitedError,
    ServiceUnavailableError,
    StorageError,
    TransientError,
    UpstreamError,
    UpstreamNotFoundError,
)

TASKS_123 = ResourceDescriptor.project_tasks("123")
TASKS_999 = ResourceDescriptor.project_tasks("999")


@pytest.mark.asyncio
async def test_miss_fetches_then_serves_fresh_then_stale(make_service, store, clock):
    upstream = FakeUpstream([{"tasks": []}])
    service = make_service(upstream)

    first = await service.get(TASKS_123)
    assert first.key == "proj:123:tasks"
    assert first.state is CacheState.FRESH
    assert first.source == "upstream"
    assert first.body == {"tasks": []}
    assert first.expires_at == clock.now + 300

    second = await service.get(TASKS_123)
    assert second.state is CacheState.FRESH
    assert second.source == "cache"
    assert second.body == {"tasks": []}
    assert upstream.calls == ["proj:123:tasks"]

    clock.advance(301)
    entry = store.get("proj:123:tasks")
    assert entry is not None
    assert not entry.is_fresh(clock.now)

    peeked = service.peek("proj:123:tasks")
    assert peeked.state is CacheState.STALE
    assert peeked.body == {"tasks": []}


@pytest.mark.asyncio
async def test_stale_entry_refetched_when_upstream_healthy(make_service, store, clock):
    store.put("proj:123:tasks", {"tasks": ["old"]}, 300)
    clock.advance(400)
    upstream = FakeUpstream([{"tasks": ["new"]}])
    service = make_service(upstream)

    result = await service.get(TASKS_123)

    assert result.state is CacheState.FRESH
    assert result.body == {"tasks": ["new"]}
    assert store.get("proj:123:tasks").body == {"tasks": ["new"]}


@pytest.mark.asyncio
async def test_rate_limited_with_stale_entry_serves_degraded(make_service, store, clock):
    store.put("proj:999:tasks", {"tasks": [1, 2]}, 300)
    clock.advance(600)
    upstream = FakeUpstream([RateLimitedError(retry_after=30)])
    service = make_service(upstream)

    result = await service.get(TASKS_999)

    assert result.state is CacheState.STALE
    assert result.degraded is True
    assert result.body == {"tasks": [1, 2]}
    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_rate_limited_without_cache_is_service_unavailable(make_service, sleep):
    upstream = FakeUpstream([RateLimitedError(retry_after=30)])
    service = make_service(upstream)

    with pytest.raises(ServiceUnavailableError) as exc_info:
        await service.get(TASKS_123)

    assert exc_info.value.reason == "rate_limited"
    assert exc_info.value.retry_after == 30
    assert len(upstream.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_auth_failure_is_not_retried(make_service, store, clock, sleep):
    store.put("proj:123:tasks", {"tasks": []}, 300)
    clock.advance(301)
    upstream = FakeUpstream([AuthFailedError()])
    service = make_service(upstream)

    with pytest.raises(AuthFailedError):
        await service.get(TASKS_123)

    assert len(upstream.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_transient_retried_with_backoff_then_unavailable(make_service, sleep):
    upstream = FakeUpstream([TransientError("timeout")])
    service = make_service(upstream)

    with pytest.raises(ServiceUnavailableError) as exc_info:
        await service.get(TASKS_123)

    assert exc_info.value.reason == "service_unavailable"
    assert len(upstream.calls) == 3
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_transient_exhausted_falls_back_to_stale(make_service, store, clock):
    store.put("proj:123:tasks", {"tasks": ["cached"]}, 300)
    clock.advance(1000)
    upstream = FakeUpstream([TransientError("502 from upstream", status_code=502)])
    service = make_service(upstream, max_attempts=4)

    result = await service.get(TASKS_123)

    assert len(upstream.calls) == 4
    assert result.degraded is True
    assert result.state is CacheState.STALE
    assert result.body == {"tasks": ["cached"]}


@pytest.mark.asyncio
async def test_transient_then_success(make_service, sleep):
    upstream = FakeUpstream([TransientError("reset"), {"tasks": ["ok"]}])
    service = make_service(upstream)

    result = await service.get(TASKS_123)

    assert result.state is CacheState.FRESH
    assert result.body == {"tasks": ["ok"]}
    assert len(upstream.calls) == 2
    assert sleep.delays == [0.5]


@pytest.mark.asyncio
async def test_backoff_is_capped(make_service, sleep):
    upstream = FakeUpstream([TransientError("down")])
    service = make_service(upstream, max_attempts=6, backoff_base=1.0, backoff_max=5.0)

    with pytest.raises(ServiceUnavailableError):
        await service.get(TASKS_123)

    assert sleep.delays == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.asyncio
async def test_not_found_is_cached_as_negative(make_service, store, clock):
    upstream = FakeUpstream([UpstreamNotFoundError()])
    service = make_service(upstream)
    task = ResourceDescriptor.task("42")

    first = await service.get(task)
    assert first.state is CacheState.NOT_FOUND
    assert first.body is None

    entry = store.get("task:42")
    assert entry.negative is True
    assert entry.ttl_seconds == 60

    clock.advance(30)
    second = await service.get(task)
    assert second.state is CacheState.NOT_FOUND
    assert len(upstream.calls) == 1

    clock.advance(31)
    await service.get(task)
    assert len(upstream.calls) == 2


@pytest.mark.asyncio
async def test_unexpected_upstream_error_is_service_unavailable(make_service):
    upstream = FakeUpstream([UpstreamError("bad request", status_code=400)])
    service = make_service(upstream)

    with pytest.raises(ServiceUnavailableError):
        await service.get(TASKS_123)
    assert len(upstream.calls) == 1


@pytest.mark.asyncio
async def test_refresh_bypasses_fresh_entry(make_service):
    upstream = FakeUpstream([{"v": 1}, {"v": 2}])
    service = make_service(upstream)

    await service.get(TASKS_123)
    result = await service.refresh(TASKS_123)

    assert result.body == {"v": 2}
    assert result.source == "upstream"
    assert len(upstream.calls) == 2


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_fetch(make_service):
    gate = asyncio.Event()
    upstream = FakeUpstream([{"tasks": []}], gate=gate)
    service = make_service(upstream)

    pending = asyncio.gather(*(service.get(TASKS_123) for _ in range(5)))
    for _ in range(3):
        await asyncio.sleep(0)
    gate.set()
    results = await pending

    assert len(upstream.calls) == 1
    assert all(r.body == {"tasks": []} for r in results)
    assert service.get_stats()["coalesced"] == 4


@pytest.mark.asyncio
async def test_concurrent_failure_is_shared(make_service):
    gate = asyncio.Event()
    upstream = FakeUpstream([RateLimitedError()], gate=gate)
    service = make_service(upstream)

    pending = asyncio.gather(*(service.get(TASKS_123) for _ in range(3)), return_exceptions=True)
    for _ in range(3):
        await asyncio.sleep(0)
    gate.set()
    results = await pending

    assert len(upstream.calls) == 1
    assert all(isinstance(r, ServiceUnavailableError) for r in results)


@pytest.mark.asyncio
async def test_distinct_keys_fetch_independently(make_service):
    upstream = FakeUpstream([{"tasks": []}])
    service = make_service(upstream)

    await asyncio.gather(service.get(TASKS_123), service.get(TASKS_999))

    assert sorted(upstream.calls) == ["proj:123:tasks", "proj:999:tasks"]


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_fetch(make_service, store):
    gate = asyncio.Event()
    upstream = FakeUpstream([{"tasks": ["warm"]}], gate=gate)
    service = make_service(upstream)

    caller = asyncio.create_task(service.get(TASKS_123))
    for _ in range(3):
        await asyncio.sleep(0)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    gate.set()
    result = await service.get(TASKS_123)

    assert result.body == {"tasks": ["warm"]}
    assert len(upstream.calls) == 1
    assert store.get("proj:123:tasks").body == {"tasks": ["warm"]}


class BrokenStore:
    """Store whose reads and writes always fail."""

    def get(self, key):
        raise StorageError("disk unreadable", key=key)

    def put(self, key, body, ttl_seconds, negative=False):
        raise StorageError("disk full", key=key)

    def delete(self, key):
        raise StorageError("disk unreadable", key=key)

    def clear(self):
        return 0

    def keys(self):
        return []

    def count_all(self):
        return 0

    def health_check(self):
        return False

    def get_stats(self):
        return {"backend": "broken", "location": "", "total_entries": 0}


@pytest.mark.asyncio
async def test_storage_faults_degrade_to_passthrough(clock, sleep):
    from asana_cache.services import CacheService

    upstream = FakeUpstream([{"tasks": ["live"]}])
    service = CacheService.create(
        repository=BrokenStore(),
        upstream=upstream,
        ttl_by_kind={"project_tasks": 300},
        clock=clock,
        sleep=sleep,
    )

    result = await service.get(TASKS_123)

    assert result.state is CacheState.FRESH
    assert result.body == {"tasks": ["live"]}
    assert result.stored_at == clock.now
    assert service.get_stats()["storage_errors"] == 2
    assert service.is_healthy() is False


def test_status_counts_fresh_and_stale(make_service, store, clock):
    service = make_service(FakeUpstream())
    store.put("projects", [{"gid": "1"}], 3600)
    store.put("proj:1:tasks", [], 300)
    store.put("task:9", None, 60, negative=True)
    clock.advance(120)

    summary = service.status()

    assert summary.total_entries == 3
    assert summary.fresh_entries == 2
    assert summary.stale_entries == 1
    assert summary.negative_entries == 1
    assert summary.has_data is True
    assert summary.is_expired is False
    assert summary.next_expiry_at == clock.now - 120 + 300
    assert summary.project_count == 1


def test_invalidate_and_clear(make_service, store):
    service = make_service(FakeUpstream())
    store.put("projects", [], 3600)
    store.put("task:1", {}, 300)

    assert service.invalidate("projects") is True
    assert service.invalidate("projects") is False
    assert service.clear() == 1
    assert service.status().has_data is False


def test_create_wires_collaborators(make_service, store):
    upstream = FakeUpstream()
    service = make_service(upstream)

    assert service.repository is store
    assert service.upstream is upstream


def test_invalid_max_attempts(store):
    from asana_cache.services import CacheService

    with pytest.raises(ValueError):
        CacheService(repository=store, upstream=FakeUpstream(), max_attempts=0)


@pytest.mark.asyncio
async def test_refresh_failure_on_fresh_entry_is_not_degraded(make_service, store, clock):
    store.put("proj:5:tasks", {"tasks": ["current"]}, 300)
    clock.advance(10)
    upstream = FakeUpstream([RateLimitedError(retry_after=30)])
    service = make_service(upstream)

    result = await service.get(ResourceDescriptor.project_tasks("5"), refresh=True)

    assert result.state is CacheState.FRESH
    assert result.degraded is False
    assert not result.is_stale
    assert result.body == {"tasks": ["current"]}
    assert len(upstream.calls) == 1
    assert service.get_stats()["degraded_responses"] == 0


@pytest.mark.asyncio
async def test_refresh_transient_failure_on_fresh_entry_is_not_degraded(make_service, store, sleep):
    store.put("task:8", {"name": "x"}, 300)
    upstream = FakeUpstream([TransientError("reset")])
    service = make_service(upstream)

    result = await service.refresh(ResourceDescriptor.task("8"))

    assert result.state is CacheState.FRESH
    assert result.degraded is False
    assert len(upstream.calls) == 3


@pytest.mark.asyncio
async def test_missing_cache_directory_passes_through(make_service, store):
    shutil.rmtree(store.cache_dir)
    store.cache_dir.write_text("file where the cache directory was")
    service = make_service(FakeUpstream([{"tasks": ["live"]}]))

    result = await service.get(TASKS_123)

    assert result.state is CacheState.FRESH
    assert result.source == "upstream"
    assert result.body == {"tasks": ["live"]}
    assert service.get_stats()["storage_errors"] == 2


@pytest.mark.asyncio
async def test_outcome_retrieved_when_every_caller_cancelled(make_service):
    gate = asyncio.Event()
    upstream = FakeUpstream([AuthFailedError()], gate=gate)
    service = make_service(upstream)
    loop = asyncio.get_running_loop()
    unhandled = []
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: unhandled.append(context))

    try:
        caller = asyncio.create_task(service.get(TASKS_123))
        for _ in range(3):
            await asyncio.sleep(0)
        fetch = service._inflight["proj:123:tasks"]
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        gate.set()
        while not fetch.done():
            await asyncio.sleep(0)
        assert "proj:123:tasks" not in service._inflight
        del fetch
        gc.collect()
    finally:
        loop.set_exception_handler(previous)

    assert unhandled == []


def test_analyzed_data_fresh_then_stale(make_service, clock):
    service = make_service(FakeUpstream(), default_ttl=3600)
    assert service.get_analyzed() is None

    entry = service.store_analyzed({"velocity": [3, 5, 8]})
    assert entry.key == "analyzed"
    assert entry.ttl_seconds == 3600

    fresh = service.get_analyzed()
    assert fresh.state is CacheState.FRESH
    assert fresh.degraded is False
    assert fresh.body == {"velocity": [3, 5, 8]}

    clock.advance(3601)
    stale = service.get_analyzed()
    assert stale.is_stale
    assert stale.degraded is True
    assert stale.body == {"velocity": [3, 5, 8]}


def test_store_analyzed_propagates_storage_errors(clock, sleep):
    from asana_cache.services import CacheService

    service = CacheService.create(repository=BrokenStore(), upstream=FakeUpstream(), clock=clock, sleep=sleep)

    with pytest.raises(StorageError):
        service.store_analyzed({"velocity": []})
