"""Shared fixtures for the cache tests."""

import asyncio
from typing import Any

import pytest

from asana_cache.entities import ResourceDescriptor
from asana_cache.repositories import FileCacheRepository
from asana_cache.services import CacheService


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Scripted upstream client.

    Each fetch consumes the next outcome; the last one repeats. An outcome
    that is an exception instance is raised instead of returned.
    """

    def __init__(self, outcomes: list[Any] | None = None, gate: asyncio.Event | None = None) -> None:
        self.outcomes = list(outcomes or [{"data": "ok"}])
        self.gate = gate
        self.calls: list[str] = []
        self.closed = False

    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        self.calls.append(descriptor.key)
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def is_available(self) -> bool:
        return True

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Stand-in for asyncio.sleep that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def store(tmp_path, clock):
    return FileCacheRepository.create(cache_dir=tmp_path / "cache", clock=clock)


@pytest.fixture
def make_service(store, clock, sleep):
    """Build a CacheService around the temp store with test-friendly policy."""

    def _make(upstream, **options) -> CacheService:
        options.setdefault("ttl_by_kind", {"project_tasks": 300, "task": 300, "projects": 3600})
        options.setdefault("default_ttl", 3600)
        options.setdefault("negative_ttl", 60)
        options.setdefault("max_attempts", 3)
        options.setdefault("backoff_base", 0.5)
        options.setdefault("backoff_max", 8.0)
        return CacheService.create(repository=store, upstream=upstream, clock=clock, sleep=sleep, **options)

    return _make
