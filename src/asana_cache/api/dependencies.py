"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from asana_cache.config import Settings, get_redis_client, get_settings
from asana_cache.handlers import CacheHandler
from asana_cache.protocols import CacheStore, UpstreamClient
from asana_cache.repositories import AsanaClient, FileCacheRepository, RedisCacheRepository
from asana_cache.services import CacheService

logger = logging.getLogger(__name__)


def get_handler(request: Request) -> CacheHandler:
    """Dependency injection for CacheHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "cache_handler", None)
    if handler is None:
        raise RuntimeError("CacheHandler not initialized. Check lifespan setup.")
    return handler


def build_repository(config: Settings) -> CacheStore:
    """Create the cache store selected by CACHE_BACKEND.

    Raises:
        CacheDirectoryError: The file backend cannot create its directory
    """
    if config.cache_backend == "redis":
        return RedisCacheRepository(redis_client=get_redis_client(config), prefix=config.cache_key_prefix)
    return FileCacheRepository(cache_dir=config.cache_dir)


def build_upstream(config: Settings) -> AsanaClient:
    """Create the Asana client from settings."""
    return AsanaClient(
        access_token=config.asana_access_token,
        base_url=config.asana_api_base,
        timeout=config.asana_timeout,
        page_size=config.asana_page_size,
    )


def make_lifespan(
    config: Settings | None = None,
    repository: CacheStore | None = None,
    upstream: UpstreamClient | None = None,
    clock: Callable[[], float] = time.time,
) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Build the lifespan context manager for the app.

    Explicit repository/upstream/clock arguments replace the defaults,
    which is how tests plug in fakes. The clock must be the one the
    repository stamps entries with.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Initialize all layers and store them in app.state.

        1. Repository (cache store) - fails fast if unusable
        2. Upstream client (Asana)
        3. Service (business logic) - app.state.cache_service
        4. Handler (HTTP endpoints) - app.state.cache_handler
        """
        cfg = config or get_settings()
        store = repository if repository is not None else build_repository(cfg)
        client = upstream if upstream is not None else build_upstream(cfg)

        cache_service = CacheService.create(
            repository=store,
            upstream=client,
            ttl_by_kind=cfg.ttl_by_kind,
            default_ttl=cfg.cache_ttl,
            negative_ttl=cfg.cache_negative_ttl,
            max_attempts=cfg.upstream_max_attempts,
            backoff_base=cfg.upstream_backoff_base,
            backoff_max=cfg.upstream_backoff_max,
            clock=clock,
        )
        cache_handler = CacheHandler(cache_service=cache_service)

        app.state.cache_service = cache_service
        app.state.cache_handler = cache_handler
        app.state.repository = store
        app.state.upstream = client

        stats = store.get_stats()
        logger.info("Cache backend: %s (%s)", stats.get("backend"), stats.get("location"))
        logger.info("Upstream: %s", cfg.asana_api_base)
        if not cfg.asana_access_token and upstream is None:
            logger.warning("ASANA_ACCESS_TOKEN is not set; cache misses will fail with auth_failed")
        logger.info("Cache healthy: %s", cache_service.is_healthy())

        yield

        await client.close()
        del app.state.cache_handler
        del app.state.cache_service
        del app.state.repository
        del app.state.upstream
        logger.info("Cache service shut down")

    return lifespan


# Type aliases for cleaner dependency injection
HandlerDep = Annotated[CacheHandler, Depends(get_handler)]
