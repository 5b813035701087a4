"""FastAPI application exposing the cache over HTTP.

Routes mirror what the dashboard calls:
    GET    /api/health
    GET    /api/cache/projects
    GET    /api/cache/project/{gid}/tasks
    GET    /api/cache/project/{gid}/sections
    GET    /api/cache/task/{gid}
    GET    /api/cache/analyzed
    PUT    /api/cache/analyzed
    GET    /api/cache/status
    GET    /api/cache/stats
    DELETE /api/cache/entries/{key}
    DELETE /api/cache/clear
"""

import time
from collections.abc import Callable
from typing import Any

from fastapi import Body, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from asana_cache import __version__
from asana_cache.api.dependencies import HandlerDep, make_lifespan
from asana_cache.config import Settings, settings
from asana_cache.dto import (
    CachedResourceResponse,
    CacheStatsResponse,
    CacheStatusResponse,
    ClearCacheResponse,
    ErrorResponse,
    HealthCheckResponse,
    InvalidateResponse,
    StoreAnalyzedResponse,
)
from asana_cache.entities import ResourceDescriptor
from asana_cache.exceptions import InvalidResourceError
from asana_cache.handlers import CacheHandler
from asana_cache.logging_config import configure_logging
from asana_cache.protocols import CacheStore, UpstreamClient

DATA_RESPONSES: dict[int | str, dict[str, Any]] = {
    203: {"model": CachedResourceResponse, "description": "Stale data served because upstream failed"},
    404: {"model": ErrorResponse, "description": "Resource does not exist upstream"},
    429: {"model": ErrorResponse, "description": "Upstream rate limited and nothing cached"},
    502: {"model": ErrorResponse, "description": "Upstream rejected the access token"},
    503: {"model": ErrorResponse, "description": "Upstream unavailable and nothing cached"},
}

OptFields = Query(None, description="Comma-separated Asana opt_fields")
Refresh = Query(False, description="Bypass a fresh cache entry")


async def invalid_resource_handler(request: Request, exc: InvalidResourceError) -> JSONResponse:
    """Turn descriptor validation failures into a 400 envelope."""
    return CacheHandler.bad_request(exc)


def create_app(
    config: Settings | None = None,
    repository: CacheStore | None = None,
    upstream: UpstreamClient | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Settings. Defaults to the environment.
        repository: Cache store override (tests).
        upstream: Upstream client override (tests).
        clock: Time source shared with the repository (tests).
    """
    app = FastAPI(
        title="Asana Cache API",
        description="On-disk response cache in front of the rate-limited Asana API",
        version=__version__,
        lifespan=make_lifespan(config, repository, upstream, clock),
    )

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(InvalidResourceError, invalid_resource_handler)  # type: ignore[arg-type]

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "Asana Cache API",
            "version": __version__,
            "endpoints": {
                "health": "/api/health",
                "projects": "/api/cache/projects",
                "project_tasks": "/api/cache/project/{gid}/tasks",
                "project_sections": "/api/cache/project/{gid}/sections",
                "task": "/api/cache/task/{gid}",
                "analyzed": "/api/cache/analyzed",
                "status": "/api/cache/status",
                "stats": "/api/cache/stats",
                "docs": "/docs",
            },
        }

    @app.get("/api/health", response_model=HealthCheckResponse, responses={503: {"model": HealthCheckResponse}})
    async def health(handler: HandlerDep) -> JSONResponse:
        """Health check endpoint."""
        return await handler.health_check()

    @app.get("/api/cache/projects", response_model=CachedResourceResponse, responses=DATA_RESPONSES)
    async def get_projects(
        handler: HandlerDep,
        opt_fields: str | None = OptFields,
        refresh: bool = Refresh,
    ) -> JSONResponse:
        """Projects visible to the access token."""
        return await handler.get_resource(ResourceDescriptor.projects(opt_fields=opt_fields), refresh)

    @app.get("/api/cache/project/{gid}/tasks", response_model=CachedResourceResponse, responses=DATA_RESPONSES)
    async def get_project_tasks(
        gid: str,
        handler: HandlerDep,
        opt_fields: str | None = OptFields,
        refresh: bool = Refresh,
    ) -> JSONResponse:
        """Tasks of one project."""
        return await handler.get_resource(ResourceDescriptor.project_tasks(gid, opt_fields=opt_fields), refresh)

    @app.get("/api/cache/project/{gid}/sections", response_model=CachedResourceResponse, responses=DATA_RESPONSES)
    async def get_project_sections(
        gid: str,
        handler: HandlerDep,
        opt_fields: str | None = OptFields,
        refresh: bool = Refresh,
    ) -> JSONResponse:
        """Sections of one project."""
        return await handler.get_resource(ResourceDescriptor.project_sections(gid, opt_fields=opt_fields), refresh)

    @app.get("/api/cache/task/{gid}", response_model=CachedResourceResponse, responses=DATA_RESPONSES)
    async def get_task(
        gid: str,
        handler: HandlerDep,
        opt_fields: str | None = OptFields,
        refresh: bool = Refresh,
    ) -> JSONResponse:
        """A single task."""
        return await handler.get_resource(ResourceDescriptor.task(gid, opt_fields=opt_fields), refresh)

    @app.get(
        "/api/cache/analyzed",
        response_model=CachedResourceResponse,
        responses={
            203: {"model": CachedResourceResponse, "description": "Analyzed data older than the cache TTL"},
            404: {"model": ErrorResponse, "description": "Nothing stored yet"},
        },
    )
    async def get_analyzed(handler: HandlerDep) -> JSONResponse:
        """Analytics the dashboard computed and pushed earlier."""
        return await handler.get_analyzed()

    @app.api_route("/api/cache/analyzed", methods=["PUT", "POST"], response_model=StoreAnalyzedResponse)
    async def store_analyzed(handler: HandlerDep, payload: Any = Body(...)) -> StoreAnalyzedResponse:
        """Store the dashboard's analyzed data (any JSON document)."""
        return await handler.store_analyzed(payload)

    @app.get("/api/cache/status", response_model=CacheStatusResponse)
    async def cache_status(handler: HandlerDep) -> CacheStatusResponse:
        """What the cache holds and how fresh it is."""
        return await handler.get_status()

    @app.get("/api/cache/stats", response_model=CacheStatsResponse)
    async def cache_stats(handler: HandlerDep) -> CacheStatsResponse:
        """Hit/miss counters and cache policy."""
        return await handler.get_stats()

    @app.delete("/api/cache/clear", response_model=ClearCacheResponse)
    async def clear_cache(handler: HandlerDep) -> ClearCacheResponse:
        """Clear all entries from the cache."""
        return await handler.clear_cache()

    @app.delete("/api/cache/entries/{key:path}", response_model=InvalidateResponse)
    async def invalidate_entry(key: str, handler: HandlerDep) -> InvalidateResponse:
        """Delete one cache entry by key."""
        return await handler.invalidate(key)

    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(
        "asana_cache.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )


if __name__ == "__main__":
    main()
