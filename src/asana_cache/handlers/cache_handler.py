"""HTTP handlers for cache operations.

Handlers convert between service results and DTOs (API contracts).
They handle HTTP concerns like status codes, headers and error envelopes.

Status codes let the browser tell data quality apart:
    200 fresh data
    203 stale data served because upstream failed (degraded)
    404 resource does not exist upstream
    429 upstream rate limited and nothing cached
    502 upstream rejected our credentials (operator action needed)
    503 upstream unavailable and nothing cached
"""

from typing import Any

from fastapi import HTTPException, status
from fastapi.responses import JSONResponse

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
from asana_cache.entities import CacheLookupEntity, CacheState, ResourceDescriptor
from asana_cache.exceptions import (
    AuthFailedError,
    InvalidResourceError,
    ServiceUnavailableError,
    StorageError,
)
from asana_cache.services import CacheService

CACHE_STATUS_HEADER = "X-Cache-Status"


def error_response(
    status_code: int,
    error: str,
    message: str,
    retry_after: float | None = None,
) -> JSONResponse:
    """Build the {error, message} envelope."""
    body = ErrorResponse(error=error, message=message, retry_after=retry_after)  # type: ignore[arg-type]
    headers = {}
    if retry_after is not None:
        headers["Retry-After"] = str(int(retry_after))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


class CacheHandler:
    """HTTP handlers for cache operations.

    This handler delegates business logic to CacheService
    and handles HTTP-specific concerns like:
    - Converting entities to DTOs
    - Setting appropriate status codes
    - Error handling and responses
    """

    def __init__(self, cache_service: CacheService) -> None:
        """Initialize the cache handler.

        Args:
            cache_service: The cache service for business logic (required).
        """
        self._cache = cache_service

    async def get_resource(self, descriptor: ResourceDescriptor, refresh: bool = False) -> JSONResponse:
        """Handle GET /api/cache/<resource> requests.

        Args:
            descriptor: The Asana resource to serve
            refresh: Bypass a fresh cache hit

        Returns:
            JSONResponse with CachedResourceResponse or an error envelope
        """
        try:
            result = await self._cache.get(descriptor, refresh=refresh)
        except AuthFailedError as e:
            return error_response(status.HTTP_502_BAD_GATEWAY, "auth_failed", e.message)
        except ServiceUnavailableError as e:
            if e.reason == "rate_limited":
                return error_response(
                    status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited", e.message, e.retry_after
                )
            return error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "service_unavailable", e.message)

        return self._to_response(result)

    def _to_response(self, result: CacheLookupEntity) -> JSONResponse:
        if result.state is CacheState.NOT_FOUND:
            response = error_response(status.HTTP_404_NOT_FOUND, "not_found", f"Resource not found: {result.key}")
            response.headers[CACHE_STATUS_HEADER] = "stale" if result.degraded else "fresh"
            return response

        body = CachedResourceResponse(
            key=result.key,
            state=result.state.value,  # type: ignore[arg-type]
            degraded=result.degraded,
            source=result.source,  # type: ignore[arg-type]
            stored_at=result.stored_at,
            expires_at=result.expires_at,
            data=result.body,
        )
        status_code = (
            status.HTTP_203_NON_AUTHORITATIVE_INFORMATION if result.degraded else status.HTTP_200_OK
        )
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(),
            headers={CACHE_STATUS_HEADER: result.state.value},
        )

    async def get_analyzed(self) -> JSONResponse:
        """Handle GET /api/cache/analyzed requests."""
        result = self._cache.get_analyzed()
        if result is None:
            return error_response(status.HTTP_404_NOT_FOUND, "not_found", "No analyzed data cached")
        return self._to_response(result)

    async def store_analyzed(self, body: Any) -> StoreAnalyzedResponse:
        """Handle PUT /api/cache/analyzed requests."""
        try:
            entry = self._cache.store_analyzed(body)
        except StorageError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to store analyzed data: {e.message}",
            ) from e
        return StoreAnalyzedResponse(
            success=True,
            key=entry.key,
            stored_at=entry.stored_at,
            expires_at=entry.expires_at,
        )

    async def get_status(self) -> CacheStatusResponse:
        """Handle GET /api/cache/status requests."""
        try:
            summary = self._cache.status()
        except StorageError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to read cache status: {e.message}",
            ) from e

        expires_in = None
        if summary.next_expiry_at is not None:
            expires_in = max(0.0, summary.next_expiry_at - self._cache.now())

        return CacheStatusResponse(
            has_data=summary.has_data,
            is_expired=summary.is_expired,
            total_entries=summary.total_entries,
            fresh_entries=summary.fresh_entries,
            stale_entries=summary.stale_entries,
            negative_entries=summary.negative_entries,
            last_updated=summary.newest_stored_at,
            oldest_entry=summary.oldest_stored_at,
            expires_in_seconds=expires_in,
            project_count=summary.project_count,
        )

    async def get_stats(self) -> CacheStatsResponse:
        """Handle GET /api/cache/stats requests."""
        try:
            stats = self._cache.get_stats()
        except StorageError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to get stats: {e.message}",
            ) from e

        counter_names = (
            "hits",
            "misses",
            "stale_refreshes",
            "coalesced",
            "upstream_calls",
            "upstream_failures",
            "degraded_responses",
            "storage_errors",
        )
        return CacheStatsResponse(
            backend=stats.get("backend", "unknown"),
            location=stats.get("location", ""),
            total_entries=stats.get("total_entries", 0),
            in_flight=stats.get("in_flight", 0),
            counters={name: stats.get(name, 0) for name in counter_names},
            ttl_by_kind=stats.get("ttl_by_kind", {}),
            negative_ttl=stats.get("negative_ttl", 0),
            max_attempts=stats.get("max_attempts", 1),
        )

    async def invalidate(self, key: str) -> InvalidateResponse:
        """Handle DELETE /api/cache/entries/{key} requests."""
        try:
            deleted = self._cache.invalidate(key)
        except StorageError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to delete entry: {e.message}",
            ) from e
        return InvalidateResponse(key=key, deleted=deleted)

    async def clear_cache(self) -> ClearCacheResponse:
        """Handle DELETE /api/cache/clear requests."""
        try:
            count = self._cache.clear()
        except StorageError as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to clear cache: {e.message}",
            ) from e

        return ClearCacheResponse(
            success=True,
            deleted_count=count,
            message="Cache cleared successfully",
        )

    async def health_check(self) -> JSONResponse:
        """Handle GET /api/health requests.

        Returns:
            200 with status healthy, or 503 with status degraded
        """
        is_healthy = self._cache.is_healthy()
        body = HealthCheckResponse(
            status="healthy" if is_healthy else "degraded",
            cache_healthy=is_healthy,
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if is_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(),
        )

    @staticmethod
    def bad_request(error: InvalidResourceError) -> JSONResponse:
        """Envelope for descriptors that fail validation."""
        return error_response(status.HTTP_400_BAD_REQUEST, "bad_request", error.message)
