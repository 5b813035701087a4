"""Response DTOs for API endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class CachedResourceResponse(BaseModel):
    """Response DTO for a cached Asana resource.

    The browser client renders a degraded-data banner when `degraded`
    is true (upstream failed and cached data was served instead).
    """

    key: str = Field(..., description="Cache key of the resource")
    state: Literal["fresh", "stale"] = Field(..., description="Freshness of the returned data")
    degraded: bool = Field(..., description="True when upstream failed and stale data was served")
    source: Literal["cache", "upstream"] = Field(..., description="Where the data came from")
    stored_at: float | None = Field(None, description="When the data was fetched from Asana (Unix timestamp)")
    expires_at: float | None = Field(None, description="When the data stops being fresh (Unix timestamp)")
    data: Any = Field(None, description="The Asana payload")


class ErrorResponse(BaseModel):
    """Error envelope returned for every non-data outcome."""

    error: Literal["not_found", "rate_limited", "auth_failed", "service_unavailable", "bad_request"] = Field(
        ..., description="Machine-readable error kind"
    )
    message: str = Field(..., description="Human-readable explanation")
    retry_after: float | None = Field(None, description="Seconds to wait before retrying, when known")


class CacheStatusResponse(BaseModel):
    """Response DTO for cache status (what the dashboard polls on load)."""

    has_data: bool = Field(..., description="Whether anything is cached")
    is_expired: bool = Field(..., description="True when entries exist but none are fresh")
    total_entries: int = Field(..., ge=0)
    fresh_entries: int = Field(..., ge=0)
    stale_entries: int = Field(..., ge=0)
    negative_entries: int = Field(..., ge=0, description="Cached not-found results")
    last_updated: float | None = Field(None, description="Newest stored_at (Unix timestamp)")
    oldest_entry: float | None = Field(None, description="Oldest stored_at (Unix timestamp)")
    expires_in_seconds: float | None = Field(None, description="Seconds until the next fresh entry expires")
    project_count: int | None = Field(None, description="Projects in the newest cached project list")
    is_persisted: bool = Field(True, description="Entries survive process restarts")


class CacheStatsResponse(BaseModel):
    """Response DTO for cache statistics."""

    backend: str = Field(..., description="Storage backend: file or redis")
    location: str = Field(..., description="Cache directory or Redis key prefix")
    total_entries: int = Field(..., ge=0)
    in_flight: int = Field(..., ge=0, description="Upstream fetches currently running")
    counters: dict[str, int] = Field(default_factory=dict, description="Hit, miss and upstream counters")
    ttl_by_kind: dict[str, int] = Field(default_factory=dict, description="Freshness window per resource kind")
    negative_ttl: int = Field(..., ge=0)
    max_attempts: int = Field(..., ge=1)


class InvalidateResponse(BaseModel):
    """Response DTO for deleting one entry."""

    key: str
    deleted: bool


class ClearCacheResponse(BaseModel):
    """Response DTO for clearing the cache."""

    success: bool
    deleted_count: int = Field(..., ge=0)
    message: str


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: Literal["healthy", "degraded"] = Field(..., description="Health status")
    cache_healthy: bool = Field(..., description="Whether the cache store is reachable and writable")


class StoreAnalyzedResponse(BaseModel):
    """Response after the dashboard pushes its analyzed data."""

    success: bool
    key: str
    stored_at: float = Field(..., description="When the snapshot was stored (Unix timestamp)")
    expires_at: float = Field(..., description="When the snapshot stops being fresh (Unix timestamp)")
