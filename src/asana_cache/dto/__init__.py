"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .responses import (
    CachedResourceResponse,
    CacheStatsResponse,
    CacheStatusResponse,
    ClearCacheResponse,
    ErrorResponse,
    HealthCheckResponse,
    InvalidateResponse,
    StoreAnalyzedResponse,
)

__all__ = [
    "CachedResourceResponse",
    "CacheStatsResponse",
    "CacheStatusResponse",
    "ClearCacheResponse",
    "ErrorResponse",
    "HealthCheckResponse",
    "InvalidateResponse",
    "StoreAnalyzedResponse",
]
