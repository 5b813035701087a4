"""Asana Cache - durable response cache in front of the Asana API.

This package provides a layered architecture:

Layers:
    - protocols: Interface contracts (CacheStore, UpstreamClient)
    - repositories: Data access implementations (file, Redis, Asana)
    - services: Business logic (freshness, retries, single-flight)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Usage:
    ```python
    from asana_cache.repositories import AsanaClient, FileCacheRepository
    from asana_cache.services import CacheService

    cache = CacheService.create(
        repository=FileCacheRepository.create(cache_dir="./cache"),
        upstream=AsanaClient.create(),
    )
    ```

For HTTP API:
    ```python
    from asana_cache.api.app import app
    ```
"""

__version__ = "0.1.0"

from asana_cache.config import get_redis_client, settings
from asana_cache.entities import (
    CacheEntryEntity,
    CacheLookupEntity,
    CacheState,
    CacheStatusEntity,
    ResourceDescriptor,
    ResourceKind,
)
from asana_cache.exceptions import (
    AsanaCacheError,
    AuthFailedError,
    CacheDirectoryError,
    InvalidResourceError,
    RateLimitedError,
    ServiceUnavailableError,
    StorageError,
    TransientError,
    UpstreamError,
    UpstreamNotFoundError,
)
from asana_cache.handlers import CacheHandler
from asana_cache.protocols import CacheStore, UpstreamClient
from asana_cache.repositories import AsanaClient, FileCacheRepository, RedisCacheRepository
from asana_cache.services import CacheService

__all__ = [
    "__version__",
    # Configuration
    "settings",
    "get_redis_client",
    # Protocols (interfaces)
    "CacheStore",
    "UpstreamClient",
    # Services (business logic)
    "CacheService",
    # Handlers (HTTP)
    "CacheHandler",
    # Repositories (data access)
    "AsanaClient",
    "FileCacheRepository",
    "RedisCacheRepository",
    # Entities (domain models)
    "CacheEntryEntity",
    "CacheLookupEntity",
    "CacheState",
    "CacheStatusEntity",
    "ResourceDescriptor",
    "ResourceKind",
    # Errors
    "AsanaCacheError",
    "StorageError",
    "CacheDirectoryError",
    "UpstreamError",
    "RateLimitedError",
    "AuthFailedError",
    "UpstreamNotFoundError",
    "TransientError",
    "ServiceUnavailableError",
    "InvalidResourceError",
]
