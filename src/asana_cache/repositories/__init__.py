"""Repository layer for data access.

This layer abstracts external dependencies (cache directory, Redis, the
Asana API) behind protocol-based interfaces. This enables:
- Easy swapping of implementations (file → Redis, Asana → fake upstream)
- Unit testing with in-memory implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
"""

from asana_cache.protocols import CacheStore, UpstreamClient

from .asana_client import AsanaClient
from .file_repository import FileCacheRepository
from .redis_repository import RedisCacheRepository

__all__ = [
    "CacheStore",
    "UpstreamClient",
    "AsanaClient",
    "FileCacheRepository",
    "RedisCacheRepository",
]
