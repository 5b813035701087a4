"""Protocol interfaces for swappable implementations.

Protocols enable:
- Easy swapping of implementations (file directory → Redis, Asana → fake upstream)
- Unit testing with in-memory implementations
- Clear separation of concerns

Usage:
    ```python
    from asana_cache.protocols import CacheStore, UpstreamClient

    store: CacheStore = FileCacheRepository.create()   # works
    store: CacheStore = RedisCacheRepository.create()  # also works
    ```
"""

from .cache_store import CacheStore
from .upstream_client import UpstreamClient

__all__ = [
    "CacheStore",
    "UpstreamClient",
]
