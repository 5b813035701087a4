"""Service layer for business logic.

Services depend on protocols (interfaces), not concrete implementations,
making them testable and flexible.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)

Usage:
    ```python
    from asana_cache.services import CacheService

    cache = CacheService.create(repository=store, upstream=client)
    cache = CacheService.create(repository=store, upstream=client, max_attempts=5)
    ```
"""

from .cache_service import CacheService

__all__ = [
    "CacheService",
]
