"""Domain entities for internal representation.

These are pure dataclasses (frozen) used internally by services
and repositories. They are NOT used for API contracts - use DTOs
from the dto package for that.
"""

from .cache_entry import CacheEntryEntity
from .cache_result import CacheLookupEntity, CacheState, CacheStatusEntity
from .resource import ResourceDescriptor, ResourceKind

__all__ = [
    "CacheEntryEntity",
    "CacheLookupEntity",
    "CacheState",
    "CacheStatusEntity",
    "ResourceDescriptor",
    "ResourceKind",
]
