"""Upstream client protocol.

A pure network boundary: one call per fetch, no caching.
"""

from typing import Any, Protocol, runtime_checkable

from asana_cache.entities import ResourceDescriptor


@runtime_checkable
class UpstreamClient(Protocol):
    """Protocol for the rate-limited API the cache fronts."""

    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        """Fetch one resource.

        Args:
            descriptor: What to fetch

        Returns:
            The decoded payload

        Raises:
            RateLimitedError: Upstream is throttling
            AuthFailedError: Credentials invalid or missing
            UpstreamNotFoundError: Resource does not exist
            TransientError: Network fault, timeout or 5xx
            UpstreamError: Any other unexpected upstream response
        """
        ...

    async def is_available(self) -> bool:
        """Check whether upstream can be reached with the current credentials."""
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
