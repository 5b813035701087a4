"""Asana REST API client.

The network boundary of the service: turns a ResourceDescriptor into
authenticated HTTP calls and maps failures onto the UpstreamError
hierarchy. No caching happens here.

Asana wraps every payload as {"data": ...}. List endpoints are paginated
with `limit` and `offset`; the next offset comes back in
{"next_page": {"offset": "..."}} and is null on the last page.
"""

import logging
from typing import Any

import httpx

from asana_cache.config import settings
from asana_cache.entities import ResourceDescriptor
from asana_cache.exceptions import (
    AuthFailedError,
    RateLimitedError,
    TransientError,
    UpstreamError,
    UpstreamNotFoundError,
)

logger = logging.getLogger(__name__)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class AsanaClient:
    """httpx-based implementation of the UpstreamClient protocol.

    This class satisfies the UpstreamClient protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        client = AsanaClient.create(access_token="1/1234:abcd")
        tasks = await client.fetch(ResourceDescriptor.project_tasks("123"))
        await client.close()
        ```
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Asana client.

        Args:
            access_token: Personal access token. Defaults to settings.
            base_url: API base URL. Defaults to settings.asana_api_base.
            timeout: Request timeout in seconds.
            page_size: Items per page for list endpoints (max 100).
            transport: Custom httpx transport (tests use httpx.MockTransport).
        """
        self._token = access_token if access_token is not None else settings.asana_access_token
        self._base_url = (base_url or settings.asana_api_base).rstrip("/")
        self._timeout = timeout or settings.asana_timeout
        self._page_size = page_size or settings.asana_page_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def create(
        cls,
        access_token: str | None = None,
        base_url: str | None = None,
    ) -> "AsanaClient":
        """Factory method to create AsanaClient with defaults from settings."""
        return cls(access_token=access_token, base_url=base_url)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/json",
                },
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self._transport,
            )
        return self._client

    async def _get(self, path: str, params: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self.client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"Asana request timed out: {path}", original_error=e) from e
        except httpx.TransportError as e:
            raise TransientError(f"Asana connection error: {e}", original_error=e) from e

        status = response.status_code
        if status == 429:
            raise RateLimitedError(retry_after=_retry_after(response))
        if status in (401, 403):
            raise AuthFailedError(f"Asana rejected the access token (HTTP {status})", status_code=status)
        if status == 404:
            raise UpstreamNotFoundError(f"Asana resource not found: {path}")
        if status >= 500:
            raise TransientError(f"Asana server error (HTTP {status})", status_code=status)
        if status >= 400:
            raise UpstreamError(f"Unexpected Asana response (HTTP {status}): {response.text[:200]}", status_code=status)

        try:
            data = response.json()
        except ValueError as e:
            raise TransientError("Asana returned a non-JSON body", status_code=status, original_error=e) from e
        if not isinstance(data, dict) or "data" not in data:
            raise TransientError("Asana response is missing the data envelope", status_code=status)
        return data

    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        """Fetch one resource, following pagination for list endpoints.

        Args:
            descriptor: What to fetch

        Returns:
            The "data" member of the response (pages concatenated for lists)
        """
        if not self._token:
            raise AuthFailedError("ASANA_ACCESS_TOKEN is not configured", status_code=None)

        params = descriptor.query
        if not descriptor.paginated:
            return (await self._get(descriptor.path, params))["data"]

        items: list[Any] = []
        offset: str | None = None
        pages = 0
        while True:
            page_params = {**params, "limit": str(self._page_size)}
            if offset:
                page_params["offset"] = offset
            page = await self._get(descriptor.path, page_params)
            pages += 1
            items.extend(page["data"])
            offset = (page.get("next_page") or {}).get("offset")
            if not offset:
                break

        logger.debug("Fetched %s: %d items in %d page(s)", descriptor.key, len(items), pages)
        return items

    async def is_available(self) -> bool:
        """Check that the token is accepted by calling /users/me."""
        if not self._token:
            return False
        try:
            await self._get("/users/me", {})
            return True
        except UpstreamError:
            return False

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
