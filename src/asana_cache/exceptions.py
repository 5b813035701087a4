"""Exception taxonomy for the cache service.

Storage faults, upstream failures and service-level outcomes are separate
branches so callers can decide which ones to absorb and which to surface.

Hierarchy:
    AsanaCacheError
    ├── StorageError
    │   └── CacheDirectoryError
    ├── UpstreamError
    │   ├── RateLimitedError
    │   ├── AuthFailedError
    │   ├── UpstreamNotFoundError
    │   └── TransientError
    ├── ServiceUnavailableError
    └── InvalidResourceError
"""

from typing import Any


class AsanaCacheError(Exception):
    """Base exception for the cache service."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class StorageError(AsanaCacheError):
    """I/O fault on the cache backing store."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__
        super().__init__(message=message, error_code="STORAGE_ERROR", details=details)
        if original_error:
            self.__cause__ = original_error


class CacheDirectoryError(StorageError):
    """Cache directory is missing or not writable."""

    def __init__(self, path: str, original_error: Exception | None = None) -> None:
        super().__init__(
            message=f"Cache directory is missing or not writable: {path}",
            original_error=original_error,
        )
        self.error_code = "CACHE_DIRECTORY_ERROR"
        self.details["path"] = path


class UpstreamError(AsanaCacheError):
    """Failure talking to the Asana API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str = "UPSTREAM_ERROR",
    ) -> None:
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message=message, error_code=error_code, details=details)
        self.status_code = status_code


class RateLimitedError(UpstreamError):
    """Upstream signaled throttling (HTTP 429)."""

    def __init__(self, message: str = "Asana API rate limit exceeded", retry_after: float | None = None) -> None:
        super().__init__(message=message, status_code=429, error_code="RATE_LIMITED")
        self.retry_after = retry_after
        if retry_after is not None:
            self.details["retry_after"] = retry_after


class AuthFailedError(UpstreamError):
    """Access token is missing, invalid or expired."""

    def __init__(self, message: str = "Asana authentication failed", status_code: int | None = 401) -> None:
        super().__init__(message=message, status_code=status_code, error_code="AUTH_FAILED")


class UpstreamNotFoundError(UpstreamError):
    """Requested resource does not exist upstream."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message=message, status_code=404, error_code="NOT_FOUND")


class TransientError(UpstreamError):
    """Network error, timeout or upstream 5xx. Safe to retry."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code, error_code="TRANSIENT")
        if original_error:
            self.details["original_error_type"] = type(original_error).__name__
            self.__cause__ = original_error


class ServiceUnavailableError(AsanaCacheError):
    """No usable data: upstream failed and there is no cached fallback.

    Attributes:
        reason: "rate_limited" or "service_unavailable"
        retry_after: Seconds the client should wait, when known
    """

    def __init__(
        self,
        message: str,
        reason: str = "service_unavailable",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message=message, error_code="SERVICE_UNAVAILABLE", details={"reason": reason})
        self.reason = reason
        self.retry_after = retry_after


class InvalidResourceError(AsanaCacheError):
    """Resource descriptor failed validation."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, error_code="INVALID_RESOURCE")
