import os
from dataclasses import dataclass
from functools import lru_cache

import redis
from dotenv import load_dotenv

load_dotenv()

CACHE_BACKENDS = ("file", "redis")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Asana
    asana_access_token: str | None = os.getenv("ASANA_ACCESS_TOKEN")
    asana_api_base: str = os.getenv("ASANA_API_BASE", "https://app.asana.com/api/1.0")
    asana_timeout: float = float(os.getenv("ASANA_TIMEOUT", "30"))
    asana_page_size: int = int(os.getenv("ASANA_PAGE_SIZE", "100"))

    # Cache backend
    cache_backend: str = os.getenv("CACHE_BACKEND", "file")
    cache_dir: str = os.getenv("CACHE_DIR", "./cache")
    cache_key_prefix: str = os.getenv("CACHE_KEY_PREFIX", "asana_cache")

    # Redis (only used when CACHE_BACKEND=redis)
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")

    # TTLs in seconds
    cache_ttl: int = int(os.getenv("CACHE_TTL", "172800"))  # 2 days default
    cache_ttl_tasks: int = int(os.getenv("CACHE_TTL_TASKS", "300"))
    cache_negative_ttl: int = int(os.getenv("CACHE_NEGATIVE_TTL", "60"))

    # Upstream retry policy
    upstream_max_attempts: int = int(os.getenv("UPSTREAM_MAX_ATTEMPTS", "3"))
    upstream_backoff_base: float = float(os.getenv("UPSTREAM_BACKOFF_BASE", "0.5"))
    upstream_backoff_max: float = float(os.getenv("UPSTREAM_BACKOFF_MAX", "8.0"))

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8080"))
    api_reload: bool = os.getenv("API_RELOAD", "false").lower() == "true"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def ttl_by_kind(self) -> dict[str, int]:
        """TTL per resource kind.

        Task data changes far more often than the project list, so it gets
        its own (shorter) TTL.
        """
        return {
            "projects": self.cache_ttl,
            "sections": self.cache_ttl,
            "project_tasks": self.cache_ttl_tasks,
            "task": self.cache_ttl_tasks,
        }

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(
                f"CACHE_BACKEND must be one of {list(CACHE_BACKENDS)}, got {self.cache_backend!r}"
            )

        for name in ("cache_ttl", "cache_ttl_tasks", "cache_negative_ttl"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name.upper()} must be >= 0")

        if self.upstream_max_attempts < 1:
            raise ValueError("UPSTREAM_MAX_ATTEMPTS must be >= 1")

        if self.upstream_backoff_base < 0 or self.upstream_backoff_max < 0:
            raise ValueError("UPSTREAM_BACKOFF_BASE and UPSTREAM_BACKOFF_MAX must be >= 0")

        if not 1 <= self.asana_page_size <= 100:
            raise ValueError("ASANA_PAGE_SIZE must be between 1 and 100")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client(config: Settings | None = None) -> redis.Redis:
    """Create a Redis client instance."""
    config = config or settings
    return redis.from_url(
        config.redis_url,
        password=config.redis_password,
        decode_responses=False,
    )
