"""Cache entry domain entity."""

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntryEntity:
    """A cached upstream response.

    Entries are kept after they expire so they can be served as a
    degraded fallback; freshness is decided by the caller's clock.

    Attributes:
        key: Cache key derived from the upstream request shape
        body: Decoded JSON payload
        stored_at: When the entry was written (Unix timestamp)
        ttl_seconds: How long the entry counts as fresh
        negative: True when the entry records an upstream "not found"
    """

    key: str
    body: Any
    stored_at: float
    ttl_seconds: int
    negative: bool = False

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl_seconds

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl_seconds

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CacheEntryEntity":
        return cls(
            key=data["key"],
            body=data.get("body"),
            stored_at=float(data["stored_at"]),
            ttl_seconds=int(data["ttl_seconds"]),
            negative=bool(data.get("negative", False)),
        )
