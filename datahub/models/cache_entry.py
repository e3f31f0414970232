from dataclasses import dataclass
from typing import Any

from datahub.models.source import SourceCategory


@dataclass
class CacheEntry:
    """One cached upstream response. Timestamps are epoch milliseconds."""

    key: str
    payload: Any
    created_at: int
    last_accessed_at: int
    ttl_seconds: int
    category: SourceCategory = SourceCategory.GENERIC

    def is_expired(self, now: int) -> bool:
        return now - self.created_at > self.ttl_seconds * 1000

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "data": self.payload,
            "timestamp": self.created_at,
            "lastAccessed": self.last_accessed_at,
            "ttl": self.ttl_seconds,
            "category": self.category.value,
        }

    @classmethod
    def from_snapshot(cls, key: str, row: dict[str, Any]) -> "CacheEntry":
        created_at = int(row["timestamp"])
        return cls(
            key=key,
            payload=row.get("data"),
            created_at=created_at,
            last_accessed_at=int(row.get("lastAccessed", created_at)),
            ttl_seconds=int(row["ttl"]),
            category=SourceCategory.parse(row.get("category"), key),
        )
