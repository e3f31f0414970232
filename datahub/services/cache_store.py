"""TTL + LRU store for upstream API payloads.

Expiry is lazy: ``get`` drops an expired entry when it sees one and ``set``
sweeps before inserting. There is no background timer, so expired rows can
sit in memory (and in the snapshot) until the next write.
"""

import json
import logging
import time
from typing import Any

from datahub.core.time import Clock, now_ms
from datahub.models.cache_entry import CacheEntry
from datahub.models.source import SourceCategory
from datahub.services.snapshot import JsonSnapshot

logger = logging.getLogger(__name__)


def generate_key(url: str, params: dict[str, Any] | None = None) -> str:
    """Build the cache key for a resource URL and its query parameters.

    Parameters are sorted by name; None values are dropped.
    """
    pairs = sorted((k, v) for k, v in (params or {}).items() if v is not None)
    query = "&".join(f"{k}={v}" for k, v in pairs)
    return f"{url}?{query}" if query else url


class CacheStore:
    """Keyed payload cache with per-entry TTL and a size bound.

    Every mutation (including the access-time update on a read) writes a
    full snapshot. Snapshot failures are logged and the in-memory state stays
    authoritative.
    """

    def __init__(
        self,
        snapshot: JsonSnapshot | None = None,
        default_ttl: int = 3600,
        max_size: int = 1000,
        clock: Clock = time.time,
    ) -> None:
        self.snapshot = snapshot or JsonSnapshot(None)
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _now(self) -> int:
        return now_ms(self._clock)

    def load(self) -> None:
        """Replace in-memory contents with the snapshot on disk.

        Unreadable snapshots and malformed rows are skipped, leaving an empty
        (or partial) store instead of failing startup.
        """
        if self.snapshot.path is None:
            return
        raw = self.snapshot.load_or_default({})
        entries: dict[str, CacheEntry] = {}
        if isinstance(raw, dict):
            for key, row in raw.items():
                try:
                    entries[key] = CacheEntry.from_snapshot(key, row)
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning("Dropping malformed cache row %s: %s", key, e)
        else:
            logger.error("Cache snapshot is not a JSON object, starting empty")
        self._entries = entries
        logger.info("Loaded %d cache entries", len(entries))

    def save(self) -> bool:
        return self.snapshot.save_quietly(self._serialize())

    def _serialize(self) -> dict[str, Any]:
        return {key: entry.to_snapshot() for key, entry in self._entries.items()}

    def get(self, key: str) -> Any | None:
        """Return the live payload for ``key`` or None.

        Refreshes the entry's access time. An expired entry is deleted here.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        now = self._now()
        if entry.is_expired(now):
            del self._entries[key]
            self.save()
            return None

        entry.last_accessed_at = now
        self.save()
        return entry.payload

    def peek(self, key: str) -> CacheEntry | None:
        """Return the stored entry even if expired, without touching it."""
        return self._entries.get(key)

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the entry only if live, without updating access time."""
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._now()):
            return None
        return entry

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def set(
        self,
        key: str,
        payload: Any,
        ttl_seconds: int | None = None,
        category: SourceCategory | None = None,
    ) -> CacheEntry:
        """Insert or overwrite ``key``.

        Runs cleanup first, reserving a slot for a new key so the store never
        holds more than ``max_size`` entries after the insert.
        """
        self._cleanup(reserve=0 if key in self._entries else 1)
        now = self._now()
        entry = CacheEntry(
            key=key,
            payload=payload,
            created_at=now,
            last_accessed_at=now,
            ttl_seconds=self.default_ttl if ttl_seconds is None else ttl_seconds,
            category=category or SourceCategory.from_key(key),
        )
        self._entries[key] = entry
        self.save()
        return entry

    def _cleanup(self, reserve: int = 0) -> int:
        now = self._now()
        removed = 0
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            del self._entries[key]
            removed += 1

        overflow = len(self._entries) + reserve - self.max_size
        if overflow > 0:
            # sorted() is stable, so equal access times keep insertion order
            oldest = sorted(self._entries.values(), key=lambda e: e.last_accessed_at)
            for entry in oldest[:overflow]:
                del self._entries[entry.key]
            removed += overflow
            logger.debug("Evicted %d least recently used cache entries", overflow)
        return removed

    def cleanup(self) -> int:
        """Drop expired entries, then evict LRU entries down to ``max_size``.

        Returns the number of entries removed.
        """
        removed = self._cleanup()
        self.save()
        return removed

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)
        self.save()

    def clear(self) -> None:
        self._entries = {}
        self.save()

    def get_all_live(self) -> list[dict[str, Any]]:
        """Snapshot of every non-expired entry for indexing."""
        now = self._now()
        return [
            {
                "key": entry.key,
                "payload": entry.payload,
                "created_at": entry.created_at,
                "category": entry.category,
            }
            for entry in list(self._entries.values())
            if not entry.is_expired(now)
        ]

    def stats(self) -> dict[str, Any]:
        now = self._now()
        entries = list(self._entries.values())
        created = [e.created_at for e in entries]
        return {
            "count": len(entries),
            "expired_count": sum(1 for e in entries if e.is_expired(now)),
            "oldest": min(created) if created else None,
            "newest": max(created) if created else None,
            "byte_size": len(json.dumps(self._serialize())),
            "max_size": self.max_size,
            "default_ttl": self.default_ttl,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
