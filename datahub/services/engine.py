"""Process-wide service object tying the cache, gateway and search together.

Constructed once at application startup and handed to request handlers,
instead of living in module globals, so tests can build isolated instances.
"""

import logging
import time
from pathlib import Path
from typing import Any

from datahub.core.config import Settings
from datahub.core.time import Clock
from datahub.models.source import SourceCategory
from datahub.services.cache_store import CacheStore
from datahub.services.gateway import FetchFn, FetchGateway, HttpFetcher
from datahub.services.indexer import BuildReport, Indexer
from datahub.services.query_engine import QueryEngine, SearchResponse, SortBy
from datahub.services.snapshot import JsonSnapshot
from datahub.services.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)


class DataHub:
    def __init__(
        self,
        cache_path: Path | str | None = None,
        index_path: Path | str | None = None,
        default_ttl: int = 3600,
        max_size: int = 1000,
        rate_limit: int = 100,
        window_ms: int = 60_000,
        fetch: FetchFn | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.store = CacheStore(
            JsonSnapshot(cache_path), default_ttl=default_ttl, max_size=max_size, clock=clock
        )
        self.gateway = FetchGateway(
            self.store,
            fetch=fetch,
            rate_limit=rate_limit,
            window_ms=window_ms,
            default_ttl=default_ttl,
            clock=clock,
        )
        self.indexer = Indexer(self.store, JsonSnapshot(index_path), clock=clock)
        self.query_engine = QueryEngine(self.indexer, self.store)
        self.suggestions = SuggestionEngine(self.indexer)

    @classmethod
    def from_settings(cls, settings: Settings, fetch: FetchFn | None = None) -> "DataHub":
        return cls(
            cache_path=settings.cache_path,
            index_path=settings.index_path,
            default_ttl=settings.cache_ttl,
            max_size=settings.cache_max_size,
            rate_limit=settings.external_api_rate_limit,
            window_ms=settings.external_api_window_ms,
            fetch=fetch
            or HttpFetcher(timeout=settings.external_api_timeout, user_agent=settings.user_agent),
        )

    def startup(self) -> None:
        """Load cache and index snapshots from disk."""
        self.store.load()
        self.indexer.load()

    def shutdown(self) -> None:
        """Flush both snapshots."""
        self.store.save()
        self.indexer.save()
        logger.info("Flushed cache and search index snapshots")

    def search(
        self,
        query: str | None,
        limit: int = 20,
        offset: int = 0,
        category: SourceCategory | None = None,
        sort_by: SortBy = SortBy.RELEVANCE,
        include_snippets: bool = True,
    ) -> SearchResponse:
        return self.query_engine.search(
            query,
            limit=limit,
            offset=offset,
            category=category,
            sort_by=sort_by,
            include_snippets=include_snippets,
        )

    def suggest(self, partial_query: str | None, limit: int = 5) -> list[dict[str, Any]]:
        return self.suggestions.suggest(partial_query, limit)

    def rebuild_index(self) -> BuildReport:
        return self.indexer.rebuild_index()

    def get_stats(self) -> dict[str, Any]:
        return self.indexer.get_stats()
