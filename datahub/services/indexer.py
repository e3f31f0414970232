"""Builds the inverted index over live cache entries."""

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from datahub.core.errors import IndexBuildPartialFailure
from datahub.core.time import Clock, ms_to_iso, now_ms
from datahub.models.index import SearchIndex
from datahub.models.source import SourceCategory
from datahub.services.cache_store import CacheStore
from datahub.services.extractors import extract_searchable_fields
from datahub.services.snapshot import JsonSnapshot
from datahub.services.tokenizer import tokenize

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """Outcome of one index build."""

    documents: int = 0
    terms: int = 0
    built_at: int | None = None
    skipped: list[IndexBuildPartialFailure] = field(default_factory=list)


class Indexer:
    """Owns the current SearchIndex and rebuilds it from the cache store.

    Builds happen off to the side and the finished index is swapped in under
    a lock, so searches never observe a half-built index.
    """

    def __init__(
        self,
        store: CacheStore,
        snapshot: JsonSnapshot | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.store = store
        self.snapshot = snapshot or JsonSnapshot(None)
        self._clock = clock
        self._lock = threading.Lock()
        self._index = SearchIndex()

    @property
    def index(self) -> SearchIndex:
        with self._lock:
            return self._index

    def _replace(self, index: SearchIndex) -> None:
        with self._lock:
            self._index = index
        self.save()

    def load(self) -> None:
        """Load the persisted index; unreadable snapshots leave it empty."""
        if self.snapshot.path is None:
            return
        raw = self.snapshot.load_or_default({})
        try:
            index = SearchIndex.from_snapshot(raw)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error("Discarding malformed search index snapshot: %s", e)
            index = SearchIndex()
        with self._lock:
            self._index = index
        logger.info("Loaded search index with %d terms", len(index.terms))

    def save(self) -> bool:
        return self.snapshot.save_quietly(self.index.to_snapshot())

    def _index_document(
        self, index: SearchIndex, key: str, payload: Any, category: SourceCategory
    ) -> None:
        # Tokenize everything before touching the index so a failure leaves no postings
        occurrences = [
            (token, role)
            for role, text in extract_searchable_fields(payload, category)
            for token in tokenize(text)
        ]
        for token, role in occurrences:
            posting = index.add(token, key, category)
            if role and role not in posting.fields:
                posting.fields.append(role)

    def build_index(self) -> BuildReport:
        """Index every live cache entry and swap the result in."""
        logger.info("Building search index...")
        new_index = SearchIndex()
        report = BuildReport()

        for doc in self.store.get_all_live():
            key = doc["key"]
            try:
                self._index_document(new_index, key, doc["payload"], doc["category"])
            except Exception as e:
                failure = IndexBuildPartialFailure(key, e)
                logger.warning("%s: %s: %s", failure.message, type(e).__name__, e)
                report.skipped.append(failure)
                continue
            report.documents += 1

        new_index.built_at = now_ms(self._clock)
        self._replace(new_index)

        report.terms = len(new_index.terms)
        report.built_at = new_index.built_at
        logger.info(
            "Search index built with %d terms from %d documents (%d skipped)",
            report.terms,
            report.documents,
            len(report.skipped),
        )
        return report

    def clear_index(self) -> None:
        self._replace(SearchIndex())

    def rebuild_index(self) -> BuildReport:
        """Clear the index, then build it from scratch."""
        self.clear_index()
        return self.build_index()

    def get_stats(self) -> dict[str, Any]:
        index = self.index
        return {
            "total_terms": len(index.terms),
            "total_documents": len(index.document_keys()),
            "index_size": len(json.dumps(index.to_snapshot())),
            "last_built": ms_to_iso(index.built_at),
        }
