"""Scores and ranks cached documents against a text query."""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from datahub.core.errors import InvalidQuery
from datahub.models.index import FIELD_NAME, FIELD_TITLE, IndexPosting
from datahub.models.source import SourceCategory
from datahub.services.cache_store import CacheStore
from datahub.services.indexer import Indexer
from datahub.services.tokenizer import unique_tokens

logger = logging.getLogger(__name__)

SNIPPET_MAX_LENGTH = 200
SNIPPET_LEAD = 50

TITLE_BOOST = 3
NAME_BOOST = 2


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    RECENT = "recent"


@dataclass
class SearchHit:
    id: str
    score: float
    category: SourceCategory
    data: Any = None
    snippet: str | None = None
    highlights: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SearchResponse:
    results: list[SearchHit]
    total: int
    query: str
    tokens: list[str]
    elapsed_ms: float


def token_score(posting: IndexPosting) -> float:
    """Term count, boosted when the term sits in a title or name field."""
    score = posting.term_count
    if FIELD_TITLE in posting.fields:
        score *= TITLE_BOOST
    elif FIELD_NAME in posting.fields:
        score *= NAME_BOOST
    return score


def serialize_payload(payload: Any) -> str:
    """Flat lower-case text form of a payload used for snippets/highlights."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).lower()


def generate_snippet(
    payload: Any, tokens: list[str], max_length: int = SNIPPET_MAX_LENGTH
) -> str | None:
    """Window of text around the earliest matched token, or None."""
    if payload is None or not tokens:
        return None
    text = serialize_payload(payload)
    positions = [pos for pos in (text.find(t) for t in tokens) if pos >= 0]
    if not positions:
        return None
    start = max(0, min(positions) - SNIPPET_LEAD)
    end = min(len(text), start + max_length)
    return text[start:end] + ("..." if end < len(text) else "")


def generate_highlights(payload: Any, tokens: list[str]) -> list[dict[str, Any]]:
    """Whole-word occurrence counts per token; zero counts are omitted."""
    if payload is None:
        return []
    text = serialize_payload(payload)
    highlights = []
    for token in tokens:
        count = len(re.findall(rf"\b{re.escape(token)}\b", text, re.IGNORECASE))
        if count:
            highlights.append({"term": token, "count": count})
    return highlights


class QueryEngine:
    def __init__(self, indexer: Indexer, store: CacheStore) -> None:
        self.indexer = indexer
        self.store = store

    @staticmethod
    def _query_tokens(query: str | None) -> list[str]:
        tokens = unique_tokens(query) if isinstance(query, str) else []
        if not tokens:
            raise InvalidQuery("Query has no searchable terms")
        return tokens

    def search(
        self,
        query: str | None,
        limit: int = 20,
        offset: int = 0,
        category: SourceCategory | None = None,
        sort_by: SortBy = SortBy.RELEVANCE,
        include_snippets: bool = True,
    ) -> SearchResponse:
        """Rank every matching document, then cut the requested page.

        Queries with no usable tokens yield an empty response. Documents
        evicted from the cache since the last rebuild are still returned,
        with ``data`` set to None.
        """
        started = time.perf_counter()
        query_text = query if isinstance(query, str) else ""

        try:
            tokens = self._query_tokens(query)
        except InvalidQuery:
            logger.debug("Empty search for %r", query_text)
            return SearchResponse(
                results=[],
                total=0,
                query=query_text,
                tokens=[],
                elapsed_ms=(time.perf_counter() - started) * 1000,
            )

        index = self.indexer.index
        # dict insertion order records discovery order for tie-breaking
        scores: dict[str, float] = {}
        categories: dict[str, SourceCategory] = {}
        for token in tokens:
            for posting in index.postings(token):
                if category is not None and posting.category != category:
                    continue
                key = posting.document_key
                scores[key] = scores.get(key, 0) + token_score(posting)
                categories.setdefault(key, posting.category)

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        if sort_by == SortBy.RECENT:
            ranked.sort(key=lambda item: self._created_at(item[0]), reverse=True)

        offset = max(offset, 0)
        page = ranked[offset : offset + max(limit, 0)]

        results = []
        for key, score in page:
            entry = self.store.lookup(key)
            data = entry.payload if entry is not None else None
            results.append(
                SearchHit(
                    id=key,
                    score=score,
                    category=categories[key],
                    data=data,
                    snippet=generate_snippet(data, tokens) if include_snippets else None,
                    highlights=generate_highlights(data, tokens),
                )
            )

        return SearchResponse(
            results=results,
            total=len(scores),
            query=query_text,
            tokens=tokens,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    def _created_at(self, key: str) -> int:
        entry = self.store.lookup(key)
        return entry.created_at if entry is not None else 0
