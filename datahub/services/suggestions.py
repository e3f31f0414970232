"""Prefix suggestions over indexed terms."""

from typing import Any

from datahub.services.indexer import Indexer
from datahub.services.tokenizer import tokenize

MIN_QUERY_LENGTH = 2


class SuggestionEngine:
    def __init__(self, indexer: Indexer) -> None:
        self.indexer = indexer

    def suggest(self, partial_query: str | None, limit: int = 5) -> list[dict[str, Any]]:
        """Index terms starting with the last token of ``partial_query``.

        Terms come back in index order, not by frequency. ``doc_count`` is
        the number of distinct documents holding the term.
        """
        if not partial_query or len(partial_query) < MIN_QUERY_LENGTH or limit <= 0:
            return []

        tokens = tokenize(partial_query)
        prefix = tokens[-1] if tokens else partial_query.strip().lower()
        if not prefix:
            return []

        suggestions = []
        for term, postings in self.indexer.index.terms.items():
            if term.startswith(prefix):
                suggestions.append({"term": term, "doc_count": len(postings)})
                if len(suggestions) >= limit:
                    break
        return suggestions
