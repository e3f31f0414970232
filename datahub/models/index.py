from dataclasses import dataclass, field
from typing import Any

from datahub.models.source import SourceCategory

# Field roles recorded on postings; they drive score boosting.
FIELD_TITLE = "title"
FIELD_NAME = "name"


@dataclass
class IndexPosting:
    """Occurrence record of one term in one cached document."""

    document_key: str
    term_count: int
    category: SourceCategory
    fields: list[str] = field(default_factory=list)

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "docId": self.document_key,
            "count": self.term_count,
            "type": self.category.value,
            "fields": list(self.fields),
        }

    @classmethod
    def from_snapshot(cls, row: dict[str, Any]) -> "IndexPosting":
        key = row["docId"]
        return cls(
            document_key=key,
            term_count=int(row.get("count", 1)),
            category=SourceCategory.parse(row.get("type"), key),
            fields=list(row.get("fields") or []),
        )


@dataclass
class SearchIndex:
    """Inverted index: term -> postings keyed by document key.

    Postings only reference cache keys, never payloads, so evicting an entry
    from the cache store leaves orphaned postings until the next rebuild.
    """

    terms: dict[str, dict[str, IndexPosting]] = field(default_factory=dict)
    built_at: int | None = None

    def add(self, term: str, document_key: str, category: SourceCategory) -> IndexPosting:
        """Upsert the posting for (term, document_key), incrementing its count."""
        postings = self.terms.setdefault(term, {})
        posting = postings.get(document_key)
        if posting is None:
            posting = IndexPosting(document_key=document_key, term_count=1, category=category)
            postings[document_key] = posting
        else:
            posting.term_count += 1
        return posting

    def postings(self, term: str) -> list[IndexPosting]:
        return list(self.terms.get(term, {}).values())

    def document_keys(self) -> set[str]:
        return {key for postings in self.terms.values() for key in postings}

    def to_snapshot(self) -> dict[str, Any]:
        return {
            "builtAt": self.built_at,
            "terms": {
                term: [p.to_snapshot() for p in postings.values()]
                for term, postings in self.terms.items()
            },
        }

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "SearchIndex":
        terms: dict[str, dict[str, IndexPosting]] = {}
        for term, rows in (data.get("terms") or {}).items():
            postings: dict[str, IndexPosting] = {}
            for row in rows:
                posting = IndexPosting.from_snapshot(row)
                postings[posting.document_key] = posting
            terms[term] = postings
        built_at = data.get("builtAt")
        return cls(terms=terms, built_at=int(built_at) if built_at is not None else None)
