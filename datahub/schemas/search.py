from pydantic import BaseModel

from datahub.models.source import SourceCategory


class Highlight(BaseModel):
    term: str
    count: int


class SearchHitOut(BaseModel):
    id: str
    type: SourceCategory
    score: float
    snippet: str | None = None
    highlights: list[Highlight] = []


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class SearchMeta(BaseModel):
    query: str
    tokens: list[str]
    took_ms: float
    type: str


class SearchResponseOut(BaseModel):
    results: list[SearchHitOut]
    pagination: Pagination
    meta: SearchMeta


class Suggestion(BaseModel):
    term: str
    doc_count: int


class SuggestionsResponse(BaseModel):
    query: str
    suggestions: list[Suggestion]


class IndexStats(BaseModel):
    total_terms: int
    total_documents: int
    index_size: int
    last_built: str | None = None


class RebuildResponse(BaseModel):
    message: str
    documents: int
    skipped: list[str]
    stats: IndexStats
