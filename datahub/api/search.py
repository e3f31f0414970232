"""Full-text search over cached open-data payloads."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from datahub.api.deps import get_hub
from datahub.core.admin_auth import verify_admin_api_key
from datahub.core.config import get_settings
from datahub.core.rate_limit import limiter
from datahub.models.source import SourceCategory
from datahub.schemas.search import (
    Highlight,
    IndexStats,
    Pagination,
    RebuildResponse,
    SearchHitOut,
    SearchMeta,
    SearchResponseOut,
    Suggestion,
    SuggestionsResponse,
)
from datahub.services.engine import DataHub
from datahub.services.export import export_search_results_to_csv, generate_export_filename
from datahub.services.query_engine import SearchHit, SearchResponse, SortBy

router = APIRouter()
settings = get_settings()

CATEGORY_TYPES = (SourceCategory.CRIME, SourceCategory.PLANNING, SourceCategory.SPENDING)


def _hit_out(hit: SearchHit) -> SearchHitOut:
    # Scores are unbounded sums; round only for display
    return SearchHitOut(
        id=hit.id,
        type=hit.category,
        score=round(hit.score, 2),
        snippet=hit.snippet,
        highlights=[Highlight(**h) for h in hit.highlights],
    )


def _response_out(
    response: SearchResponse, limit: int, offset: int, type_label: str
) -> SearchResponseOut:
    return SearchResponseOut(
        results=[_hit_out(hit) for hit in response.results],
        pagination=Pagination(
            total=response.total,
            limit=limit,
            offset=offset,
            has_more=response.total > offset + limit,
        ),
        meta=SearchMeta(
            query=response.query,
            tokens=response.tokens,
            took_ms=round(response.elapsed_ms, 3),
            type=type_label,
        ),
    )


@router.get("", response_model=SearchResponseOut)
@limiter.limit(lambda: f"{settings.search_rate_limit_per_minute}/minute")
def search(
    request: Request,
    q: str = Query(..., min_length=1, max_length=200),
    type: SourceCategory | None = Query(None),
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    sort: SortBy = Query(SortBy.RELEVANCE),
    snippets: bool = Query(True),
    format: str = Query("json", pattern="^(json|csv)$"),
    hub: DataHub = Depends(get_hub),
):
    if not q.strip():
        raise HTTPException(status_code=400, detail='Query parameter "q" is required')
    limit = min(limit, settings.public_search_max_limit)

    response = hub.search(
        q.strip(),
        limit=limit,
        offset=offset,
        category=type,
        sort_by=sort,
        include_snippets=snippets,
    )

    if format == "csv":
        filename = generate_export_filename()
        return StreamingResponse(
            iter([export_search_results_to_csv(response.results)]),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return _response_out(response, limit, offset, type.value if type else "all")


@router.get("/suggestions", response_model=SuggestionsResponse)
@limiter.limit(lambda: f"{settings.search_rate_limit_per_minute}/minute")
def suggestions(
    request: Request,
    q: str = Query(..., max_length=200),
    limit: int = Query(5, ge=1, le=50),
    hub: DataHub = Depends(get_hub),
) -> SuggestionsResponse:
    return SuggestionsResponse(
        query=q,
        suggestions=[Suggestion(**s) for s in hub.suggest(q, limit)],
    )


@router.post("/index/rebuild", response_model=RebuildResponse)
def rebuild_index(
    hub: DataHub = Depends(get_hub),
    _admin: None = Depends(verify_admin_api_key),
) -> RebuildResponse:
    """Rebuild the search index from live cache entries (admin only)."""
    report = hub.rebuild_index()
    return RebuildResponse(
        message="Search index rebuilt",
        documents=report.documents,
        skipped=[failure.document_key for failure in report.skipped],
        stats=IndexStats(**hub.get_stats()),
    )


@router.get("/stats", response_model=IndexStats)
def index_stats(hub: DataHub = Depends(get_hub)) -> IndexStats:
    return IndexStats(**hub.get_stats())


@router.get("/category/{category}", response_model=SearchResponseOut)
@limiter.limit(lambda: f"{settings.search_rate_limit_per_minute}/minute")
def search_category(
    request: Request,
    category: SourceCategory,
    q: str = Query("", max_length=200),
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    hub: DataHub = Depends(get_hub),
) -> SearchResponseOut:
    if category not in CATEGORY_TYPES:
        raise HTTPException(status_code=400, detail="Invalid category type")
    limit = min(limit, settings.category_search_max_limit)
    response = hub.search(q.strip(), limit=limit, offset=offset, category=category)
    return _response_out(response, limit, offset, category.value)
