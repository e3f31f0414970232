"""Cached open-data endpoints and cache administration."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from datahub.api.deps import get_hub
from datahub.core.admin_auth import verify_admin_api_key
from datahub.core.config import get_settings
from datahub.core.rate_limit import limiter
from datahub.core.time import utcnow
from datahub.schemas.common import CacheClearResponse
from datahub.schemas.data import (
    CacheStats,
    DataResponse,
    DataType,
    RefreshRequest,
    RefreshResponse,
)
from datahub.services.cache_store import generate_key
from datahub.services.engine import DataHub

router = APIRouter()
settings = get_settings()


@router.get("", response_model=DataResponse)
@limiter.limit(lambda: f"{settings.data_rate_limit_per_minute}/minute")
async def get_data(
    request: Request,
    type: DataType = Query(...),
    lat: str | None = Query(None, max_length=32),
    lng: str | None = Query(None, max_length=32),
    date: str | None = Query(None, max_length=16),
    geometry: str | None = Query(None, max_length=4096),
    categories: str | None = Query(None, max_length=256),
    start_date: str | None = Query(None, max_length=16),
    end_date: str | None = Query(None, max_length=16),
    dataset: str | None = Query(None, max_length=128),
    q: str | None = Query(None, max_length=200),
    rows: int = Query(20, ge=1, le=100),
    start: int = Query(0, ge=0),
    postcode: str | None = Query(None, max_length=16),
    hub: DataHub = Depends(get_hub),
) -> DataResponse:
    gateway = hub.gateway
    if type == DataType.CRIME:
        data = await gateway.fetch_crime_data(lat=lat, lng=lng, date=date)
    elif type == DataType.PLANNING:
        data = await gateway.fetch_planning_data(
            geometry=geometry, categories=categories, start_date=start_date, end_date=end_date
        )
    elif type == DataType.SPENDING:
        data = await gateway.fetch_council_spending(dataset=dataset, q=q, rows=rows, start=start)
    else:
        if not postcode or not postcode.strip():
            raise HTTPException(status_code=400, detail="Postcode parameter is required")
        data = await gateway.fetch_postcode_data(postcode)

    return DataResponse(data=data, type=type, timestamp=utcnow())


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_data(
    body: RefreshRequest,
    hub: DataHub = Depends(get_hub),
    _admin: None = Depends(verify_admin_api_key),
) -> RefreshResponse:
    """Evict and re-fetch a single upstream resource (admin only)."""
    data = await hub.gateway.refresh(body.url, dict(body.params))
    return RefreshResponse(
        message="Cache refreshed",
        key=generate_key(body.url, dict(body.params)),
        data=data,
    )


@router.get("/cache/status", response_model=CacheStats)
def cache_status(hub: DataHub = Depends(get_hub)) -> CacheStats:
    return CacheStats(**hub.gateway.get_cache_stats())


@router.delete("/cache", response_model=CacheClearResponse)
def clear_cache(
    hub: DataHub = Depends(get_hub),
    _admin: None = Depends(verify_admin_api_key),
) -> CacheClearResponse:
    """Drop every cached payload (admin only). The index goes stale until rebuilt."""
    count = len(hub.store)
    hub.gateway.clear_cache()
    return CacheClearResponse(message=f"Cleared {count} cached entries")
