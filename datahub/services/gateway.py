"""Cached, rate-limited access to the UK open-data APIs.

A live cache hit never touches the network or the rate window. On a miss the
window is charged, the upstream is called, and the response is cached with
the source's TTL. If the upstream call fails, sources that allow it fall back
to the last stored value even when it has expired.
"""

import logging
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from datahub.core.errors import RateLimited, UpstreamFetchFailed
from datahub.core.time import Clock, now_ms
from datahub.models.rate_window import RateWindow
from datahub.models.source import SourceCategory
from datahub.services.cache_store import CacheStore, generate_key

logger = logging.getLogger(__name__)

FetchFn = Callable[[str, dict[str, Any]], Awaitable[Any]]

POLICE_CRIMES_URL = "https://data.police.uk/api/crimes-street/all-crime"
PLANNING_URL = "https://www.planning.data.gov.uk/entity"
COUNCIL_SPENDING_URL = "https://opendata.bristol.gov.uk/api/records/1.0/search/"
POSTCODES_URL = "https://api.postcodes.io/postcodes"

DEFAULT_SPENDING_DATASET = "payments-to-suppliers"


@dataclass(frozen=True)
class SourcePolicy:
    """Fixed caching policy for one upstream source."""

    category: SourceCategory
    ttl_seconds: int
    allow_stale: bool = True


CRIME_POLICY = SourcePolicy(SourceCategory.CRIME, ttl_seconds=60 * 60)
PLANNING_POLICY = SourcePolicy(SourceCategory.PLANNING, ttl_seconds=30 * 60)
SPENDING_POLICY = SourcePolicy(SourceCategory.SPENDING, ttl_seconds=60 * 60)
POSTCODE_POLICY = SourcePolicy(SourceCategory.GENERIC, ttl_seconds=24 * 60 * 60)
PROXY_POLICY = SourcePolicy(SourceCategory.GENERIC, ttl_seconds=60 * 60)


class HttpFetcher:
    """Default fetch function: GET ``url`` with ``params`` and decode JSON."""

    def __init__(self, timeout: float = 30.0, user_agent: str = "OpenGov-DataHub/1.0.0") -> None:
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent, "Accept": "application/json"}

    async def __call__(self, url: str, params: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            response = await client.get(url, params=params or None)
            response.raise_for_status()
            return response.json()


class FetchGateway:
    """Wraps outbound calls with the cache store and a rate window."""

    def __init__(
        self,
        store: CacheStore,
        fetch: FetchFn | None = None,
        rate_limit: int = 100,
        window_ms: int = 60_000,
        default_ttl: int = 3600,
        clock: Clock = time.time,
    ) -> None:
        self.store = store
        self._fetch = fetch or HttpFetcher()
        self.window = RateWindow(limit=rate_limit, window_size_ms=window_ms)
        self.default_ttl = default_ttl
        self._clock = clock

    def _enforce_rate_limit(self) -> None:
        wait = self.window.acquire(now_ms(self._clock))
        if wait is not None:
            logger.warning("Outbound rate limit reached, retry in %.1fs", wait)
            raise RateLimited(wait)

    async def fetch_with_cache(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        ttl_seconds: int | None = None,
        force_refresh: bool = False,
        allow_stale: bool = False,
        category: SourceCategory | None = None,
    ) -> Any:
        """Return the payload for ``url``/``params``, from cache when live.

        Raises RateLimited when the outbound window is full (never masked by
        stale data) and UpstreamFetchFailed when the call fails and no stale
        value may be served.
        """
        params = {k: v for k, v in (params or {}).items() if v is not None}
        cache_key = generate_key(url, params)

        # Expired rows stay in the store until set() sweeps them, so every
        # failed call during an outage can still fall back to them
        stale = self.store.peek(cache_key)

        if not force_refresh and self.store.lookup(cache_key) is not None:
            logger.debug("Cache hit for: %s", cache_key)
            return self.store.get(cache_key)

        self._enforce_rate_limit()

        try:
            logger.info("Making API request to: %s", url)
            data = await self._fetch(url, params)
        except Exception as e:
            if allow_stale and stale is not None:
                logger.warning("API failed, returning stale cache data for: %s (%s)", cache_key, e)
                return stale.payload
            logger.error("API request failed for %s: %s", url, e)
            raise UpstreamFetchFailed(url, e) from e

        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        self.store.set(cache_key, data, ttl, category)
        return data

    async def _fetch_with_policy(
        self, url: str, params: dict[str, Any], policy: SourcePolicy
    ) -> Any:
        return await self.fetch_with_cache(
            url,
            params=params,
            ttl_seconds=policy.ttl_seconds,
            allow_stale=policy.allow_stale,
            category=policy.category,
        )

    async def refresh(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        ttl_seconds: int | None = None,
        category: SourceCategory | None = None,
    ) -> Any:
        """Drop the cached entry and fetch it again."""
        params = {k: v for k, v in (params or {}).items() if v is not None}
        self.store.delete(generate_key(url, params))
        return await self.fetch_with_cache(
            url, params=params, ttl_seconds=ttl_seconds, force_refresh=True, category=category
        )

    async def fetch_crime_data(
        self, lat: str | None = None, lng: str | None = None, date: str | None = None
    ) -> Any:
        """Street-level crimes from the UK Police API."""
        params: dict[str, Any] = {}
        if lat and lng:
            params["lat"] = lat
            params["lng"] = lng
        if date:
            params["date"] = date
        return await self._fetch_with_policy(POLICE_CRIMES_URL, params, CRIME_POLICY)

    async def fetch_planning_data(
        self,
        geometry: str | None = None,
        categories: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> Any:
        """Entities from the planning.data.gov.uk API."""
        params = {
            "geometry": geometry or None,
            "categories": categories or None,
            "start_date": start_date or None,
            "end_date": end_date or None,
        }
        return await self._fetch_with_policy(PLANNING_URL, params, PLANNING_POLICY)

    async def fetch_council_spending(
        self,
        dataset: str | None = None,
        q: str | None = None,
        rows: int = 20,
        start: int = 0,
    ) -> Any:
        """Council payments records from the Bristol open-data portal."""
        params = {
            "dataset": dataset or DEFAULT_SPENDING_DATASET,
            "q": q or "",
            "rows": rows,
            "start": start,
        }
        return await self._fetch_with_policy(COUNCIL_SPENDING_URL, params, SPENDING_POLICY)

    async def fetch_postcode_data(self, postcode: str) -> Any:
        """Postcode lookup via postcodes.io. Whitespace is removed."""
        clean = re.sub(r"\s+", "", postcode or "")
        if not clean:
            raise ValueError("Postcode is required")
        return await self._fetch_with_policy(f"{POSTCODES_URL}/{clean}", {}, POSTCODE_POLICY)

    async def proxy_request(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        ttl_seconds: int | None = None,
        category: SourceCategory = SourceCategory.GENERIC,
    ) -> Any:
        """Fetch an arbitrary upstream URL through the cache."""
        return await self.fetch_with_cache(
            url,
            params=params,
            ttl_seconds=ttl_seconds or PROXY_POLICY.ttl_seconds,
            allow_stale=True,
            category=category,
        )

    def get_cache_stats(self) -> dict[str, Any]:
        return self.store.stats()

    def clear_cache(self) -> None:
        self.store.clear()
