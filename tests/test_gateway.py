"""Tests for the fetch gateway: cache hits, rate window, stale fallback."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from datahub.core.errors import RateLimited, UpstreamFetchFailed
from datahub.models.rate_window import RateWindow
from datahub.models.source import SourceCategory
from datahub.services.cache_store import generate_key
from datahub.services.gateway import (
    COUNCIL_SPENDING_URL,
    PLANNING_URL,
    POLICE_CRIMES_URL,
    POSTCODES_URL,
    FetchGateway,
    HttpFetcher,
)

URL = "https://example.gov.uk/api/things"


@pytest.fixture
def gateway(store, fetch, clock) -> FetchGateway:
    return FetchGateway(store, fetch=fetch, rate_limit=3, window_ms=60_000, clock=clock)


class TestRateWindow:
    def test_allows_up_to_limit(self):
        window = RateWindow(limit=2, window_size_ms=1000)
        assert window.acquire(10_000) is None
        assert window.acquire(10_001) is None
        assert window.acquire(10_002) == pytest.approx(0.998)

    def test_resets_after_window(self):
        window = RateWindow(limit=1, window_size_ms=1000)
        assert window.acquire(10_000) is None
        assert window.acquire(10_500) is not None
        assert window.acquire(11_001) is None
        assert window.request_count == 1

    def test_rejected_call_is_not_counted(self):
        window = RateWindow(limit=1, window_size_ms=1000)
        window.acquire(10_000)
        window.acquire(10_100)
        window.acquire(10_200)
        assert window.request_count == 1


@pytest.mark.asyncio
class TestFetchWithCache:
    async def test_miss_calls_upstream_and_caches(self, gateway, fetch, store):
        fetch.return_value = {"ok": True}

        result = await gateway.fetch_with_cache(URL, params={"a": "1"}, ttl_seconds=60)

        assert result == {"ok": True}
        fetch.assert_awaited_once_with(URL, {"a": "1"})
        entry = store.peek(generate_key(URL, {"a": "1"}))
        assert entry.payload == {"ok": True}
        assert entry.ttl_seconds == 60

    async def test_hit_skips_network_and_rate_window(self, gateway, fetch):
        fetch.return_value = [1]
        await gateway.fetch_with_cache(URL)
        for _ in range(10):
            assert await gateway.fetch_with_cache(URL) == [1]

        fetch.assert_awaited_once()
        assert gateway.window.request_count == 1

    async def test_force_refresh_bypasses_cache(self, gateway, fetch):
        fetch.side_effect = [["first"], ["second"]]
        await gateway.fetch_with_cache(URL)
        result = await gateway.fetch_with_cache(URL, force_refresh=True)
        assert result == ["second"]
        assert fetch.await_count == 2

    async def test_expired_entry_refetched(self, gateway, fetch, clock):
        fetch.side_effect = [["first"], ["second"]]
        await gateway.fetch_with_cache(URL, ttl_seconds=10)
        clock.advance(11)
        assert await gateway.fetch_with_cache(URL, ttl_seconds=10) == ["second"]

    async def test_rate_limit_rejects_extra_call(self, gateway, fetch):
        for i in range(3):
            await gateway.fetch_with_cache(URL, params={"page": i})

        with pytest.raises(RateLimited) as exc_info:
            await gateway.fetch_with_cache(URL, params={"page": 99})

        assert fetch.await_count == 3
        assert 0 < exc_info.value.retry_after <= 60
        assert exc_info.value.to_dict()["error"] == "rate_limited"

    async def test_rate_window_resets_after_a_minute(self, gateway, fetch, clock):
        for i in range(3):
            await gateway.fetch_with_cache(URL, params={"page": i})
        clock.advance(61)
        await gateway.fetch_with_cache(URL, params={"page": 3})
        assert fetch.await_count == 4

    async def test_rate_limited_not_masked_by_stale(self, gateway, fetch, clock):
        await gateway.fetch_with_cache(URL, ttl_seconds=1)
        clock.advance(2)
        for i in range(2):
            await gateway.fetch_with_cache(URL, params={"page": i})

        with pytest.raises(RateLimited):
            await gateway.fetch_with_cache(URL, ttl_seconds=1, allow_stale=True)

    async def test_stale_fallback_on_upstream_failure(self, gateway, fetch, clock):
        fetch.return_value = ["cached"]
        await gateway.fetch_with_cache(URL, ttl_seconds=10)
        clock.advance(20)
        fetch.side_effect = httpx.ConnectError("boom")

        result = await gateway.fetch_with_cache(URL, ttl_seconds=10, allow_stale=True)

        assert result == ["cached"]

    async def test_stale_fallback_survives_repeated_failures(self, gateway, fetch, clock, store):
        fetch.return_value = ["cached"]
        await gateway.fetch_with_cache(URL, ttl_seconds=10)
        clock.advance(20)
        fetch.side_effect = httpx.ConnectError("boom")

        first = await gateway.fetch_with_cache(URL, ttl_seconds=10, allow_stale=True)
        second = await gateway.fetch_with_cache(URL, ttl_seconds=10, allow_stale=True)

        assert first == second == ["cached"]
        assert URL in store
        assert fetch.await_count == 3

    async def test_expired_entry_replaced_after_recovery(self, gateway, fetch, clock, store):
        fetch.return_value = ["old"]
        await gateway.fetch_with_cache(URL, ttl_seconds=10)
        clock.advance(20)
        fetch.return_value = ["new"]

        assert await gateway.fetch_with_cache(URL, ttl_seconds=10) == ["new"]
        assert store.get(URL) == ["new"]

    async def test_failure_without_stale_permission_raises(self, gateway, fetch, clock):
        await gateway.fetch_with_cache(URL, ttl_seconds=10)
        clock.advance(20)
        fetch.side_effect = RuntimeError("down")

        with pytest.raises(UpstreamFetchFailed) as exc_info:
            await gateway.fetch_with_cache(URL, ttl_seconds=10)

        assert isinstance(exc_info.value.original_error, RuntimeError)
        assert exc_info.value.url == URL

    async def test_failure_with_nothing_cached_raises(self, gateway, fetch):
        fetch.side_effect = httpx.ReadTimeout("slow")
        with pytest.raises(UpstreamFetchFailed):
            await gateway.fetch_with_cache(URL, allow_stale=True)

    async def test_category_threaded_to_store(self, gateway, store):
        await gateway.fetch_with_cache(URL, category=SourceCategory.SPENDING)
        assert store.peek(URL).category == SourceCategory.SPENDING

    async def test_refresh_evicts_and_refetches(self, gateway, fetch, store):
        fetch.side_effect = [["v1"], ["v2"]]
        await gateway.fetch_with_cache(URL, params={"x": "1"})

        result = await gateway.refresh(URL, {"x": "1"})

        assert result == ["v2"]
        assert store.get(generate_key(URL, {"x": "1"})) == ["v2"]

    async def test_refresh_failure_leaves_no_entry(self, gateway, fetch, store):
        await gateway.fetch_with_cache(URL)
        fetch.side_effect = RuntimeError("down")
        with pytest.raises(UpstreamFetchFailed):
            await gateway.refresh(URL)
        assert URL not in store


@pytest.mark.asyncio
class TestSourceFetchers:
    async def test_crime_policy(self, gateway, fetch, store):
        await gateway.fetch_crime_data(lat="51.5", lng="-0.1", date="2024-01")

        fetch.assert_awaited_once_with(
            POLICE_CRIMES_URL, {"lat": "51.5", "lng": "-0.1", "date": "2024-01"}
        )
        entry = store.peek(f"{POLICE_CRIMES_URL}?date=2024-01&lat=51.5&lng=-0.1")
        assert entry.ttl_seconds == 3600
        assert entry.category == SourceCategory.CRIME

    async def test_crime_requires_both_coordinates(self, gateway, fetch):
        await gateway.fetch_crime_data(lat="51.5")
        fetch.assert_awaited_once_with(POLICE_CRIMES_URL, {})

    async def test_planning_policy(self, gateway, fetch, store):
        await gateway.fetch_planning_data(categories="conservation-area")

        fetch.assert_awaited_once_with(PLANNING_URL, {"categories": "conservation-area"})
        entry = store.peek(f"{PLANNING_URL}?categories=conservation-area")
        assert entry.ttl_seconds == 1800
        assert entry.category == SourceCategory.PLANNING

    async def test_spending_defaults(self, gateway, fetch, store):
        await gateway.fetch_council_spending()

        params = fetch.await_args.args[1]
        assert params == {"dataset": "payments-to-suppliers", "q": "", "rows": 20, "start": 0}
        entry = store.peek(generate_key(COUNCIL_SPENDING_URL, params))
        assert entry.ttl_seconds == 3600
        assert entry.category == SourceCategory.SPENDING

    async def test_postcode_strips_whitespace(self, gateway, fetch, store):
        await gateway.fetch_postcode_data("SW1A 1AA")

        fetch.assert_awaited_once_with(f"{POSTCODES_URL}/SW1A1AA", {})
        assert store.peek(f"{POSTCODES_URL}/SW1A1AA").ttl_seconds == 86400

    async def test_blank_postcode_rejected(self, gateway, fetch):
        with pytest.raises(ValueError):
            await gateway.fetch_postcode_data("   ")
        fetch.assert_not_awaited()

    async def test_source_fetchers_allow_stale(self, gateway, fetch, clock):
        fetch.return_value = [{"category": "burglary"}]
        await gateway.fetch_crime_data()
        clock.advance(2 * 3600)
        fetch.side_effect = httpx.ConnectError("offline")

        assert await gateway.fetch_crime_data() == [{"category": "burglary"}]

    async def test_proxy_request_defaults(self, gateway, store):
        await gateway.proxy_request("https://example.com/feed")
        entry = store.peek("https://example.com/feed")
        assert entry.ttl_seconds == 3600
        assert entry.category == SourceCategory.GENERIC


@pytest.mark.asyncio
class TestHttpFetcher:
    @patch("datahub.services.gateway.httpx.AsyncClient")
    async def test_returns_decoded_json(self, mock_client_cls):
        mock_response = MagicMock()
        mock_response.json.return_value = {"result": 1}

        mock_client = AsyncMock()
        mock_client.get.return_value = mock_response
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client_cls.return_value = mock_client

        fetcher = HttpFetcher(timeout=5.0, user_agent="test-agent")
        result = await fetcher("https://example.com", {"q": "x"})

        assert result == {"result": 1}
        mock_response.raise_for_status.assert_called_once()
        mock_client.get.assert_awaited_once_with("https://example.com", params={"q": "x"})
        kwargs = mock_client_cls.call_args.kwargs
        assert kwargs["timeout"] == 5.0
        assert kwargs["headers"]["User-Agent"] == "test-agent"

    @patch("datahub.services.gateway.httpx.AsyncClient")
    async def test_http_error_propagates(self, mock_client_cls):
        mock_response = MagicMock()
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "503", request=MagicMock(), response=MagicMock()
        )
        mock_client = AsyncMock()
        mock_client.get.return_value = mock_response
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        mock_client_cls.return_value = mock_client

        with pytest.raises(httpx.HTTPStatusError):
            await HttpFetcher()("https://example.com", {})
