"""Pytest configuration and fixtures for DataHub tests."""

from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from datahub.core.config import get_settings
from datahub.main import app
from datahub.services.cache_store import CacheStore
from datahub.services.engine import DataHub

ADMIN_KEY = "test-admin-key"


class FakeClock:
    """Controllable stand-in for time.time()."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> CacheStore:
    """In-memory cache store (no snapshot file)."""
    return CacheStore(default_ttl=3600, max_size=1000, clock=clock)


@pytest.fixture
def fetch() -> AsyncMock:
    """Upstream fetch function; tests set return_value / side_effect."""
    return AsyncMock(return_value=[])


@pytest.fixture
def hub(clock: FakeClock, fetch: AsyncMock) -> DataHub:
    """In-memory DataHub wired to the fake clock and fetch function."""
    return DataHub(rate_limit=5, fetch=fetch, clock=clock)


@pytest.fixture
def client(hub: DataHub) -> Generator[TestClient, None, None]:
    """Test client whose app uses the in-memory hub."""
    app.state.hub = hub
    with TestClient(app) as c:
        yield c
    del app.state.hub


@pytest.fixture
def admin_headers(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    monkeypatch.setattr(get_settings(), "admin_api_key", ADMIN_KEY)
    return {"X-Admin-Api-Key": ADMIN_KEY}
