"""Tests for settings, validation and the error taxonomy."""

from pathlib import Path

import pytest

from datahub.core.config import Settings, validate_settings
from datahub.core.errors import (
    CacheIOFailure,
    IndexBuildPartialFailure,
    InvalidQuery,
    RateLimited,
    UpstreamFetchFailed,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.cache_ttl == 3600
        assert settings.cache_max_size == 1000
        assert settings.external_api_rate_limit == 100
        assert settings.external_api_timeout == 30.0
        assert settings.cache_path.name == "api-cache.json"
        assert settings.index_path.name == "search-index.json"

    def test_data_dir_override(self, tmp_path):
        settings = Settings(_env_file=None, data_dir=str(tmp_path))
        assert settings.cache_path == Path(tmp_path) / "api-cache.json"

    def test_env_variables(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL", "60")
        monkeypatch.setenv("EXTERNAL_API_RATE_LIMIT", "3")
        settings = Settings(_env_file=None)
        assert settings.cache_ttl == 60
        assert settings.external_api_rate_limit == 3

    def test_rate_limit_auto_detect(self):
        assert Settings(_env_file=None).is_rate_limit_enabled is False
        assert Settings(_env_file=None, env="production").is_rate_limit_enabled is True
        assert Settings(_env_file=None, rate_limit_enabled=True).is_rate_limit_enabled is True


class TestValidateSettings:
    def test_production_requires_admin_key_and_cors(self):
        settings = Settings(_env_file=None, env="production")
        with pytest.raises(SystemExit):
            validate_settings(settings)

    def test_production_ok(self):
        settings = Settings(
            _env_file=None,
            env="production",
            admin_api_key="secret",
            cors_origins="https://example.org",
        )
        validate_settings(settings)

    def test_cache_size_must_be_positive(self):
        with pytest.raises(SystemExit):
            validate_settings(Settings(_env_file=None, cache_max_size=0))

    def test_development_without_admin_key_only_warns(self, caplog):
        validate_settings(Settings(_env_file=None))
        assert "ADMIN_API_KEY not set" in caplog.text


class TestErrors:
    def test_rate_limited_rounds_up(self):
        error = RateLimited(12.2)
        assert error.to_dict() == {
            "error": "rate_limited",
            "message": "Rate limit exceeded. Try again in 13 seconds.",
            "retry_after": 13,
        }

    def test_upstream_failure_keeps_cause(self):
        cause = ConnectionError("boom")
        error = UpstreamFetchFailed("https://example.org", cause)
        assert error.original_error is cause
        assert error.to_dict()["url"] == "https://example.org"
        assert "ConnectionError" in error.message

    def test_kinds(self):
        assert CacheIOFailure("/tmp/x").kind == "cache_io_failure"
        assert IndexBuildPartialFailure("k").to_dict()["document_key"] == "k"
        assert InvalidQuery("empty").to_dict() == {"error": "invalid_query", "message": "empty"}
