import logging
import sys
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Look for .env in project root (parent of datahub/)
_project_root = Path(__file__).resolve().parent.parent.parent
_env_file = _project_root / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=_env_file, extra="ignore")

    # Environment
    env: Literal["development", "production"] = "development"

    # Server
    port: int = 8000

    # Snapshot storage
    data_dir: str = ""  # defaults to data/ relative to project root
    cache_file: str = "api-cache.json"
    index_file: str = "search-index.json"

    # Cache store
    cache_ttl: int = 3600  # seconds
    cache_max_size: int = 1000

    # Outbound calls to the open-data APIs
    external_api_timeout: float = 30.0  # seconds
    external_api_rate_limit: int = 100  # calls per window
    external_api_window_ms: int = 60_000
    user_agent: str = "OpenGov-DataHub/1.0.0"

    # Privileged endpoints (index rebuild, cache refresh/clear)
    admin_api_key: str = ""

    # Trusted proxy IPs for X-Forwarded-For (comma-separated)
    trusted_proxies: str = "127.0.0.1,::1"

    # CORS - comma-separated origins or "*" for all (dev only)
    cors_origins: str = "*"

    # Inbound rate limiting (disabled by default in dev, enable in prod)
    rate_limit_enabled: bool | None = None  # None = auto (disabled in dev, enabled in prod)
    search_rate_limit_per_minute: int = 60
    data_rate_limit_per_minute: int = 30

    # Result caps
    public_search_max_limit: int = 100
    category_search_max_limit: int = 100

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def is_rate_limit_enabled(self) -> bool:
        """Check if rate limiting is enabled (auto-detect based on env if not set)."""
        if self.rate_limit_enabled is not None:
            return self.rate_limit_enabled
        return self.is_production

    @property
    def resolved_data_dir(self) -> Path:
        """Return snapshot directory, defaulting to data/ under the project root."""
        if self.data_dir:
            return Path(self.data_dir)
        return _project_root / "data"

    @property
    def cache_path(self) -> Path:
        return self.resolved_data_dir / self.cache_file

    @property
    def index_path(self) -> Path:
        return self.resolved_data_dir / self.index_file


def validate_settings(settings: Settings) -> None:
    """Validate required settings and print helpful error messages."""
    errors = []

    if settings.is_production:
        if not settings.admin_api_key:
            errors.append("ADMIN_API_KEY must be set in production")
        if settings.cors_origins == "*":
            errors.append(
                "CORS_ORIGINS should not be '*' in production - set to your frontend domain"
            )
    elif not settings.admin_api_key:
        logging.warning(
            "ADMIN_API_KEY not set - index rebuild and cache refresh endpoints are disabled"
        )

    if settings.cache_max_size < 1:
        errors.append("CACHE_MAX_SIZE must be at least 1")
    if settings.external_api_rate_limit < 1:
        errors.append("EXTERNAL_API_RATE_LIMIT must be at least 1")

    if errors:
        for error in errors:
            logging.error("Configuration error: %s", error)
        sys.exit(1)


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    validate_settings(settings)
    return settings
