"""Application configuration helpers."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataPaths(BaseModel):
    """Filesystem locations for cached bars and persisted scan state."""

    raw: Path = Field(default=Path("data/raw"))
    state: Path = Field(default=Path("data/state"))

    def ensure(self) -> None:
        """Create directories if they do not exist."""

        for path in (self.raw, self.state):
            path.mkdir(parents=True, exist_ok=True)


class AppSettings(BaseSettings):
    """Project-wide settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    api_base_url: str | None = Field(default=None, alias="ZONEBREAK_API_URL")
    api_timeout_seconds: int = Field(default=30, alias="ZONEBREAK_API_TIMEOUT")
    api_rate_limit_per_minute: int = Field(
        default=0, alias="ZONEBREAK_API_RATE_LIMIT")
    default_lookback_days: int = Field(
        default=1095, alias="ZONEBREAK_LOOKBACK_DAYS")
    ranked_symbol_limit: int = Field(default=500, alias="ZONEBREAK_RANKED_LIMIT")
    cache_max_entries: int = Field(
        default=20, alias="ZONEBREAK_CACHE_MAX_ENTRIES")
    cache_ttl_hours: float = Field(
        default=12.0, alias="ZONEBREAK_CACHE_TTL_HOURS")
    min_signal_count: float = Field(default=4.0, alias="ZONEBREAK_MIN_SIGNALS")
    storage_quota_bytes: int = Field(
        default=5_000_000, alias="ZONEBREAK_STORAGE_QUOTA")
    data_paths: DataPaths = Field(default_factory=DataPaths)

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.cache_ttl_hours)

    def require_api_base_url(self) -> str:
        """Return the price API base URL or raise a helpful error."""

        if not self.api_base_url:
            raise RuntimeError(
                "Missing price API location. Set ZONEBREAK_API_URL in your environment or .env file."
            )
        return self.api_base_url
