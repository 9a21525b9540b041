"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ShowTracker", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tvmaze_api_url: HttpUrl = Field(
        default="https://api.tvmaze.com", alias="TVMAZE_API_URL"
    )
    jikan_api_url: HttpUrl = Field(
        default="https://api.jikan.moe/v4", alias="JIKAN_API_URL"
    )
    wikidata_sparql_url: HttpUrl = Field(
        default="https://query.wikidata.org/sparql", alias="WIKIDATA_SPARQL_URL"
    )

    tvmaze_min_interval_ms: int = Field(
        default=0, alias="TVMAZE_MIN_INTERVAL_MS", ge=0, le=60_000
    )
    jikan_min_interval_ms: int = Field(
        default=333, alias="JIKAN_MIN_INTERVAL_MS", ge=0, le=60_000
    )
    wikidata_min_interval_ms: int = Field(
        default=0, alias="WIKIDATA_MIN_INTERVAL_MS", ge=0, le=60_000
    )

    stale_after_seconds: int = Field(
        default=86_400, alias="STALE_AFTER_SECONDS", ge=60
    )
    refresh_interval_seconds: int = Field(
        default=86_400, alias="REFRESH_INTERVAL", ge=60
    )
    match_concurrency: int = Field(
        default=8, alias="MATCH_CONCURRENCY", ge=1, le=64
    )

    search_result_limit: int = Field(
        default=8, alias="SEARCH_RESULT_LIMIT", ge=1, le=50
    )
    airing_limit: int = Field(default=25, alias="AIRING_LIMIT", ge=1, le=25)
    popular_limit: int = Field(default=20, alias="POPULAR_LIMIT", ge=1, le=100)
    popular_index_pages: int = Field(
        default=3, alias="POPULAR_INDEX_PAGES", ge=1, le=20
    )
    page_size: int = Field(default=10, alias="PAGE_SIZE", ge=1, le=200)
    schedule_country: str = Field(default="US", alias="SCHEDULE_COUNTRY")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./showtracker.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("schedule_country", mode="before")
    @classmethod
    def _normalise_country(cls, value: object) -> str:
        """Country codes are two upper-case letters."""

        if value is None:
            return "US"
        text = str(value).strip().upper()
        if not text:
            return "US"
        if len(text) != 2 or not text.isalpha():
            raise ValueError("SCHEDULE_COUNTRY must be a two-letter country code")
        return text

    @property
    def user_agent(self) -> str:
        return f"{self.app_name} (showtracker)"

    def min_intervals(self) -> dict[str, float]:
        """Return the minimum dispatch spacing per catalog in seconds."""

        return {
            "tvmaze": self.tvmaze_min_interval_ms / 1000,
            "jikan": self.jikan_min_interval_ms / 1000,
            "wikidata": self.wikidata_min_interval_ms / 1000,
        }

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
