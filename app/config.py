"""Application configuration models."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOCALE_RE = re.compile(r"^([a-zA-Z]{2})(?:[-_]([a-zA-Z]{2}))?$")


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="MoodReel", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./moodreel.db", alias="DATABASE_URL"
    )

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    primary_locale: str = Field(default="ko-KR", alias="PRIMARY_LOCALE")
    secondary_locale: str = Field(default="en-US", alias="SECONDARY_LOCALE")
    provider_region: str = Field(default="KR", alias="PROVIDER_REGION")

    min_vote_count: int = Field(default=100, alias="MIN_VOTE_COUNT", ge=0)
    relaxed_vote_count: int = Field(default=50, alias="RELAXED_VOTE_COUNT", ge=0)
    min_rating: float = Field(default=6.0, alias="MIN_RATING", ge=0, le=10)
    recency_years: int = Field(default=10, alias="RECENCY_YEARS", ge=1, le=100)

    ingest_target_count: int = Field(
        default=20, alias="INGEST_TARGET_COUNT", ge=1, le=200
    )
    ingest_max_pages: int = Field(default=5, alias="INGEST_MAX_PAGES", ge=1, le=50)
    ingest_item_delay_seconds: float = Field(
        default=0.2, alias="INGEST_ITEM_DELAY", ge=0, le=30
    )
    ingest_interval_seconds: int = Field(
        default=0, alias="INGEST_INTERVAL", ge=0
    )
    enrichment_concurrency: int = Field(
        default=3, alias="ENRICHMENT_CONCURRENCY", ge=1, le=3
    )
    rate_limit_per_second: float = Field(
        default=10.0, alias="RATE_LIMIT_PER_SECOND", gt=0
    )
    rate_limit_burst: int = Field(default=10, alias="RATE_LIMIT_BURST", ge=1)

    force_availability: bool = Field(default=False, alias="FORCE_AVAILABILITY")
    placeholder_provider_name: str = Field(
        default="Availability unknown", alias="PLACEHOLDER_PROVIDER_NAME"
    )

    embedding_api_url: HttpUrl | None = Field(
        default=None,
        alias="EMBEDDING_API_URL",
        validation_alias=AliasChoices("EMBEDDING_API_URL", "EMBED_FUNCTION_URL"),
    )
    embedding_api_key: str | None = Field(default=None, alias="EMBEDDING_API_KEY")
    embedding_dimensions: int = Field(
        default=1536, alias="EMBEDDING_DIMENSIONS", ge=1
    )
    embedding_text_limit: int = Field(
        default=512, alias="EMBEDDING_TEXT_LIMIT", ge=1
    )

    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_api_url: HttpUrl = Field(
        default="https://api.openai.com/v1", alias="OPENAI_API_URL"
    )
    openai_embedding_model: str = Field(
        default="text-embedding-3-small", alias="OPENAI_EMBEDDING_MODEL"
    )

    retrieval_top_k: int = Field(default=5, alias="RETRIEVAL_TOP_K", ge=1, le=50)
    retrieval_limit: int = Field(default=3, alias="RETRIEVAL_LIMIT", ge=1, le=50)

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("primary_locale", "secondary_locale", mode="before")
    @classmethod
    def _normalise_locale(cls, value: object) -> str:
        """Accept ``ko``, ``ko_kr`` or ``ko-KR`` style locale values."""

        text = str(value or "").strip()
        match = LOCALE_RE.match(text)
        if not match:
            raise ValueError("Locales must look like 'ko-KR' or 'en'")
        language, region = match.groups()
        if region:
            return f"{language.lower()}-{region.upper()}"
        return language.lower()

    @field_validator("provider_region", mode="before")
    @classmethod
    def _normalise_region(cls, value: object) -> str:
        text = str(value or "").strip().upper()
        if len(text) != 2 or not text.isalpha():
            raise ValueError("PROVIDER_REGION must be a two-letter country code")
        return text

    @model_validator(mode="after")
    def _check_vote_thresholds(self) -> "Settings":
        """The relaxed vote threshold may never be stricter than the default."""

        if self.relaxed_vote_count > self.min_vote_count:
            raise ValueError("RELAXED_VOTE_COUNT must not exceed MIN_VOTE_COUNT")
        if self.retrieval_limit > self.retrieval_top_k:
            raise ValueError("RETRIEVAL_LIMIT must not exceed RETRIEVAL_TOP_K")
        return self

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
