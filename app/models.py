"""Pydantic models describing stored content and API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .lookup import CATEGORIES, CATEGORY_ALIASES, MOOD_IDS, Category
from .utils import dedupe

MediaType = Literal["movie", "tv"]

PLACEHOLDER_PROVIDER_ID = 0


def coerce_category(value: object) -> object:
    """Map localized or loosely spelled category names onto the enum."""

    if not isinstance(value, str):
        return value
    text = value.strip()
    lowered = text.lower()
    if lowered in CATEGORIES:
        return lowered
    return CATEGORY_ALIASES.get(text) or CATEGORY_ALIASES.get(lowered) or text


def coerce_mood_ids(value: object) -> object:
    if value is None:
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if isinstance(value, (list, tuple)):
        cleaned: list[str] = []
        for entry in value:
            mood_id = str(entry).strip()
            if not mood_id:
                continue
            if mood_id.isdigit() and len(mood_id) == 1:
                mood_id = f"0{mood_id}"
            if mood_id not in MOOD_IDS:
                raise ValueError(f"Unknown mood id: {mood_id}")
            if mood_id not in cleaned:
                cleaned.append(mood_id)
        return cleaned
    return value


class Provider(BaseModel):
    """A streaming service offering the title in the configured region."""

    provider_id: int
    provider_name: str
    logo_url: str | None = None


class ContentItem(BaseModel):
    """A normalized catalog entry as persisted in the content store."""

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = None
    external_id: str | None = Field(
        default=None, validation_alias=AliasChoices("external_id", "imdb_id")
    )
    tmdb_id: int | None = None
    media_type: MediaType = "movie"
    title_a: str
    title_b: str | None = None
    description_a: str | None = None
    description_b: str | None = None
    poster_url: str | None = None
    url: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    year: int | None = None
    category: Category = "movie"
    tags_a: list[str] = Field(default_factory=list)
    tags_b: list[str] = Field(default_factory=list)
    providers: list[Provider] = Field(default_factory=list)
    force_included: bool = False
    embedding: list[float] | None = None
    cast: list[str] = Field(default_factory=list)
    director: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: object) -> object:
        return coerce_category(value)

    @field_validator("tags_a", "tags_b", mode="after")
    @classmethod
    def _dedupe_tags(cls, value: list[str]) -> list[str]:
        return dedupe(tag for tag in value if tag)

    @property
    def is_available(self) -> bool:
        return bool(self.providers)

    def to_payload(self) -> dict[str, object]:
        """Return the public representation used by the HTTP layer."""

        return self.model_dump(mode="json", exclude={"embedding"})


class UserProfile(BaseModel):
    """Preferences that drive a recommendation request."""

    model_config = ConfigDict(populate_by_name=True)

    category: Category = Field(validation_alias=AliasChoices("category", "genre"))
    moods: list[str] = Field(default_factory=list, max_length=2)
    provider_ids: list[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("provider_ids", "providerIds", "providers"),
    )

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: object) -> object:
        return coerce_category(value)

    @field_validator("moods", mode="before")
    @classmethod
    def _coerce_moods(cls, value: object) -> object:
        return coerce_mood_ids(value)


class IngestRequest(BaseModel):
    """Body accepted by the ingestion trigger endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    category: Category | None = Field(
        default=None, validation_alias=AliasChoices("category", "genre")
    )
    moods: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("moods", "mood")
    )
    tmdb_ids: list[int] = Field(
        default_factory=list, validation_alias=AliasChoices("tmdb_ids", "tmdbIds")
    )
    count: int | None = Field(default=None, ge=1, le=200)
    force_availability: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("force_availability", "forceAvailability"),
    )

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return coerce_category(value)

    @field_validator("moods", mode="before")
    @classmethod
    def _coerce_moods(cls, value: object) -> object:
        moods = coerce_mood_ids(value)
        if isinstance(moods, list) and len(moods) > 2:
            raise ValueError("At most two moods may be requested")
        return moods

    @field_validator("tmdb_ids", mode="before")
    @classmethod
    def _coerce_ids(cls, value: object) -> object:
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            return value
        parsed: list[int] = []
        for entry in value:
            try:
                parsed.append(int(entry))
            except (TypeError, ValueError):
                continue
        return parsed


class BackfillRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)
    only_missing: bool = Field(
        default=False, validation_alias=AliasChoices("only_missing", "onlyMissing")
    )


class EmbedRequest(BaseModel):
    text: str = Field(min_length=1)
