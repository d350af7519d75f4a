"""Per-item detail enrichment with uniform partial-failure handling."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Generic, TypeVar

from ..config import Settings
from ..errors import FatalItemError, MoodReelError, PartialDataError, TransientProviderError
from ..lookup import Endpoint
from ..models import Provider
from ..utils import (
    build_image_url,
    build_title_url,
    dedupe,
    first_non_empty,
    normalize_rating,
)
from .tmdb import CatalogSummary, PrimaryDetail, SecondaryDetail, TMDBClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class FieldResult(Generic[T]):
    """The value fetched for one enrichment source, or why it is missing."""

    value: T | None = None
    error: MoodReelError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


@dataclass(slots=True)
class EnrichedItem:
    """All fetched data for one catalog item, ready for classification."""

    tmdb_id: int
    endpoint: Endpoint
    title_a: str
    title_b: str | None = None
    description_a: str | None = None
    description_b: str | None = None
    external_id: str | None = None
    poster_url: str | None = None
    url: str | None = None
    year: int | None = None
    vote_average: float = 0.0
    rating: float | None = None
    genre_ids: tuple[int, ...] = ()
    keywords_a: tuple[str, ...] = ()
    keywords_b: tuple[str, ...] = ()
    providers: list[Provider] = field(default_factory=list)
    cast: list[str] = field(default_factory=list)
    director: str | None = None
    missing: list[str] = field(default_factory=list)

    @property
    def embedding_text(self) -> str | None:
        return first_non_empty(self.description_a, self.title_a)


def merge_enrichment(
    summary: CatalogSummary,
    primary: FieldResult[PrimaryDetail],
    secondary: FieldResult[SecondaryDetail],
    providers: FieldResult[list[Provider]],
    *,
    endpoint: Endpoint,
) -> EnrichedItem:
    """Fold the per-source results into one ``EnrichedItem``.

    A failed primary detail or an unresolvable title raises ``FatalItemError``;
    every other missing source only leaves its fields empty.
    """

    if primary.error is not None or primary.value is None:
        raise FatalItemError(
            f"Primary detail for {endpoint}/{summary.tmdb_id} unavailable: {primary.error}"
        )
    detail = primary.value
    title_a = first_non_empty(detail.title, summary.title)
    if not title_a:
        raise FatalItemError(f"No title for {endpoint}/{summary.tmdb_id}")

    vote_average = summary.vote_average or detail.vote_average
    missing: list[str] = []
    localized = secondary.value if secondary.ok else None
    if localized is None:
        missing.append("secondary")
    offered = providers.value if providers.ok else []
    if not providers.ok:
        missing.append("providers")

    return EnrichedItem(
        tmdb_id=summary.tmdb_id,
        endpoint=endpoint,
        title_a=title_a,
        title_b=first_non_empty(
            localized.title if localized else None,
            summary.original_title,
            detail.original_title,
            title_a,
        ),
        description_a=first_non_empty(detail.overview, summary.overview),
        description_b=first_non_empty(localized.overview) if localized else None,
        external_id=detail.external_id,
        poster_url=build_image_url(detail.poster_path or summary.poster_path),
        url=build_title_url(detail.external_id),
        year=summary.year or detail.year,
        vote_average=vote_average,
        rating=normalize_rating(vote_average),
        genre_ids=tuple(dedupe([*summary.genre_ids, *detail.genre_ids])),
        keywords_a=tuple(detail.keywords),
        keywords_b=tuple(localized.keywords) if localized else (),
        providers=list(offered or []),
        cast=list(detail.cast),
        director=detail.director,
        missing=missing,
    )


class DetailEnricher:
    """Fetches primary detail, secondary detail and providers for one item."""

    def __init__(self, client: TMDBClient, settings: Settings):
        self._client = client
        self._semaphore = asyncio.Semaphore(min(3, settings.enrichment_concurrency))

    async def enrich(self, summary: CatalogSummary, endpoint: Endpoint) -> EnrichedItem:
        primary, secondary, providers = await asyncio.gather(
            self._guard(
                self._client.fetch_primary_detail(endpoint, summary.tmdb_id),
                fatal=True,
            ),
            self._guard(self._client.fetch_secondary_detail(endpoint, summary.tmdb_id)),
            self._guard(self._client.fetch_providers(endpoint, summary.tmdb_id)),
        )
        for label, result in (("secondary detail", secondary), ("providers", providers)):
            if result.error is not None:
                logger.warning(
                    "Missing %s for %s/%s: %s",
                    label,
                    endpoint,
                    summary.tmdb_id,
                    result.error,
                )
        return merge_enrichment(
            summary, primary, secondary, providers, endpoint=endpoint
        )

    async def _guard(
        self, call: Awaitable[T], *, fatal: bool = False
    ) -> FieldResult[T]:
        async with self._semaphore:
            try:
                return FieldResult(value=await call)
            except TransientProviderError as exc:
                error: MoodReelError = (
                    FatalItemError(str(exc)) if fatal else PartialDataError(str(exc))
                )
                return FieldResult(error=error)
