"""Discover query construction, filter relaxation and page aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Sequence

from ..config import Settings
from ..errors import TransientProviderError
from ..lookup import (
    CATEGORY_GENRE_IDS,
    CATEGORY_TV_TYPES,
    DEFAULT_SORT,
    MOODS,
    Category,
    Endpoint,
)
from ..utils import dedupe
from .tmdb import CatalogSummary, DiscoverPage, TMDBClient

logger = logging.getLogger(__name__)


def endpoint_for(category: Category) -> Endpoint:
    """Movies use the movie endpoint, every other category is a series."""

    return "movie" if category == "movie" else "tv"


@dataclass(frozen=True)
class QuerySpec:
    """Immutable filter set for one discover query."""

    endpoint: Endpoint
    sort_by: str = DEFAULT_SORT
    min_vote_count: int | None = None
    relaxed_vote_count: int | None = None
    min_rating: float | None = None
    genre_ids: tuple[int, ...] = ()
    keyword_ids: tuple[int, ...] = ()
    released_after: date | None = None
    tv_types: tuple[int, ...] = ()

    def to_params(self, page: int = 1) -> dict[str, Any]:
        params: dict[str, Any] = {
            "sort_by": self.sort_by,
            "include_adult": "false",
            "page": page,
        }
        if self.min_vote_count is not None:
            params["vote_count.gte"] = self.min_vote_count
        if self.min_rating is not None:
            params["vote_average.gte"] = self.min_rating
        if self.genre_ids:
            params["with_genres"] = "|".join(str(genre) for genre in self.genre_ids)
        if self.keyword_ids:
            params["with_keywords"] = "|".join(
                str(keyword) for keyword in self.keyword_ids
            )
        if self.released_after is not None:
            key = (
                "primary_release_date.gte"
                if self.endpoint == "movie"
                else "first_air_date.gte"
            )
            params[key] = self.released_after.isoformat()
        if self.tv_types and self.endpoint == "tv":
            params["with_type"] = "|".join(str(kind) for kind in self.tv_types)
        return params


def build_query_spec(
    category: Category,
    moods: Sequence[str],
    settings: Settings,
    today: date | None = None,
) -> QuerySpec:
    """Translate a category and up to two moods into discover filters."""

    endpoint = endpoint_for(category)
    selected = [MOODS[mood_id] for mood_id in moods if mood_id in MOODS]

    genre_ids: list[int] = []
    if category in CATEGORY_GENRE_IDS and category != "variety":
        genre_ids.append(CATEGORY_GENRE_IDS[category])
    if endpoint == "movie":
        for mood in selected:
            genre_ids.extend(mood.genre_ids)

    keyword_ids: list[int] = []
    if category != "variety":
        for mood in selected:
            keyword_ids.extend(mood.keyword_ids)

    current = today or date.today()
    return QuerySpec(
        endpoint=endpoint,
        sort_by=selected[0].sort_by if selected else DEFAULT_SORT,
        min_vote_count=settings.min_vote_count,
        relaxed_vote_count=settings.relaxed_vote_count,
        min_rating=settings.min_rating,
        genre_ids=tuple(dedupe(genre_ids)),
        keyword_ids=tuple(dedupe(keyword_ids)),
        released_after=date(current.year - settings.recency_years, 1, 1),
        tv_types=CATEGORY_TV_TYPES.get(category, ()),
    )


@dataclass(frozen=True)
class RelaxationStep:
    """A named predicate and mutator pair over a ``QuerySpec``."""

    name: str
    applies: Callable[[QuerySpec], bool]
    relax: Callable[[QuerySpec], QuerySpec]


RELAXATION_STEPS: tuple[RelaxationStep, ...] = (
    RelaxationStep(
        name="drop-min-rating",
        applies=lambda spec: spec.min_rating is not None,
        relax=lambda spec: replace(spec, min_rating=None),
    ),
    RelaxationStep(
        name="lower-vote-count",
        applies=lambda spec: spec.relaxed_vote_count is not None
        and (spec.min_vote_count or 0) > spec.relaxed_vote_count,
        relax=lambda spec: replace(spec, min_vote_count=spec.relaxed_vote_count),
    ),
    RelaxationStep(
        name="drop-recency",
        applies=lambda spec: spec.released_after is not None,
        relax=lambda spec: replace(spec, released_after=None),
    ),
    RelaxationStep(
        name="drop-keywords",
        applies=lambda spec: bool(spec.keyword_ids),
        relax=lambda spec: replace(spec, keyword_ids=()),
    ),
)


@dataclass(slots=True)
class DiscoveryResult:
    """Outcome of one discovery run."""

    endpoint: Endpoint
    spec: QuerySpec
    items: list[CatalogSummary] = field(default_factory=list)
    relaxations: list[str] = field(default_factory=list)
    requests_made: int = 0


class DiscoveryAggregator:
    """Runs discover queries, relaxing filters and paging until a target count."""

    def __init__(
        self,
        client: TMDBClient,
        settings: Settings,
        *,
        steps: Sequence[RelaxationStep] = RELAXATION_STEPS,
        today: Callable[[], date] = date.today,
    ):
        self._client = client
        self._settings = settings
        self._steps = tuple(steps)
        self._today = today

    async def discover(
        self, category: Category, moods: Sequence[str], count: int
    ) -> DiscoveryResult:
        spec = build_query_spec(category, moods, self._settings, self._today())
        result = DiscoveryResult(endpoint=spec.endpoint, spec=spec)
        if count <= 0:
            return result

        page = await self._fetch(spec, 1)
        result.requests_made = 1
        if page is None or not page.items:
            for step in self._steps:
                if not step.applies(spec):
                    continue
                spec = step.relax(spec)
                result.relaxations.append(step.name)
                logger.info(
                    "No %s results for %s; relaxing filters (%s)",
                    spec.endpoint,
                    category,
                    step.name,
                )
                page = await self._fetch(spec, 1)
                result.requests_made += 1
                if page is not None and page.items:
                    break
        result.spec = spec

        if page is None or not page.items:
            logger.warning("Discovery for %s returned no items", category)
            return result

        seen: set[int] = set()
        self._collect(page, result.items, seen)
        page_number = 1
        max_pages = self._settings.ingest_max_pages
        if page.total_pages:
            max_pages = min(max_pages, page.total_pages)
        while len(result.items) < count and page_number < max_pages:
            page_number += 1
            next_page = await self._fetch(spec, page_number)
            result.requests_made += 1
            if next_page is None or not next_page.items:
                break
            self._collect(next_page, result.items, seen)

        del result.items[count:]
        logger.info(
            "Discovered %d %s items for %s in %d request(s)",
            len(result.items),
            spec.endpoint,
            category,
            result.requests_made,
        )
        return result

    async def _fetch(self, spec: QuerySpec, page: int) -> DiscoverPage | None:
        try:
            return await self._client.discover(spec.endpoint, spec.to_params(page))
        except TransientProviderError as exc:
            logger.warning("Discover page %d failed: %s", page, exc)
            return None

    @staticmethod
    def _collect(
        page: DiscoverPage, items: list[CatalogSummary], seen: set[int]
    ) -> None:
        for item in page.items:
            if item.tmdb_id in seen:
                continue
            seen.add(item.tmdb_id)
            items.append(item)
