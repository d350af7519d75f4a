"""Client for the read-only catalog endpoints of The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from ..config import Settings
from ..errors import TransientProviderError
from ..lookup import STATIC_GENRE_NAMES, Endpoint, vocabulary_for
from ..models import Provider
from ..rate_limit import RateLimiter
from ..utils import LOGO_BASE_URL, build_image_url, extract_year

logger = logging.getLogger(__name__)

CAST_LIMIT = 5


@dataclass(slots=True)
class CatalogSummary:
    """Normalized view of a discover or search result."""

    tmdb_id: int
    title: str | None
    original_title: str | None = None
    overview: str | None = None
    poster_path: str | None = None
    year: int | None = None
    vote_average: float = 0.0
    vote_count: int = 0
    genre_ids: tuple[int, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "CatalogSummary":
        genre_ids = tuple(
            int(genre_id)
            for genre_id in payload.get("genre_ids") or ()
            if isinstance(genre_id, int)
        )
        return cls(
            tmdb_id=int(payload["id"]),
            title=payload.get("title") or payload.get("name"),
            original_title=payload.get("original_title")
            or payload.get("original_name"),
            overview=payload.get("overview") or None,
            poster_path=payload.get("poster_path"),
            year=extract_year(
                payload.get("release_date") or payload.get("first_air_date")
            ),
            vote_average=float(payload.get("vote_average") or 0.0),
            vote_count=int(payload.get("vote_count") or 0),
            genre_ids=genre_ids,
        )


@dataclass(slots=True)
class DiscoverPage:
    """One page of discover results and the reported page count."""

    items: list[CatalogSummary]
    page: int = 1
    total_pages: int = 1


@dataclass(slots=True)
class PrimaryDetail:
    """Detail payload in the primary locale with its sub-resources."""

    tmdb_id: int
    title: str | None
    overview: str | None
    external_id: str | None
    genre_ids: tuple[int, ...] = ()
    keywords: list[str] = field(default_factory=list)
    cast: list[str] = field(default_factory=list)
    director: str | None = None
    poster_path: str | None = None
    original_title: str | None = None
    year: int | None = None
    vote_average: float = 0.0


@dataclass(slots=True)
class SecondaryDetail:
    """Title, overview and keywords in the secondary locale."""

    title: str | None
    overview: str | None
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GenreNames:
    """Genre id to name tables for both locales, fetched once per run."""

    primary: Mapping[int, str]
    secondary: Mapping[int, str]


class TMDBClient:
    """Client responsible for all catalog lookups against TMDB."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        limiter: RateLimiter | None = None,
    ):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._limiter = limiter

    async def discover(
        self, endpoint: Endpoint, params: Mapping[str, Any]
    ) -> DiscoverPage:
        """Run a discover query; rate limits and failures raise ``TransientProviderError``."""

        data = await self._get(
            f"/discover/{endpoint}",
            {**params, "language": self._settings.primary_locale},
        )
        results = data.get("results") or []
        items: list[CatalogSummary] = []
        for entry in results:
            if not isinstance(entry, dict) or "id" not in entry:
                continue
            items.append(CatalogSummary.from_payload(entry))
        return DiscoverPage(
            items=items,
            page=int(data.get("page") or params.get("page") or 1),
            total_pages=int(data.get("total_pages") or 0),
        )

    async def fetch_primary_detail(
        self, endpoint: Endpoint, tmdb_id: int
    ) -> PrimaryDetail:
        data = await self._get(
            f"/{endpoint}/{tmdb_id}",
            {
                "language": self._settings.primary_locale,
                "append_to_response": "external_ids,credits,keywords",
            },
        )
        external = data.get("external_ids") or {}
        genre_ids = tuple(
            int(genre["id"])
            for genre in data.get("genres") or ()
            if isinstance(genre, dict) and isinstance(genre.get("id"), int)
        )
        cast, director = self._extract_credits(data)
        return PrimaryDetail(
            tmdb_id=tmdb_id,
            title=data.get("title") or data.get("name"),
            overview=data.get("overview") or None,
            external_id=data.get("imdb_id") or external.get("imdb_id") or None,
            genre_ids=genre_ids,
            keywords=self._extract_keywords(data),
            cast=cast,
            director=director,
            poster_path=data.get("poster_path"),
            original_title=data.get("original_title") or data.get("original_name"),
            year=extract_year(data.get("release_date") or data.get("first_air_date")),
            vote_average=float(data.get("vote_average") or 0.0),
        )

    async def fetch_secondary_detail(
        self, endpoint: Endpoint, tmdb_id: int
    ) -> SecondaryDetail:
        data = await self._get(
            f"/{endpoint}/{tmdb_id}",
            {
                "language": self._settings.secondary_locale,
                "append_to_response": "keywords",
            },
        )
        return SecondaryDetail(
            title=data.get("title") or data.get("name"),
            overview=data.get("overview") or None,
            keywords=self._extract_keywords(data),
        )

    async def fetch_providers(
        self, endpoint: Endpoint, tmdb_id: int
    ) -> list[Provider]:
        """Return subscription providers for the configured region."""

        data = await self._get(f"/{endpoint}/{tmdb_id}/watch/providers", {})
        region = (data.get("results") or {}).get(self._settings.provider_region) or {}
        providers: dict[int, Provider] = {}
        for entry in region.get("flatrate") or ():
            if not isinstance(entry, dict):
                continue
            provider_id = entry.get("provider_id")
            if not isinstance(provider_id, int) or provider_id in providers:
                continue
            providers[provider_id] = Provider(
                provider_id=provider_id,
                provider_name=str(entry.get("provider_name") or provider_id),
                logo_url=build_image_url(entry.get("logo_path"), LOGO_BASE_URL),
            )
        return list(providers.values())

    async def fetch_genre_names(self, endpoint: Endpoint) -> GenreNames:
        """Fetch genre names in both locales, falling back to the static table."""

        primary = await self._fetch_genre_list(endpoint, self._settings.primary_locale)
        secondary = await self._fetch_genre_list(
            endpoint, self._settings.secondary_locale
        )
        return GenreNames(
            primary=MappingProxyType(primary),
            secondary=MappingProxyType(secondary),
        )

    async def _fetch_genre_list(self, endpoint: Endpoint, locale: str) -> dict[int, str]:
        try:
            data = await self._get(f"/genre/{endpoint}/list", {"language": locale})
        except TransientProviderError as exc:
            logger.warning(
                "Genre list fetch for %s (%s) failed, using static names: %s",
                endpoint,
                locale,
                exc,
            )
            vocabulary = vocabulary_for(locale)
            return {
                genre_id: vocabulary.translate(name)
                for genre_id, name in STATIC_GENRE_NAMES.items()
            }
        names: dict[int, str] = {}
        for genre in data.get("genres") or ():
            if isinstance(genre, dict) and isinstance(genre.get("id"), int):
                names[genre["id"]] = str(genre.get("name") or "")
        return names

    async def search(
        self, title: str, *, endpoint: Endpoint, year: int | None = None
    ) -> CatalogSummary | None:
        """Return the best search match for the supplied title."""

        params: dict[str, Any] = {
            "query": title,
            "include_adult": "false",
            "language": self._settings.primary_locale,
            "page": 1,
        }
        if year:
            if endpoint == "movie":
                params["year"] = year
            else:
                params["first_air_date_year"] = year

        try:
            data = await self._get(f"/search/{endpoint}", params)
        except TransientProviderError as exc:
            logger.warning("TMDB search for %s (%s) failed: %s", title, endpoint, exc)
            return None
        results = data.get("results", [])
        if not results:
            return None

        normalized_title = title.casefold()
        best_match: dict[str, Any] | None = None

        for candidate in results:
            candidate_title = candidate.get("title") or candidate.get("name")
            if not candidate_title:
                continue
            candidate_year = extract_year(
                candidate.get("release_date") or candidate.get("first_air_date")
            )
            if candidate_title.casefold() == normalized_title:
                if year is None or candidate_year == year:
                    best_match = candidate
                    break
            if best_match is None:
                best_match = candidate
            elif year is not None and candidate_year == year:
                best_match = candidate

        if not best_match:
            return None
        return CatalogSummary.from_payload(best_match)

    async def find_by_external_id(
        self, external_id: str, *, endpoint: Endpoint
    ) -> CatalogSummary | None:
        """Resolve an IMDb id to the catalog entry of the given media type."""

        data = await self._get(
            f"/find/{external_id}",
            {
                "external_source": "imdb_id",
                "language": self._settings.primary_locale,
            },
        )
        key = "movie_results" if endpoint == "movie" else "tv_results"
        for entry in data.get(key) or ():
            if isinstance(entry, dict) and "id" in entry:
                return CatalogSummary.from_payload(entry)
        return None

    async def _get(self, path: str, params: Mapping[str, Any]) -> dict[str, Any]:
        query = dict(params)
        headers: dict[str, str] = {"Accept": "application/json"}
        api_key = self._settings.tmdb_api_key or ""
        if api_key.startswith("eyJ"):
            headers["Authorization"] = f"Bearer {api_key}"
        else:
            query["api_key"] = api_key

        if self._limiter is not None:
            await self._limiter.acquire()
        try:
            response = await self._client.get(path, params=query, headers=headers)
        except httpx.HTTPError as exc:
            raise TransientProviderError(
                f"TMDB request to {path} failed: {exc.__class__.__name__}"
            ) from exc

        if response.status_code == 429:
            logger.warning("TMDB rate limit hit for %s", path)
            raise TransientProviderError(
                f"TMDB rate limited {path}", status_code=429
            )
        if response.status_code >= 400:
            logger.debug("TMDB request %s failed: %s", path, response.text)
            raise TransientProviderError(
                f"TMDB returned {response.status_code} for {path}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise TransientProviderError(f"TMDB returned non-JSON for {path}") from exc
        if not isinstance(data, dict):
            raise TransientProviderError(f"Unexpected TMDB payload for {path}")
        return data

    @staticmethod
    def _extract_keywords(data: Mapping[str, Any]) -> list[str]:
        block = data.get("keywords") or {}
        # Movies nest keywords under "keywords", TV under "results".
        entries = block.get("keywords") or block.get("results") or []
        names: list[str] = []
        for entry in entries:
            if isinstance(entry, dict) and entry.get("name"):
                names.append(str(entry["name"]))
        return names

    @staticmethod
    def _extract_credits(data: Mapping[str, Any]) -> tuple[list[str], str | None]:
        credits = data.get("credits") or {}
        cast = [
            str(member["name"])
            for member in (credits.get("cast") or [])[:CAST_LIMIT]
            if isinstance(member, dict) and member.get("name")
        ]
        director: str | None = None
        for member in credits.get("crew") or ():
            if isinstance(member, dict) and member.get("job") == "Director":
                director = member.get("name") or None
                break
        if director is None:
            creators = data.get("created_by") or []
            if creators and isinstance(creators[0], dict):
                director = creators[0].get("name") or None
        return cast, director
