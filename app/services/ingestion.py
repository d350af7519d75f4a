"""Ingestion orchestration: discover, enrich, classify, embed and store."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from ..config import Settings
from ..errors import FatalItemError, StoreWriteError, TransientProviderError
from ..lookup import CATEGORIES, MOOD_IDS, Category, Endpoint, vocabulary_for
from ..models import ContentItem
from ..tagging import TagRequest, TagResult, classify, clean_stored_tags
from ..utils import dedupe
from .content_store import ContentStore
from .discovery import DiscoveryAggregator, endpoint_for
from .embeddings import EmbeddingClient
from .enrichment import DetailEnricher, EnrichedItem
from .tmdb import CatalogSummary, GenreNames, TMDBClient

logger = logging.getLogger(__name__)

CLEANUP_PAGE_SIZE = 200


def pick_combination(now: datetime) -> tuple[Category, str]:
    """Choose one of the category/mood pairs from the current minute."""

    index = now.minute % (len(CATEGORIES) * len(MOOD_IDS))
    return CATEGORIES[index // len(MOOD_IDS)], MOOD_IDS[index % len(MOOD_IDS)]


@dataclass(slots=True)
class IngestionReport:
    """Outcome of one batch; skipped items only show up in the counters."""

    category: Category
    moods: list[str]
    endpoint: Endpoint
    discovered: int = 0
    saved: list[ContentItem] = field(default_factory=list)
    unavailable: int = 0
    failed: int = 0
    relaxations: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "moods": list(self.moods),
            "endpoint": self.endpoint,
            "discovered": self.discovered,
            "inserted": len(self.saved),
            "unavailable": self.unavailable,
            "failed": self.failed,
            "relaxations": list(self.relaxations),
            "items": [item.to_payload() for item in self.saved],
        }


@dataclass(slots=True)
class BackfillReport:
    processed: int = 0
    success: int = 0
    failed: int = 0
    has_more: bool = False
    next_offset: int | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "success": self.success,
            "failed": self.failed,
            "hasMore": self.has_more,
            "nextOffset": self.next_offset,
        }


@dataclass(slots=True)
class CleanupReport:
    total: int = 0
    updated: int = 0
    errors: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {"total": self.total, "updated": self.updated, "errors": self.errors}


class IngestionService:
    """Runs ingestion batches and the maintenance jobs over stored rows."""

    def __init__(
        self,
        settings: Settings,
        client: TMDBClient,
        store: ContentStore,
        embedder: EmbeddingClient,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._settings = settings
        self._client = client
        self._store = store
        self._embedder = embedder
        self._enricher = DetailEnricher(client, settings)
        self._aggregator = DiscoveryAggregator(client, settings)
        self._primary = vocabulary_for(settings.primary_locale)
        self._secondary = vocabulary_for(settings.secondary_locale)
        self._sleep = sleep
        self._clock = clock
        self._task: asyncio.Task[None] | None = None

    async def run(
        self,
        category: Category,
        moods: Sequence[str],
        *,
        count: int | None = None,
        force_availability: bool | None = None,
    ) -> IngestionReport:
        """Discover and ingest up to ``count`` items for one category/mood pair."""

        target = count or self._settings.ingest_target_count
        force = self._resolve_force(force_availability)
        discovery = await self._aggregator.discover(category, moods, target)
        report = IngestionReport(
            category=category,
            moods=list(moods),
            endpoint=discovery.endpoint,
            discovered=len(discovery.items),
            relaxations=list(discovery.relaxations),
        )
        if not discovery.items:
            return report

        genre_names = await self._client.fetch_genre_names(discovery.endpoint)
        await self._ingest_all(
            discovery.items,
            report,
            genre_names=genre_names,
            requested_category=category,
            force_moods=False,
            force_availability=force,
        )
        logger.info(
            "Ingestion for %s %s finished: %d saved, %d unavailable, %d failed",
            category,
            ",".join(moods) or "-",
            len(report.saved),
            report.unavailable,
            report.failed,
        )
        return report

    async def import_titles(
        self,
        tmdb_ids: Sequence[int],
        moods: Sequence[str],
        *,
        category: Category = "drama",
        force_availability: bool | None = None,
    ) -> IngestionReport:
        """Ingest specific catalog ids, tagging every one with the given moods."""

        endpoint = endpoint_for(category)
        report = IngestionReport(
            category=category,
            moods=list(moods),
            endpoint=endpoint,
            discovered=len(tmdb_ids),
        )
        summaries = [CatalogSummary(tmdb_id=tmdb_id, title=None) for tmdb_id in dedupe(tmdb_ids)]
        if not summaries:
            return report
        genre_names = await self._client.fetch_genre_names(endpoint)
        await self._ingest_all(
            summaries,
            report,
            genre_names=genre_names,
            requested_category=category,
            force_moods=True,
            force_availability=self._resolve_force(force_availability),
        )
        return report

    async def run_scheduled(self) -> IngestionReport:
        category, mood = pick_combination(self._clock())
        logger.info("Scheduled ingestion picked %s + %s", category, mood)
        return await self.run(category, [mood])

    def _resolve_force(self, value: bool | None) -> bool:
        return self._settings.force_availability if value is None else value

    async def _ingest_all(
        self,
        summaries: Sequence[CatalogSummary],
        report: IngestionReport,
        *,
        genre_names: GenreNames,
        requested_category: Category | None,
        force_moods: bool,
        force_availability: bool,
    ) -> None:
        for index, summary in enumerate(summaries):
            if index:
                await self._sleep(self._settings.ingest_item_delay_seconds)
            try:
                enriched = await self._enricher.enrich(summary, report.endpoint)
            except FatalItemError as exc:
                logger.warning("Skipping %s/%s: %s", report.endpoint, summary.tmdb_id, exc)
                report.failed += 1
                continue

            item = await self._build_item(
                enriched,
                genre_names=genre_names,
                moods=report.moods,
                requested_category=requested_category,
                force_moods=force_moods,
            )
            try:
                saved = await self._store.write(
                    item, force_availability=force_availability
                )
            except StoreWriteError as exc:
                logger.error("Store write failed for %s: %s", item.title_a, exc)
                report.failed += 1
                continue
            if saved is None:
                report.unavailable += 1
            else:
                report.saved.append(saved)

    def classify_item(
        self,
        enriched: EnrichedItem,
        *,
        genre_names: GenreNames,
        moods: Sequence[str],
        requested_category: Category | None,
        force_moods: bool = False,
    ) -> TagResult:
        request = TagRequest(
            genre_ids=enriched.genre_ids,
            genre_names_a=tuple(
                genre_names.primary[genre_id]
                for genre_id in enriched.genre_ids
                if genre_names.primary.get(genre_id)
            ),
            genre_names_b=tuple(
                genre_names.secondary[genre_id]
                for genre_id in enriched.genre_ids
                if genre_names.secondary.get(genre_id)
            ),
            keywords_a=enriched.keywords_a,
            keywords_b=enriched.keywords_b,
            mood_ids=tuple(moods),
            force_moods=force_moods,
            requested_category=requested_category,
            vote_average=enriched.vote_average,
        )
        return classify(request, self._primary, self._secondary)

    async def _build_item(
        self,
        enriched: EnrichedItem,
        *,
        genre_names: GenreNames,
        moods: Sequence[str],
        requested_category: Category | None,
        force_moods: bool,
    ) -> ContentItem:
        tags = self.classify_item(
            enriched,
            genre_names=genre_names,
            moods=moods,
            requested_category=requested_category,
            force_moods=force_moods,
        )
        embedding = await self._embedder.embed(enriched.embedding_text)
        return ContentItem(
            external_id=enriched.external_id,
            tmdb_id=enriched.tmdb_id,
            media_type=enriched.endpoint,
            title_a=enriched.title_a,
            title_b=enriched.title_b,
            description_a=enriched.description_a,
            description_b=enriched.description_b,
            poster_url=enriched.poster_url,
            url=enriched.url,
            rating=enriched.rating,
            year=enriched.year,
            category=tags.category,
            tags_a=tags.tags_a,
            tags_b=tags.tags_b,
            providers=enriched.providers,
            embedding=embedding,
            cast=enriched.cast,
            director=enriched.director,
        )

    async def backfill(
        self, *, limit: int = 50, offset: int = 0, only_missing: bool = False
    ) -> BackfillReport:
        """Re-enrich stored rows with secondary-locale text, tags and providers."""

        rows = await self._store.list_contents(
            limit=limit, offset=offset, only_missing=only_missing
        )
        report = BackfillReport(processed=len(rows))
        report.has_more = len(rows) == limit
        report.next_offset = offset + limit if report.has_more else None
        genre_cache: dict[Endpoint, GenreNames] = {}

        for index, row in enumerate(rows):
            if index:
                await self._sleep(self._settings.ingest_item_delay_seconds)
            try:
                await self._backfill_row(row, genre_cache)
            except (FatalItemError, StoreWriteError, TransientProviderError) as exc:
                logger.warning("Backfill failed for %s: %s", row.external_id or row.title_a, exc)
                report.failed += 1
                continue
            report.success += 1
        logger.info(
            "Backfill batch at offset %d: %d ok, %d failed",
            offset,
            report.success,
            report.failed,
        )
        return report

    async def _backfill_row(
        self, row: ContentItem, genre_cache: dict[Endpoint, GenreNames]
    ) -> None:
        endpoint: Endpoint = row.media_type
        if row.tmdb_id is not None:
            summary = CatalogSummary(tmdb_id=row.tmdb_id, title=row.title_a, year=row.year)
        elif row.external_id:
            summary = await self._client.find_by_external_id(
                row.external_id, endpoint=endpoint
            )
            if summary is None:
                raise FatalItemError(f"{row.external_id} is unknown to the catalog")
        else:
            summary = await self._client.search(
                row.title_a, endpoint=endpoint, year=row.year
            )
            if summary is None:
                raise FatalItemError(f"{row.title_a} has no catalog match")

        if endpoint not in genre_cache:
            genre_cache[endpoint] = await self._client.fetch_genre_names(endpoint)
        enriched = await self._enricher.enrich(summary, endpoint)
        tags = self.classify_item(
            enriched,
            genre_names=genre_cache[endpoint],
            moods=(),
            requested_category=row.category,
        )

        updates: dict[str, Any] = {
            "tmdb_id": enriched.tmdb_id,
            "title_b": enriched.title_b or row.title_b,
            "description_b": enriched.description_b or row.description_b,
            "tags_b": dedupe([*row.tags_b, *tags.tags_b]),
            "cast": enriched.cast or row.cast,
            "director": enriched.director or row.director,
        }
        if enriched.providers:
            updates["providers"] = [
                provider.model_dump(mode="json") for provider in enriched.providers
            ]
            updates["force_included"] = False
        if row.embedding is None:
            embedding = await self._embedder.embed(enriched.embedding_text)
            if embedding is not None:
                updates["embedding"] = embedding
        if row.id is None:
            raise StoreWriteError(f"{row.title_a} has no row id")
        await self._store.update_fields(row.id, **updates)

    async def cleanup_tags(self) -> CleanupReport:
        """Split, translate and de-duplicate stored primary-locale tags."""

        report = CleanupReport()
        offset = 0
        while True:
            rows = await self._store.list_contents(limit=CLEANUP_PAGE_SIZE, offset=offset)
            if not rows:
                break
            offset += len(rows)
            for row in rows:
                report.total += 1
                cleaned, detected = clean_stored_tags(row.tags_a, row.category, self._primary)
                updates: dict[str, Any] = {}
                if cleaned != row.tags_a:
                    updates["tags_a"] = cleaned
                # Only rows still filed as movies are moved to a detected category.
                if detected and row.category == "movie" and detected != row.category:
                    updates["category"] = detected
                if not updates or row.id is None:
                    continue
                try:
                    await self._store.update_fields(row.id, **updates)
                except StoreWriteError as exc:
                    logger.error("Tag cleanup failed for %s: %s", row.title_a, exc)
                    report.errors += 1
                    continue
                report.updated += 1
            if len(rows) < CLEANUP_PAGE_SIZE:
                break
        logger.info(
            "Tag cleanup complete: %d updated, %d errors, %d total",
            report.updated,
            report.errors,
            report.total,
        )
        return report

    async def start(self) -> None:
        """Launch the periodic ingestion loop when an interval is configured."""

        if self._settings.ingest_interval_seconds <= 0 or self._task is not None:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.ingest_interval_seconds)
            try:
                await self.run_scheduled()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled ingestion failed: %s", exc)
