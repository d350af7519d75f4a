"""End-to-end ingestion tests with mocked catalog and embedding services."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from app.config import Settings
from app.database import Database
from app.errors import StoreWriteError
from app.models import ContentItem, Provider
from app.services.content_store import ContentStore
from app.services.embeddings import EmbeddingClient
from app.services.ingestion import IngestionService, pick_combination
from app.services.tmdb import TMDBClient


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(**overrides: Any) -> Settings:
    base = {
        "TMDB_API_KEY": "test-key",
        "PRIMARY_LOCALE": "en-US",
        "SECONDARY_LOCALE": "en-US",
        "INGEST_ITEM_DELAY": 0,
        "EMBEDDING_API_URL": "https://embed.test/embed",
        "EMBEDDING_DIMENSIONS": 3,
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


class CatalogStub:
    """Routes mocked requests to canned catalog and embedding responses."""

    def __init__(self, discovered: list[int]):
        self.discovered = discovered
        self.providers: dict[int, list[dict[str, Any]]] = {}
        self.missing: set[int] = set()
        self.search_results: list[dict[str, Any]] = []
        self.embed_calls = 0

    def detail(self, tmdb_id: int) -> dict[str, Any]:
        return {
            "id": tmdb_id,
            "title": f"Title {tmdb_id}",
            "overview": f"Plot {tmdb_id}",
            "imdb_id": f"tt{tmdb_id}",
            "release_date": "2021-06-01",
            "vote_average": 7.5,
            "genres": [{"id": 28, "name": "Action"}, {"id": 12, "name": "Adventure"}],
            "keywords": {"keywords": []},
            "credits": {"cast": [{"name": "Lead"}], "crew": [{"job": "Director", "name": "Dir"}]},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "embed.test":
            self.embed_calls += 1
            return httpx.Response(200, json={"vector": [0.1, 0.2, 0.3]})
        if path == "/discover/movie":
            return httpx.Response(
                200,
                json={
                    "page": 1,
                    "total_pages": 1,
                    "results": [
                        {
                            "id": tmdb_id,
                            "title": f"Title {tmdb_id}",
                            "genre_ids": [28, 12],
                            "vote_average": 7.5,
                            "vote_count": 400,
                            "release_date": "2021-06-01",
                        }
                        for tmdb_id in self.discovered
                    ],
                },
            )
        if path == "/genre/movie/list":
            return httpx.Response(
                200,
                json={"genres": [{"id": 28, "name": "Action"}, {"id": 12, "name": "Adventure"}]},
            )
        if path.startswith("/search/"):
            return httpx.Response(200, json={"results": self.search_results})
        parts = path.strip("/").split("/")
        tmdb_id = int(parts[1])
        if tmdb_id in self.missing:
            return httpx.Response(404, json={"status_message": "not found"})
        if path.endswith("/watch/providers"):
            flatrate = self.providers.get(tmdb_id, [{"provider_id": 8, "provider_name": "X"}])
            return httpx.Response(200, json={"results": {"KR": {"flatrate": flatrate}}})
        return httpx.Response(200, json=self.detail(tmdb_id))


async def _with_service(
    tmp_path: Path,
    stub: CatalogStub,
    body: Callable[[IngestionService, ContentStore], Any],
    *,
    sleep: Callable[[float], Any] | None = None,
    **overrides: Any,
) -> Any:
    settings = build_settings(**overrides)
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'ingest.db'}")
    await database.create_all()
    store = ContentStore(database.session_factory, settings)
    transport = httpx.MockTransport(stub)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.test") as http_client:
            service = IngestionService(
                settings,
                TMDBClient(settings, http_client),
                store,
                EmbeddingClient(settings, http_client),
                sleep=sleep or _no_sleep,
            )
            return await body(service, store)
    finally:
        await database.dispose()


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.mark.anyio("asyncio")
async def test_single_item_is_tagged_and_stored(tmp_path: Path) -> None:
    stub = CatalogStub([1])

    async def body(service: IngestionService, store: ContentStore):
        report = await service.run("movie", ["07"], count=1)
        return report, await store.get_by_external_id("tt1")

    report, row = await _with_service(tmp_path, stub, body)

    assert report.discovered == 1
    assert len(report.saved) == 1
    assert row is not None
    assert row.tags_a == ["Action", "Adventure"]
    assert row.tags_b == ["Action", "Adventure"]
    assert row.category == "movie"
    assert len(row.providers) == 1
    assert row.providers[0].provider_id == 8
    assert row.rating == 3.75
    assert row.year == 2021
    assert row.embedding == [0.1, 0.2, 0.3]
    assert row.cast == ["Lead"]
    assert row.director == "Dir"
    assert row.url == "https://www.imdb.com/title/tt1"


@pytest.mark.anyio("asyncio")
async def test_repeated_runs_do_not_duplicate_rows(tmp_path: Path) -> None:
    stub = CatalogStub([1])

    async def body(service: IngestionService, store: ContentStore):
        await service.run("movie", [], count=1)
        await service.run("movie", [], count=1)
        return await store.count()

    assert await _with_service(tmp_path, stub, body) == 1


@pytest.mark.anyio("asyncio")
async def test_unavailable_and_failed_items_are_counted_not_stored(tmp_path: Path) -> None:
    stub = CatalogStub([1, 2, 3])
    stub.providers[2] = []
    stub.missing.add(3)
    delays: list[float] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    async def body(service: IngestionService, store: ContentStore):
        report = await service.run("movie", [], count=3)
        return report, await store.count()

    report, count = await _with_service(
        tmp_path, stub, body, sleep=record_sleep, INGEST_ITEM_DELAY=0.2
    )

    assert report.discovered == 3
    assert [item.external_id for item in report.saved] == ["tt1"]
    assert report.unavailable == 1
    assert report.failed == 1
    assert count == 1
    assert delays == [0.2, 0.2]


@pytest.mark.anyio("asyncio")
async def test_forced_availability_stores_placeholder_provider(tmp_path: Path) -> None:
    stub = CatalogStub([2])
    stub.providers[2] = []

    async def body(service: IngestionService, store: ContentStore):
        report = await service.run("movie", [], count=1, force_availability=True)
        return report.saved

    saved = await _with_service(tmp_path, stub, body)

    assert len(saved) == 1
    assert saved[0].force_included is True
    assert [provider.provider_id for provider in saved[0].providers] == [0]


@pytest.mark.anyio("asyncio")
async def test_embedding_failure_still_stores_item(tmp_path: Path) -> None:
    stub = CatalogStub([1])

    async def body(service: IngestionService, store: ContentStore):
        await service.run("movie", [], count=1)
        return await store.get_by_external_id("tt1")

    row = await _with_service(tmp_path, stub, body, EMBEDDING_API_URL=None)

    assert row is not None
    assert row.embedding is None
    assert stub.embed_calls == 0


@pytest.mark.anyio("asyncio")
async def test_import_titles_forces_requested_moods(tmp_path: Path) -> None:
    stub = CatalogStub([])

    async def body(service: IngestionService, store: ContentStore):
        report = await service.import_titles([5, 5], ["01"], category="movie")
        return report, await store.get_by_external_id("tt5")

    report, row = await _with_service(tmp_path, stub, body)

    assert report.discovered == 2
    assert len(report.saved) == 1
    assert row is not None
    assert row.title_a == "Title 5"
    assert row.tags_a == ["Romance", "Action", "Adventure"]
    assert row.category == "movie"
    assert row.tags_b == ["Action", "Adventure", "Romance", "Drama"]


@pytest.mark.anyio("asyncio")
async def test_backfill_fills_missing_secondary_fields(tmp_path: Path) -> None:
    stub = CatalogStub([])

    async def body(service: IngestionService, store: ContentStore):
        await store.write(
            ContentItem(
                external_id="tt9",
                tmdb_id=9,
                title_a="Title 9",
                category="movie",
                tags_a=["Action"],
                tags_b=["Thriller"],
                providers=[Provider(provider_id=3, provider_name="Old")],
            )
        )
        report = await service.backfill(limit=10, only_missing=True)
        return report, await store.get_by_external_id("tt9")

    report, row = await _with_service(tmp_path, stub, body)

    assert report.to_payload() == {
        "processed": 1,
        "success": 1,
        "failed": 0,
        "hasMore": False,
        "nextOffset": None,
    }
    assert row is not None
    assert row.title_b == "Title 9"
    assert row.description_b == "Plot 9"
    assert row.tags_b == ["Thriller", "Action", "Adventure"]
    assert [provider.provider_id for provider in row.providers] == [8]
    assert row.embedding == [0.1, 0.2, 0.3]


@pytest.mark.anyio("asyncio")
async def test_backfill_counts_rows_that_cannot_be_refreshed(tmp_path: Path) -> None:
    stub = CatalogStub([])
    stub.missing.add(4)

    async def body(service: IngestionService, store: ContentStore):
        for tmdb_id in (4, 6):
            await store.write(
                ContentItem(
                    external_id=f"tt{tmdb_id}",
                    tmdb_id=tmdb_id,
                    title_a=f"Title {tmdb_id}",
                    providers=[Provider(provider_id=8, provider_name="X")],
                )
            )
        return await service.backfill(limit=2)

    report = await _with_service(tmp_path, stub, body)

    assert report.processed == 2
    assert report.success == 1
    assert report.failed == 1
    assert report.has_more is True
    assert report.next_offset == 2


@pytest.mark.anyio("asyncio")
async def test_backfill_resolves_rows_without_ids_by_title_search(tmp_path: Path) -> None:
    stub = CatalogStub([])
    stub.search_results = [
        {"id": 11, "title": "Title 11", "release_date": "2021-06-01"},
        {"id": 12, "title": "Title 11", "release_date": "1990-01-01"},
    ]

    async def body(service: IngestionService, store: ContentStore):
        await store.write(
            ContentItem(
                title_a="Title 11",
                year=2021,
                providers=[Provider(provider_id=8, provider_name="X")],
            )
        )
        report = await service.backfill(limit=10)
        return report, await store.list_contents()

    report, rows = await _with_service(tmp_path, stub, body)

    assert report.success == 1
    assert rows[0].tmdb_id == 11
    assert rows[0].title_b == "Title 11"
    assert rows[0].description_b == "Plot 11"


@pytest.mark.anyio("asyncio")
async def test_backfill_fails_rows_without_ids_or_search_match(tmp_path: Path) -> None:
    stub = CatalogStub([])

    async def body(service: IngestionService, store: ContentStore):
        await store.write(
            ContentItem(
                title_a="Nowhere",
                providers=[Provider(provider_id=8, provider_name="X")],
            )
        )
        return await service.backfill(limit=10)

    report = await _with_service(tmp_path, stub, body)

    assert report.processed == 1
    assert report.failed == 1
    assert report.success == 0


@pytest.mark.anyio("asyncio")
async def test_store_write_failure_does_not_stop_the_batch(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    stub = CatalogStub([1, 2])

    async def body(service: IngestionService, store: ContentStore):
        write = store.write

        async def failing_write(item: ContentItem, *, force_availability: bool = False):
            if item.external_id == "tt1":
                raise StoreWriteError("database is locked")
            return await write(item, force_availability=force_availability)

        monkeypatch.setattr(store, "write", failing_write)
        report = await service.run("movie", [], count=2)
        return report, await store.count()

    report, count = await _with_service(tmp_path, stub, body)

    assert report.failed == 1
    assert [item.external_id for item in report.saved] == ["tt2"]
    assert count == 1


@pytest.mark.anyio("asyncio")
async def test_cleanup_splits_tags_and_moves_movie_rows(tmp_path: Path) -> None:
    stub = CatalogStub([])

    async def body(service: IngestionService, store: ContentStore):
        provider = Provider(provider_id=8, provider_name="X")
        await store.write(
            ContentItem(
                external_id="tt20",
                title_a="Compound",
                category="movie",
                tags_a=["Action & Adventure", "Drama"],
                providers=[provider],
            )
        )
        await store.write(
            ContentItem(
                external_id="tt21",
                title_a="Cartoon",
                category="animation",
                tags_a=["Animation"],
                providers=[provider],
            )
        )
        await store.write(
            ContentItem(
                external_id="tt22",
                title_a="Clean",
                category="movie",
                tags_a=["Comedy"],
                providers=[provider],
            )
        )
        report = await service.cleanup_tags()
        rows = {
            external_id: await store.get_by_external_id(external_id)
            for external_id in ("tt20", "tt21", "tt22")
        }
        return report, rows

    report, rows = await _with_service(tmp_path, stub, body)

    assert report.to_payload() == {"total": 3, "updated": 2, "errors": 0}
    assert rows["tt20"].tags_a == ["Action", "Adventure"]
    assert rows["tt20"].category == "drama"
    assert rows["tt21"].tags_a == ["animation"]
    assert rows["tt21"].category == "animation"
    assert rows["tt22"].tags_a == ["Comedy"]


def test_pick_combination_cycles_through_pairs() -> None:
    assert pick_combination(datetime(2026, 10, 19, 12, 0)) == ("movie", "01")
    assert pick_combination(datetime(2026, 10, 19, 12, 10)) == ("drama", "02")
    assert pick_combination(datetime(2026, 10, 19, 12, 59)) == ("animation", "06")
