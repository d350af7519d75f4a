"""Retrieval service tests over a temporary store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from app.config import Settings
from app.database import Database
from app.models import ContentItem, Provider, UserProfile
from app.services.content_store import ContentStore
from app.services.embeddings import EmbeddingClient
from app.services.recommendations import RecommendationService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(**overrides: Any) -> Settings:
    base = {
        "EMBEDDING_API_URL": "https://embed.test/embed",
        "EMBEDDING_DIMENSIONS": 2,
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def _item(index: int, embedding: list[float], **overrides: Any) -> ContentItem:
    base: dict[str, Any] = {
        "external_id": f"tt{index}",
        "title_a": f"Title {index}",
        "category": "movie",
        "tags_a": ["로맨스"],
        "tags_b": ["Romance"],
        "providers": [Provider(provider_id=8, provider_name="Netflix")],
        "embedding": embedding,
    }
    base.update(overrides)
    return ContentItem(**base)


async def _recommend(
    tmp_path: Path,
    items: list[ContentItem],
    profile: UserProfile,
    *,
    response: httpx.Response | None = None,
    queries: list[str] | None = None,
    without_providers: tuple[str, ...] = (),
) -> list[ContentItem]:
    settings = build_settings()
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'retrieval.db'}")
    await database.create_all()
    store = ContentStore(database.session_factory, settings)
    for item in items:
        saved = await store.write(item, force_availability=True)
        if saved is not None and saved.id is not None and saved.external_id in without_providers:
            await store.update_fields(saved.id, providers=[])

    def handler(request: httpx.Request) -> httpx.Response:
        if queries is not None:
            queries.append(json.loads(request.content)["text"])
        return response or httpx.Response(200, json={"vector": [1.0, 0.0]})

    transport = httpx.MockTransport(handler)
    try:
        async with httpx.AsyncClient(transport=transport) as http_client:
            service = RecommendationService(
                settings, store, EmbeddingClient(settings, http_client)
            )
            return await service.recommend(profile)
    finally:
        await database.dispose()


def test_query_text_lists_moods_then_category() -> None:
    service = RecommendationService(build_settings(), None, None)  # type: ignore[arg-type]

    profile = UserProfile(category="drama", moods=["01", "03"])

    assert service.build_query(profile) == "Romance Comedy 드라마"


@pytest.mark.anyio("asyncio")
async def test_results_are_ranked_and_limited(tmp_path: Path) -> None:
    items = [
        _item(1, [0.2, 1.0]),
        _item(2, [1.0, 0.0]),
        _item(3, [1.0, 0.5]),
        _item(4, [1.0, 0.1]),
        _item(5, [0.0, 1.0]),
    ]
    queries: list[str] = []

    results = await _recommend(
        tmp_path, items, UserProfile(category="movie", moods=["01"]), queries=queries
    )

    assert [item.title_a for item in results] == ["Title 2", "Title 4", "Title 3"]
    assert queries == ["Romance 영화"]


@pytest.mark.anyio("asyncio")
async def test_results_respect_category_and_mood_tags(tmp_path: Path) -> None:
    items = [
        _item(1, [1.0, 0.0], category="drama"),
        _item(2, [1.0, 0.0], tags_a=["공포"], tags_b=["Horror"]),
        _item(3, [0.5, 0.5]),
    ]

    results = await _recommend(tmp_path, items, UserProfile(category="movie", moods=["01"]))

    assert [item.title_a for item in results] == ["Title 3"]


@pytest.mark.anyio("asyncio")
async def test_subscribed_providers_filter_results(tmp_path: Path) -> None:
    items = [
        _item(1, [1.0, 0.0], providers=[Provider(provider_id=337, provider_name="Disney")]),
        _item(2, [0.9, 0.1]),
    ]

    results = await _recommend(
        tmp_path, items, UserProfile(category="movie", moods=[], provider_ids=[8])
    )

    assert [item.title_a for item in results] == ["Title 2"]


@pytest.mark.anyio("asyncio")
async def test_embedding_failure_returns_empty_list(tmp_path: Path) -> None:
    results = await _recommend(
        tmp_path,
        [_item(1, [1.0, 0.0])],
        UserProfile(category="movie", moods=["01"]),
        response=httpx.Response(500, json={"error": "OpenAI API Error: 500"}),
    )

    assert results == []


@pytest.mark.anyio("asyncio")
async def test_rows_without_providers_are_dropped(tmp_path: Path) -> None:
    items = [_item(1, [1.0, 0.0]), _item(2, [0.9, 0.1])]

    results = await _recommend(
        tmp_path,
        items,
        UserProfile(category="movie", moods=["01"]),
        without_providers=("tt1",),
    )

    assert [item.title_a for item in results] == ["Title 2"]
