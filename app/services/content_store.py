"""Persistence of enriched content items and similarity search over them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import ContentRecord
from ..errors import StoreWriteError
from ..lookup import Category
from ..models import PLACEHOLDER_PROVIDER_ID, ContentItem, Provider

logger = logging.getLogger(__name__)

# Fields a degraded enrichment may leave empty; a later write never erases them.
COALESCED_FIELDS = (
    "title_b",
    "description_a",
    "description_b",
    "poster_url",
    "url",
    "rating",
    "year",
    "embedding",
    "director",
    "tmdb_id",
)


@dataclass(slots=True)
class ContentMatch:
    item: ContentItem
    similarity: float


def record_to_item(record: ContentRecord) -> ContentItem:
    return ContentItem(
        id=record.id,
        external_id=record.external_id,
        tmdb_id=record.tmdb_id,
        media_type=record.media_type,
        title_a=record.title_a,
        title_b=record.title_b,
        description_a=record.description_a,
        description_b=record.description_b,
        poster_url=record.poster_url,
        url=record.url,
        rating=record.rating,
        year=record.year,
        category=record.category,
        tags_a=list(record.tags_a or []),
        tags_b=list(record.tags_b or []),
        providers=[Provider.model_validate(entry) for entry in record.providers or []],
        force_included=bool(record.force_included),
        embedding=record.embedding,
        cast=list(record.cast_names or []),
        director=record.director,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosine similarity of ``query`` against each row of ``vectors``."""

    matrix = np.asarray(vectors, dtype=np.float32)
    target = np.asarray(query, dtype=np.float32)
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(target)
    norms[norms == 0] = 1.0
    return (matrix @ target) / norms


class ContentStore:
    """Upsert writer and query helpers for the ``contents`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
    ):
        self._session_factory = session_factory
        self._settings = settings

    def apply_availability(
        self, item: ContentItem, force_availability: bool
    ) -> ContentItem | None:
        """Return the item to persist, or ``None`` when it must not be stored."""

        if item.providers:
            return item.model_copy(update={"force_included": False})
        if not force_availability:
            return None
        placeholder = Provider(
            provider_id=PLACEHOLDER_PROVIDER_ID,
            provider_name=self._settings.placeholder_provider_name,
        )
        return item.model_copy(
            update={"providers": [placeholder], "force_included": True}
        )

    async def write(
        self, item: ContentItem, *, force_availability: bool = False
    ) -> ContentItem | None:
        """Insert or update one item; ``None`` when it was gated out."""

        prepared = self.apply_availability(item, force_availability)
        if prepared is None:
            logger.info("Skipping %s: no streaming providers", item.title_a)
            return None

        values = self._values(prepared)
        try:
            async with self._session_factory() as session:
                if prepared.external_id:
                    record = await self._upsert_by_external_id(session, values)
                else:
                    record = await self._upsert_by_title_year(session, values)
                await session.commit()
                return record_to_item(record)
        except SQLAlchemyError as exc:
            raise StoreWriteError(
                f"Failed to write {prepared.external_id or prepared.title_a}: {exc}"
            ) from exc

    async def _upsert_by_external_id(
        self, session: AsyncSession, values: dict[str, Any]
    ) -> ContentRecord:
        dialect = session.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(ContentRecord).values(**values)
        update_values: dict[str, Any] = {
            key: stmt.excluded[key]
            for key in values
            if key not in ("external_id", "created_at")
        }
        for key in COALESCED_FIELDS:
            update_values[key] = func.coalesce(
                stmt.excluded[key], getattr(ContentRecord, key)
            )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ContentRecord.external_id], set_=update_values
        )
        await session.execute(stmt)
        result = await session.execute(
            select(ContentRecord)
            .where(ContentRecord.external_id == values["external_id"])
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def _upsert_by_title_year(
        self, session: AsyncSession, values: dict[str, Any]
    ) -> ContentRecord:
        stmt = select(ContentRecord).where(ContentRecord.title_a == values["title_a"])
        if values.get("year") is None:
            stmt = stmt.where(ContentRecord.year.is_(None))
        else:
            stmt = stmt.where(ContentRecord.year == values["year"])
        result = await session.execute(stmt.limit(1))
        record = result.scalars().first()
        if record is None:
            record = ContentRecord(**values)
            session.add(record)
            await session.flush()
            return record

        for key, value in values.items():
            if key in ("created_at", "external_id"):
                continue
            if key in COALESCED_FIELDS and value is None:
                continue
            setattr(record, key, value)
        await session.flush()
        return record

    @staticmethod
    def _values(item: ContentItem) -> dict[str, Any]:
        now = datetime.utcnow()
        return {
            "external_id": item.external_id,
            "tmdb_id": item.tmdb_id,
            "media_type": item.media_type,
            "title_a": item.title_a,
            "title_b": item.title_b,
            "description_a": item.description_a,
            "description_b": item.description_b,
            "poster_url": item.poster_url,
            "url": item.url,
            "rating": item.rating,
            "year": item.year,
            "category": item.category,
            "tags_a": list(item.tags_a),
            "tags_b": list(item.tags_b),
            "providers": [provider.model_dump(mode="json") for provider in item.providers],
            "force_included": item.force_included,
            "embedding": item.embedding,
            "cast_names": list(item.cast),
            "director": item.director,
            "created_at": now,
            "updated_at": now,
        }

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(ContentRecord.id)))
            return int(result.scalar_one())

    async def get_by_external_id(self, external_id: str) -> ContentItem | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ContentRecord).where(ContentRecord.external_id == external_id)
            )
            record = result.scalars().first()
            return record_to_item(record) if record is not None else None

    async def list_contents(
        self, *, limit: int = 50, offset: int = 0, only_missing: bool = False
    ) -> list[ContentItem]:
        """Return stored rows ordered by id, optionally only incomplete ones."""

        stmt = select(ContentRecord).order_by(ContentRecord.id)
        if only_missing:
            stmt = stmt.where(
                ContentRecord.title_b.is_(None)
                | ContentRecord.description_b.is_(None)
                | (func.json_array_length(ContentRecord.tags_b) == 0)
            )
        stmt = stmt.offset(offset).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [record_to_item(record) for record in result.scalars().all()]

    async def update_fields(self, content_id: int, **values: Any) -> None:
        """Patch selected columns of one row."""

        if "cast" in values:
            values["cast_names"] = values.pop("cast")
        try:
            async with self._session_factory() as session:
                record = await session.get(ContentRecord, content_id)
                if record is None:
                    raise StoreWriteError(f"Content {content_id} does not exist")
                for key, value in values.items():
                    setattr(record, key, value)
                record.updated_at = datetime.utcnow()
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"Failed to update content {content_id}: {exc}") from exc

    async def match_contents(
        self,
        query_vector: Sequence[float],
        *,
        top_k: int,
        category: Category | None = None,
        tags: Sequence[str] = (),
    ) -> list[ContentMatch]:
        """Return up to ``top_k`` rows ranked by cosine similarity.

        Rows are pre-filtered by category equality and, when ``tags`` is
        non-empty, by overlap with either tag track.
        """

        stmt = select(ContentRecord).where(ContentRecord.embedding.is_not(None))
        if category is not None:
            stmt = stmt.where(ContentRecord.category == category)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            records = list(result.scalars().all())

        wanted = set(tags)
        dimension = len(query_vector)
        candidates: list[ContentRecord] = []
        for record in records:
            if not record.embedding or len(record.embedding) != dimension:
                continue
            if wanted and not wanted.intersection(
                [*(record.tags_a or []), *(record.tags_b or [])]
            ):
                continue
            candidates.append(record)
        if not candidates:
            return []

        scores = cosine_similarities(
            query_vector, [record.embedding for record in candidates]
        )
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [
            ContentMatch(
                item=record_to_item(candidates[index]), similarity=float(scores[index])
            )
            for index in order
        ]
