"""Profile-driven semantic retrieval over the content store."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..lookup import MOODS, mood_tags, vocabulary_for
from ..models import ContentItem, UserProfile
from .content_store import ContentStore
from .embeddings import EmbeddingClient

logger = logging.getLogger(__name__)


class RecommendationService:
    """Turns a user profile into a filtered vector search."""

    def __init__(
        self, settings: Settings, store: ContentStore, embedder: EmbeddingClient
    ):
        self._settings = settings
        self._store = store
        self._embedder = embedder
        self._vocabulary = vocabulary_for(settings.primary_locale)

    def build_query(self, profile: UserProfile) -> str:
        """Describe the profile in words: mood names followed by the category."""

        names = [MOODS[mood_id].name for mood_id in profile.moods if mood_id in MOODS]
        label = self._vocabulary.label_for(profile.category)
        return " ".join([*names, label]).strip()

    async def recommend(self, profile: UserProfile) -> list[ContentItem]:
        """Return at most ``retrieval_limit`` items, or ``[]`` when anything fails."""

        vector = await self._embedder.embed(self.build_query(profile))
        if vector is None:
            logger.info("No query embedding for %s; returning no recommendations", profile.category)
            return []

        try:
            matches = await self._store.match_contents(
                vector,
                top_k=self._settings.retrieval_top_k,
                category=profile.category,
                tags=mood_tags(profile.moods),
            )
        except SQLAlchemyError as exc:
            logger.warning("Content search failed: %s", exc)
            return []

        subscribed = set(profile.provider_ids)
        items: list[ContentItem] = []
        for match in matches:
            if not match.item.is_available:
                continue
            providers = match.item.providers
            if subscribed and not subscribed.intersection(
                provider.provider_id for provider in providers
            ):
                continue
            items.append(match.item)
        return items[: self._settings.retrieval_limit]
