"""Integration helpers for the OpenAI embeddings API.

This backs the ``/api/embed`` route, which is the embedding RPC the
ingestion and retrieval paths call through ``EmbeddingClient``.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import EmbeddingError
from ..rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Client responsible for talking to OpenAI's /embeddings endpoint."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        limiter: RateLimiter | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._limiter = limiter

    @property
    def is_configured(self) -> bool:
        return bool(self._settings.openai_api_key)

    async def embed(self, text: str, *, model: str | None = None) -> list[float]:
        """Return the embedding vector for ``text`` or raise ``EmbeddingError``."""

        resolved_key = self._settings.openai_api_key
        if not resolved_key:
            raise EmbeddingError("OpenAI API key is required to generate embeddings")
        if not text or not text.strip():
            raise EmbeddingError('Missing "text" property in request body')

        logger.debug("Embedding request for %r", text[:50])
        payload = {
            "model": model or self._settings.openai_embedding_model,
            "input": text,
            "encoding_format": "float",
        }
        headers = {
            "Authorization": f"Bearer {resolved_key}",
            "Content-Type": "application/json",
        }
        if self._limiter is not None:
            await self._limiter.acquire()
        try:
            response = await self._client.post("/embeddings", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"OpenAI request failed: {exc}") from exc
        if response.status_code >= 400:
            logger.error("OpenAI API error %s: %s", response.status_code, response.text)
            raise EmbeddingError(
                f"OpenAI API Error: {response.status_code} {response.text}"
            )

        try:
            data: Any = response.json()
        except ValueError as exc:
            raise EmbeddingError(
                f"OpenAI returned non-JSON ({response.status_code})"
            ) from exc
        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EmbeddingError("OpenAI response did not include an embedding") from exc
        if not isinstance(vector, list):
            raise EmbeddingError("OpenAI embedding was not a list")
        logger.info("Embedding generated with %d dimensions", len(vector))
        return [float(value) for value in vector]
