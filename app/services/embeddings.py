"""Client for the ``{text} -> {vector}`` embedding RPC."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import EmbeddingError
from ..rate_limit import RateLimiter
from ..utils import truncate_text

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns descriptive text into a fixed-size vector.

    ``embed`` never raises: any transport failure, error payload, missing
    vector or wrong dimension is logged and reported as ``None``.
    """

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
    def url(self) -> str | None:
        if self._settings.embedding_api_url is None:
            return None
        return str(self._settings.embedding_api_url)

    async def embed(self, text: str | None) -> list[float] | None:
        if not text or not text.strip():
            return None
        try:
            return await self._request(
                truncate_text(text, self._settings.embedding_text_limit)
            )
        except EmbeddingError as exc:
            logger.warning("Embedding unavailable: %s", exc)
            return None

    async def _request(self, text: str) -> list[float]:
        url = self.url
        if not url:
            raise EmbeddingError("EMBEDDING_API_URL is not configured")

        headers = {"Content-Type": "application/json"}
        if self._settings.embedding_api_key:
            headers["Authorization"] = f"Bearer {self._settings.embedding_api_key}"

        if self._limiter is not None:
            await self._limiter.acquire()
        try:
            response = await self._client.post(url, json={"text": text}, headers=headers)
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise EmbeddingError(
                f"Embedding service returned non-JSON ({response.status_code})"
            ) from exc
        if not isinstance(payload, dict):
            raise EmbeddingError("Embedding service returned an unexpected payload")
        if payload.get("error") or response.status_code >= 400:
            raise EmbeddingError(
                str(payload.get("error") or f"HTTP {response.status_code}")
            )

        vector = payload.get("vector")
        if not isinstance(vector, list) or not vector:
            raise EmbeddingError("Embedding response did not include a vector")
        if len(vector) != self._settings.embedding_dimensions:
            raise EmbeddingError(
                f"Expected {self._settings.embedding_dimensions} dimensions, got {len(vector)}"
            )
        try:
            return [float(value) for value in vector]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Embedding vector contained non-numeric values") from exc
