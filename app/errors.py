"""Exception taxonomy shared by the ingestion and retrieval paths."""

from __future__ import annotations


class MoodReelError(Exception):
    """Base class for errors raised inside the MoodReel core."""


class TransientProviderError(MoodReelError):
    """The catalog provider failed or rate limited a request.

    Callers treat this as an empty result rather than surfacing it.
    """

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PartialDataError(MoodReelError):
    """A non-essential enrichment source could not be fetched."""


class FatalItemError(MoodReelError):
    """An item cannot be enriched and must be skipped."""


class StoreWriteError(MoodReelError):
    """The content store rejected or failed to persist a row."""


class EmbeddingError(MoodReelError):
    """The embedding service returned an error or no usable vector."""
