"""Utility helpers for the MoodReel service."""

from __future__ import annotations

from typing import Iterable, TypeVar

T = TypeVar("T")

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
LOGO_BASE_URL = "https://image.tmdb.org/t/p/w300"
IMDB_TITLE_URL = "https://www.imdb.com/title/"


def dedupe(values: Iterable[T]) -> list[T]:
    """Return the values without duplicates, keeping first occurrences."""

    seen: set[T] = set()
    unique: list[T] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        unique.append(value)
    return unique


def split_compound(names: Iterable[str]) -> list[str]:
    """Split names such as ``"Action & Adventure"`` into their parts."""

    parts: list[str] = []
    for name in names:
        if "&" not in name:
            parts.append(name)
            continue
        parts.extend(part.strip() for part in name.split("&") if part.strip())
    return parts


def first_non_empty(*values: str | None) -> str | None:
    """Return the first value that is a non-blank string."""

    for value in values:
        if isinstance(value, str) and value.strip():
            return value
    return None


def truncate_text(text: str, limit: int) -> str:
    if limit <= 0:
        return ""
    return text[:limit]


def extract_year(date_value: object) -> int | None:
    """Return the year portion of a ``YYYY-MM-DD`` date string."""

    if not isinstance(date_value, str) or len(date_value) < 4:
        return None
    try:
        return int(date_value[:4])
    except ValueError:
        return None


def normalize_rating(vote_average: object) -> float | None:
    """Convert a 0-10 provider score into the 0-5 scale used by the store."""

    try:
        score = float(vote_average)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if score <= 0:
        return None
    return round(min(score, 10.0) / 2, 2)


def build_image_url(path: str | None, base_url: str = POSTER_BASE_URL) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url}{path}"


def build_title_url(external_id: str | None) -> str | None:
    if not external_id:
        return None
    return f"{IMDB_TITLE_URL}{external_id}"
