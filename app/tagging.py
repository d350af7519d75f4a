"""Pure tag and category classification for enriched catalog items."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .lookup import CATEGORIES, CATEGORY_GENRE_IDS, MOODS, Category, TagVocabulary
from .utils import dedupe, split_compound

CLASSIC_RATING_THRESHOLD = 7.0


@dataclass(frozen=True)
class TagRequest:
    """Everything the classifier needs to know about one item."""

    genre_ids: tuple[int, ...] = ()
    genre_names_a: tuple[str, ...] = ()
    genre_names_b: tuple[str, ...] = ()
    keywords_a: tuple[str, ...] = ()
    keywords_b: tuple[str, ...] = ()
    mood_ids: tuple[str, ...] = ()
    force_moods: bool = False
    requested_category: Category | None = None
    vote_average: float | None = None


@dataclass(frozen=True)
class TagResult:
    tags_a: list[str] = field(default_factory=list)
    tags_b: list[str] = field(default_factory=list)
    category: Category = "movie"
    category_label_a: str = ""
    category_label_b: str = ""
    detected_category: Category | None = None


def _append_missing(target: list[str], values: Iterable[str]) -> None:
    for value in values:
        if value and value not in target:
            target.append(value)


def match_keyword(keyword: str, vocabulary: TagVocabulary) -> str | None:
    """Return the tag a keyword maps to, trying exact phrases before substrings."""

    normalized = keyword.strip().lower()
    if not normalized:
        return None
    phrase = vocabulary.keyword_phrases.get(normalized)
    if phrase:
        return phrase
    for fragment, tag in vocabulary.keyword_fallbacks:
        if fragment in normalized:
            return tag
    return None


def detect_category(
    tags: Sequence[str], vocabulary: TagVocabulary
) -> tuple[Category | None, list[str]]:
    """Apply the first matching category rule and strip its trigger tags."""

    present = set(tags)
    for category, triggers in vocabulary.category_rules:
        if present & triggers:
            return category, [tag for tag in tags if tag not in triggers]
    return None, list(tags)


def resolve_category(
    requested: Category | None,
    detected: Category | None,
    genre_ids: Iterable[int],
) -> Category:
    """Explicit request beats detection, detection beats raw genre ids."""

    if requested in CATEGORIES:
        return requested
    if detected is not None:
        return detected
    ids = set(genre_ids)
    for category, genre_id in CATEGORY_GENRE_IDS.items():
        if genre_id in ids:
            return category
    return "movie"


def default_tags_key(category: Category, vote_average: float | None) -> str:
    if category != "movie":
        return category
    if vote_average is not None and vote_average >= CLASSIC_RATING_THRESHOLD:
        return "classic"
    return "movie"


def classify(
    request: TagRequest, primary: TagVocabulary, secondary: TagVocabulary
) -> TagResult:
    """Build both tag tracks and decide the category for one item."""

    tags_a = split_compound(request.genre_names_a)
    tags_b = split_compound(request.genre_names_b)

    # Secondary genre names only ever add primary translations.
    for tag in tags_b:
        translated = primary.translations.get(tag)
        if translated and translated not in tags_a:
            tags_a.append(translated)

    for keyword in request.keywords_a:
        matched = match_keyword(keyword, primary)
        if matched:
            tags_a.append(matched)
    tags_b.extend(keyword for keyword in request.keywords_b if keyword)

    genre_ids = set(request.genre_ids)
    mood_tags_a: list[str] = []
    for mood_id in request.mood_ids:
        mood = MOODS.get(mood_id)
        if mood is None:
            continue
        if (
            request.force_moods
            or not mood.genre_ids
            or genre_ids.intersection(mood.genre_ids)
        ):
            _append_missing(tags_b, (secondary.translate(tag) for tag in mood.tags))
            _append_missing(mood_tags_a, (primary.translate(tag) for tag in mood.tags))

    tags_a = dedupe(tags_a)
    tags_b = dedupe(tags_b)
    tags_a = mood_tags_a + [tag for tag in tags_a if tag not in mood_tags_a]

    detected, tags_a = detect_category(tags_a, primary)
    category = resolve_category(request.requested_category, detected, genre_ids)

    if not tags_a and not tags_b:
        key = default_tags_key(category, request.vote_average)
        tags_a = list(primary.default_tags.get(key, ()))
        tags_b = list(secondary.default_tags.get(key, ()))

    return TagResult(
        tags_a=tags_a,
        tags_b=tags_b,
        category=category,
        category_label_a=primary.label_for(category),
        category_label_b=secondary.label_for(category),
        detected_category=detected,
    )


def clean_stored_tags(
    tags: Sequence[str], category: Category, vocabulary: TagVocabulary
) -> tuple[list[str], Category | None]:
    """Re-normalize an already stored tag list.

    Compound tags are split and translated, duplicates dropped and category
    trigger tags removed. When nothing remains the defaults for the detected
    (or stored) category are applied. Returns the cleaned tags together with
    the detected category, if any.
    """

    cleaned = dedupe(vocabulary.translate(tag) for tag in split_compound(tags))
    detected, cleaned = detect_category(cleaned, vocabulary)
    if not cleaned:
        cleaned = list(vocabulary.default_tags.get(detected or category, ()))
    return cleaned, detected
