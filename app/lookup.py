"""Static lookup tables for moods, genres and tag vocabularies."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Mapping

Category = Literal["movie", "drama", "animation", "variety"]
Endpoint = Literal["movie", "tv"]

CATEGORIES: tuple[Category, ...] = ("movie", "drama", "animation", "variety")

CATEGORY_ALIASES: Mapping[str, Category] = MappingProxyType(
    {
        "영화": "movie",
        "드라마": "drama",
        "애니메이션": "animation",
        "예능": "variety",
        "film": "movie",
        "movies": "movie",
        "series": "drama",
        "anime": "animation",
        "variety show": "variety",
    }
)

# Raw genre ids used for category filters and heuristics, checked in this order.
CATEGORY_GENRE_IDS: Mapping[Category, int] = MappingProxyType(
    {"drama": 18, "animation": 16, "variety": 10770}
)

# TMDB ``with_type`` values: 3=Reality, 4=Scripted, 5=Talk Show.
CATEGORY_TV_TYPES: Mapping[Category, tuple[int, ...]] = MappingProxyType(
    {"variety": (3, 5), "drama": (4,)}
)

DEFAULT_SORT = "vote_average.desc"

STATIC_GENRE_NAMES: Mapping[int, str] = MappingProxyType(
    {
        28: "Action",
        12: "Adventure",
        16: "Animation",
        35: "Comedy",
        80: "Crime",
        99: "Documentary",
        18: "Drama",
        10751: "Family",
        14: "Fantasy",
        36: "History",
        27: "Horror",
        10402: "Music",
        9648: "Mystery",
        10749: "Romance",
        878: "Science Fiction",
        10770: "TV Movie",
        53: "Thriller",
        10752: "War",
        37: "Western",
        10759: "Action & Adventure",
        10762: "Kids",
        10763: "News",
        10764: "Reality",
        10765: "Sci-Fi & Fantasy",
        10766: "Soap",
        10767: "Talk",
        10768: "War & Politics",
    }
)


@dataclass(frozen=True)
class MoodDefinition:
    """A selectable mood and the catalog hints derived from it."""

    id: str
    name: str
    tags: tuple[str, ...]
    genre_ids: tuple[int, ...] = ()
    keyword_ids: tuple[int, ...] = ()
    sort_by: str = DEFAULT_SORT


MOODS: Mapping[str, MoodDefinition] = MappingProxyType(
    {
        mood.id: mood
        for mood in [
            MoodDefinition(
                id="01",
                name="Romance",
                tags=("Romance", "Drama"),
                genre_ids=(10749,),
                keyword_ids=(1744, 972),
                sort_by="popularity.desc",
            ),
            MoodDefinition(
                id="02",
                name="Horror",
                tags=("Horror", "Thriller"),
                genre_ids=(27, 53),
                keyword_ids=(2099, 969, 9712, 18038, 974),
                sort_by="popularity.desc",
            ),
            MoodDefinition(
                id="03",
                name="Comedy",
                tags=("Comedy",),
                genre_ids=(35,),
                keyword_ids=(971,),
                sort_by="popularity.desc",
            ),
            MoodDefinition(
                id="04",
                name="Sci-Fi",
                tags=("Sci-Fi", "Science Fiction"),
                genre_ids=(878,),
                keyword_ids=(2091, 2092),
            ),
            MoodDefinition(
                id="05",
                name="Fantasy",
                tags=("Fantasy",),
                genre_ids=(14,),
                keyword_ids=(9725, 2093),
            ),
            MoodDefinition(
                id="06",
                name="Adventure",
                tags=("Adventure",),
                genre_ids=(12,),
                keyword_ids=(9715, 9716),
                sort_by="popularity.desc",
            ),
            MoodDefinition(
                id="07",
                name="Action",
                tags=("Action",),
                genre_ids=(28,),
                keyword_ids=(9717, 9718),
                sort_by="popularity.desc",
            ),
            MoodDefinition(
                id="08",
                name="Healing",
                tags=("Drama", "Family"),
                genre_ids=(18, 10751),
                keyword_ids=(9719, 9720),
            ),
            MoodDefinition(
                id="09",
                name="Mystery",
                tags=("Mystery", "Thriller"),
                genre_ids=(9648, 53),
                keyword_ids=(9721, 9722),
            ),
        ]
    }
)

MOOD_IDS: tuple[str, ...] = tuple(MOODS)

# Coarse retrieval pre-filter, deliberately separate from per-item tagging.
MOOD_FILTER_TAGS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "01": ("Romance", "로맨스"),
        "02": ("Horror", "Thriller", "공포", "스릴러"),
        "03": ("Comedy", "코미디"),
        "04": ("Sci-Fi", "Science Fiction", "SF"),
        "05": ("Fantasy", "판타지"),
        "06": ("Adventure", "모험"),
        "07": ("Action", "액션"),
        "08": ("Drama", "Family", "가족"),
        "09": ("Mystery", "Thriller", "미스터리", "스릴러"),
    }
)


def _frozen(mapping: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class TagVocabulary:
    """Immutable tag tables for one display language.

    ``translations`` maps canonical (English) tag names to this language.
    """

    language: str
    translations: Mapping[str, str] = field(default_factory=dict)
    keyword_phrases: Mapping[str, str] = field(default_factory=dict)
    keyword_fallbacks: tuple[tuple[str, str], ...] = ()
    category_rules: tuple[tuple[Category, frozenset[str]], ...] = ()
    default_tags: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    category_labels: Mapping[Category, str] = field(default_factory=dict)

    def translate(self, tag: str) -> str:
        return self.translations.get(tag, tag)

    def label_for(self, category: Category) -> str:
        return self.category_labels.get(category, category)


KOREAN = TagVocabulary(
    language="ko",
    translations=_frozen(
        {
            "Action": "액션",
            "Adventure": "모험",
            "Animation": "애니메이션",
            "Comedy": "코미디",
            "Crime": "범죄",
            "Documentary": "다큐멘터리",
            "Drama": "드라마",
            "Family": "가족",
            "Fantasy": "판타지",
            "History": "역사",
            "Horror": "공포",
            "Music": "음악",
            "Mystery": "미스터리",
            "Romance": "로맨스",
            "Science Fiction": "SF",
            "Sci-Fi": "SF",
            "Thriller": "스릴러",
            "War": "전쟁",
            "Western": "서부",
            "Reality": "리얼리티",
            "Talk Show": "토크쇼",
            "Talk": "토크쇼",
            "News": "뉴스",
            "War & Politics": "전쟁·정치",
            "Action & Adventure": "액션",
            "Sci-Fi & Fantasy": "SF",
            "Politics": "정치",
            "Soap": "연속극",
            "Kids": "키즈",
            "TV Movie": "TV영화",
        }
    ),
    keyword_phrases=_frozen(
        {
            "historical drama": "사극",
            "historical fiction": "사극",
            "history": "역사",
            "alternate history": "퓨전 사극",
            "alternate past": "퓨전 사극",
            "sageuk": "사극",
            "fusion sageuk": "퓨전 사극",
            "period drama": "사극",
            "ancient korea": "사극",
            "martial arts": "무협",
            "warrior": "무협",
            "sword fight": "검술",
            "sword": "검술",
            "politics": "정치",
            "political intrigue": "정치",
            "power struggle": "정치",
            "romance": "로맨스",
            "love": "로맨스",
            "assassin": "암살",
            "rebellion": "혁명",
            "royalty": "왕실",
            "kingdom": "왕권",
            "court": "궁중",
            "conspiracy": "음모",
        }
    ),
    keyword_fallbacks=(
        ("romance", "로맨스"),
        ("histor", "사극"),
        ("martial", "무협"),
        ("sword", "검술"),
        ("politic", "정치"),
        ("love", "로맨스"),
    ),
    category_rules=(
        ("animation", frozenset({"애니메이션"})),
        ("drama", frozenset({"드라마"})),
        ("variety", frozenset({"리얼리티", "토크쇼"})),
    ),
    default_tags=MappingProxyType(
        {
            "variety": ("코미디", "리얼리티"),
            "animation": ("애니메이션",),
            "drama": ("드라마",),
            "classic": ("명작",),
            "movie": ("영화",),
        }
    ),
    category_labels=MappingProxyType(
        {"movie": "영화", "drama": "드라마", "animation": "애니메이션", "variety": "예능"}
    ),
)

ENGLISH = TagVocabulary(
    language="en",
    keyword_phrases=_frozen(
        {
            "historical drama": "Period Drama",
            "historical fiction": "Period Drama",
            "history": "History",
            "alternate history": "Alternate History",
            "alternate past": "Alternate History",
            "sageuk": "Period Drama",
            "fusion sageuk": "Alternate History",
            "period drama": "Period Drama",
            "ancient korea": "Period Drama",
            "martial arts": "Martial Arts",
            "warrior": "Martial Arts",
            "sword fight": "Swordplay",
            "sword": "Swordplay",
            "politics": "Politics",
            "political intrigue": "Politics",
            "power struggle": "Politics",
            "romance": "Romance",
            "love": "Romance",
            "assassin": "Assassin",
            "rebellion": "Rebellion",
            "royalty": "Royalty",
            "kingdom": "Kingdom",
            "court": "Royal Court",
            "conspiracy": "Conspiracy",
        }
    ),
    keyword_fallbacks=(
        ("romance", "Romance"),
        ("histor", "Period Drama"),
        ("martial", "Martial Arts"),
        ("sword", "Swordplay"),
        ("politic", "Politics"),
        ("love", "Romance"),
    ),
    category_rules=(
        ("animation", frozenset({"Animation"})),
        ("drama", frozenset({"Drama"})),
        ("variety", frozenset({"Reality", "Talk Show", "Talk"})),
    ),
    default_tags=MappingProxyType(
        {
            "variety": ("comedy", "reality"),
            "animation": ("animation",),
            "drama": ("drama",),
            "classic": ("classic",),
            "movie": ("movie",),
        }
    ),
    category_labels=MappingProxyType(
        {
            "movie": "Movie",
            "drama": "Drama",
            "animation": "Animation",
            "variety": "Variety Show",
        }
    ),
)

VOCABULARIES: Mapping[str, TagVocabulary] = MappingProxyType(
    {KOREAN.language: KOREAN, ENGLISH.language: ENGLISH}
)


def vocabulary_for(locale: str) -> TagVocabulary:
    """Return the vocabulary for a locale such as ``ko-KR``; English otherwise."""

    language = (locale or "").split("-", 1)[0].lower()
    return VOCABULARIES.get(language, ENGLISH)


def mood_tags(mood_ids: list[str] | tuple[str, ...]) -> list[str]:
    """Return the retrieval pre-filter tags for the selected moods."""

    tags: list[str] = []
    for mood_id in mood_ids:
        for tag in MOOD_FILTER_TAGS.get(mood_id, ()):
            if tag not in tags:
                tags.append(tag)
    return tags
