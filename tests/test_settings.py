"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import Settings


def test_locales_are_normalised() -> None:
    """Locale values should accept underscores and mixed casing."""

    settings = Settings(_env_file=None, PRIMARY_LOCALE="KO_kr", SECONDARY_LOCALE="EN")

    assert settings.primary_locale == "ko-KR"
    assert settings.secondary_locale == "en"


def test_invalid_locale_raises() -> None:
    with pytest.raises(ValueError, match="Locales must look like"):
        Settings(_env_file=None, PRIMARY_LOCALE="korean")


def test_provider_region_is_upper_cased() -> None:
    settings = Settings(_env_file=None, PROVIDER_REGION="us")

    assert settings.provider_region == "US"


def test_provider_region_must_be_two_letters() -> None:
    with pytest.raises(ValueError, match="two-letter country code"):
        Settings(_env_file=None, PROVIDER_REGION="KOR")


def test_relaxed_vote_count_cannot_exceed_default() -> None:
    """Relaxing filters must never make the vote threshold stricter."""

    with pytest.raises(ValueError, match="RELAXED_VOTE_COUNT"):
        Settings(_env_file=None, MIN_VOTE_COUNT=20, RELAXED_VOTE_COUNT=50)


def test_retrieval_limit_bounded_by_top_k() -> None:
    with pytest.raises(ValueError, match="RETRIEVAL_LIMIT"):
        Settings(_env_file=None, RETRIEVAL_TOP_K=2, RETRIEVAL_LIMIT=3)


def test_defaults_match_ingestion_contract() -> None:
    settings = Settings(_env_file=None)

    assert settings.min_vote_count == 100
    assert settings.relaxed_vote_count == 50
    assert settings.min_rating == 6.0
    assert settings.recency_years == 10
    assert settings.embedding_dimensions == 1536
    assert settings.embedding_text_limit == 512
    assert settings.retrieval_top_k == 5
    assert settings.retrieval_limit == 3
    assert settings.enrichment_concurrency <= 3


def test_embedding_url_accepts_legacy_alias(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMBED_FUNCTION_URL", "https://embed.example.com/embed")

    settings = Settings(_env_file=None)

    assert str(settings.embedding_api_url) == "https://embed.example.com/embed"
