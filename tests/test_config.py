from __future__ import annotations

from aurabot.config import DEFAULT_CATEGORIES, load_settings


def test_defaults(monkeypatch):
    for name in (
        "RAG_MAX_CHUNKS",
        "RAG_MIN_SIMILARITY",
        "RAG_CATEGORIES",
        "AURABOT_MAX_TOKENS",
        "AURABOT_TEMPERATURE",
        "AURABOT_HISTORY_LIMIT",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()
    assert settings.rag_max_chunks == 5
    assert settings.rag_min_similarity == 0.7
    assert settings.rag_categories == DEFAULT_CATEGORIES
    assert settings.max_tokens == 5000
    assert settings.temperature == 0.1
    assert settings.history_limit == 5
    assert settings.database_url is None


def test_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("RAG_MAX_CHUNKS", "3")
    monkeypatch.setenv("AURABOT_MAX_TOKENS", "lots")
    monkeypatch.setenv("RAG_CATEGORIES", " html , lesson ,,")
    monkeypatch.setenv("DATABASE_URL", "   ")

    settings = load_settings()
    assert settings.rag_max_chunks == 3
    assert settings.max_tokens == 5000
    assert settings.rag_categories == ("html", "lesson")
    assert settings.database_url is None
