from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field


def _env(name: str, default: str | None = None) -> str | None:
    val = os.environ.get(name)
    if val is None or val.strip() == "":
        return default
    return val


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env(name, str(default)))  # type: ignore[arg-type]
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name, str(default)))  # type: ignore[arg-type]
    except ValueError:
        return default


DEFAULT_CATEGORIES = ("html", "lesson", "activity", "tutorial")


@dataclass(frozen=True)
class Settings:
    rag_max_chunks: int = 5
    rag_min_similarity: float = 0.7
    rag_categories: tuple[str, ...] = field(default=DEFAULT_CATEGORIES)
    rag_documents_path: str | None = None
    max_tokens: int = 5000
    temperature: float = 0.1
    history_limit: int = 5
    database_url: str | None = None


def load_settings() -> Settings:
    raw_categories = _env("RAG_CATEGORIES")
    if raw_categories:
        categories = tuple(c.strip() for c in raw_categories.split(",") if c.strip())
    else:
        categories = DEFAULT_CATEGORIES

    return Settings(
        rag_max_chunks=_env_int("RAG_MAX_CHUNKS", 5),
        rag_min_similarity=_env_float("RAG_MIN_SIMILARITY", 0.7),
        rag_categories=categories,
        rag_documents_path=_env("RAG_DOCUMENTS_PATH"),
        max_tokens=_env_int("AURABOT_MAX_TOKENS", 5000),
        temperature=_env_float("AURABOT_TEMPERATURE", 0.1),
        history_limit=_env_int("AURABOT_HISTORY_LIMIT", 5),
        database_url=_env("DATABASE_URL"),
    )


def configure_logging() -> None:
    level_name = (_env("LOG_LEVEL", "INFO") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
