from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol, Sequence

import yaml

from aurabot.config import Settings, load_settings


@dataclass(frozen=True)
class RagDocument:
    id: str
    source: str
    category: str
    chunk_text: str


@dataclass(frozen=True)
class RetrievedDocument:
    id: str
    source: str
    chunk_text: str
    similarity_score: float | None = None


class DocumentRetriever(Protocol):
    def search_relevant_documents(
        self,
        query: str,
        max_results: int = 5,
        min_similarity: float = 0.7,
        categories: Sequence[str] = (),
    ) -> list[RetrievedDocument]: ...


_STOPWORDS = {
    "what", "the", "and", "for", "does", "how", "why", "can", "you", "this", "that",
    "with", "are", "was", "were", "should", "could", "would", "please", "about", "into",
}


def _tokenize(text: str) -> set[str]:
    return {t for t in re.findall(r"[a-z0-9\-]+", (text or "").lower()) if len(t) > 2 and t not in _STOPWORDS}


def term_overlap(query_terms: Iterable[str], doc_terms: Iterable[str]) -> float:
    """Share of distinct query terms present in the document, in [0, 1]."""
    wanted = set(query_terms)
    if not wanted:
        return 0.0
    return len(wanted & set(doc_terms)) / len(wanted)


def _best_matches(
    scored: Iterable[tuple[float, RetrievedDocument]], min_similarity: float, max_results: int
) -> list[RetrievedDocument]:
    kept = [(s, d) for s, d in scored if s > 0 and s >= min_similarity]
    # stable sort keeps candidate order among equal scores
    kept.sort(key=lambda item: item[0], reverse=True)
    return [
        RetrievedDocument(id=d.id, source=d.source, chunk_text=d.chunk_text, similarity_score=round(s, 4))
        for s, d in kept[:max_results]
    ]


class InMemoryDocumentRetriever:
    """
    Lexical stand-in for the embedding search: a chunk's score is the share of
    distinct query terms it contains, so scores stay in [0, 1].
    """

    def __init__(self, documents: Iterable[RagDocument] = ()) -> None:
        self._documents: list[RagDocument] = list(documents)
        self._lock = threading.Lock()

    def add_document(self, source: str, category: str, chunk_text: str) -> RagDocument:
        with self._lock:
            doc = RagDocument(
                id=str(len(self._documents) + 1),
                source=source,
                category=category,
                chunk_text=chunk_text,
            )
            self._documents.append(doc)
        return doc

    def search_relevant_documents(
        self,
        query: str,
        max_results: int = 5,
        min_similarity: float = 0.7,
        categories: Sequence[str] = (),
    ) -> list[RetrievedDocument]:
        query_terms = _tokenize(query)
        if not query_terms or max_results <= 0:
            return []

        wanted = set(categories)
        with self._lock:
            candidates = [d for d in self._documents if not wanted or d.category in wanted]

        scored = (
            (
                term_overlap(query_terms, _tokenize(doc.chunk_text)),
                RetrievedDocument(id=doc.id, source=doc.source, chunk_text=doc.chunk_text),
            )
            for doc in candidates
        )
        return _best_matches(scored, min_similarity, max_results)


class PostgresDocumentRetriever:
    """
    Postgres full-text search over rag_documents. A chunk's score is the share of
    distinct query lexemes it contains, the same scale as InMemoryDocumentRetriever.
    """

    CANDIDATE_FACTOR = 20
    MIN_CANDIDATES = 50

    def __init__(self, database_url: str, *, language: str = "english"):
        self.database_url = database_url
        self.language = language

    def _connect(self):
        import psycopg  # type: ignore
        from psycopg.rows import dict_row  # type: ignore

        return psycopg.connect(self.database_url, row_factory=dict_row)

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS rag_documents (
                      id BIGSERIAL PRIMARY KEY,
                      source TEXT NOT NULL,
                      category TEXT NOT NULL DEFAULT '',
                      chunk_text TEXT NOT NULL,
                      search_vector TSVECTOR GENERATED ALWAYS AS (to_tsvector('{self.language}', chunk_text)) STORED,
                      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    );
                    """
                )
                cur.execute(
                    "CREATE INDEX IF NOT EXISTS idx_rag_documents_search ON rag_documents USING GIN (search_vector);"
                )
            conn.commit()

    def add_document(self, source: str, category: str, chunk_text: str) -> RagDocument:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO rag_documents (source, category, chunk_text) VALUES (%s, %s, %s) RETURNING id;",
                    (source, category, chunk_text),
                )
                row = cur.fetchone()
            conn.commit()
        if not row:
            raise ValueError("Missing row")
        return RagDocument(id=str(row["id"]), source=source, category=category, chunk_text=chunk_text)

    def search_relevant_documents(
        self,
        query: str,
        max_results: int = 5,
        min_similarity: float = 0.7,
        categories: Sequence[str] = (),
    ) -> list[RetrievedDocument]:
        if not (query or "").strip() or max_results <= 0:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT tsvector_to_array(to_tsvector(%s::regconfig, %s)) AS lexemes;",
                    (self.language, query),
                )
                row = cur.fetchone()
                query_lexemes = list((row or {}).get("lexemes") or [])
                if not query_lexemes:
                    return []

                # Any-term match narrows the candidates; ts_rank_cd only orders them.
                cur.execute(
                    """
                    WITH q AS (
                      SELECT array_to_string(
                               ARRAY(SELECT quote_literal(l) FROM unnest(%s::text[]) AS l), ' | '
                             )::tsquery AS query
                    )
                    SELECT d.id, d.source, d.chunk_text, tsvector_to_array(d.search_vector) AS lexemes
                      FROM rag_documents d, q
                     WHERE d.search_vector @@ q.query
                       AND (cardinality(%s::text[]) = 0 OR d.category = ANY(%s::text[]))
                     ORDER BY ts_rank_cd(d.search_vector, q.query) DESC, d.id ASC
                     LIMIT %s;
                    """,
                    (
                        query_lexemes,
                        list(categories),
                        list(categories),
                        max(max_results * self.CANDIDATE_FACTOR, self.MIN_CANDIDATES),
                    ),
                )
                rows = cur.fetchall() or []

        scored = (
            (
                term_overlap(query_lexemes, r.get("lexemes") or []),
                RetrievedDocument(id=str(r["id"]), source=r["source"], chunk_text=r["chunk_text"]),
            )
            for r in rows
        )
        return _best_matches(scored, min_similarity, max_results)


def load_documents(path: str | Path) -> list[RagDocument]:
    """
    Reads a YAML (or JSON) list of {source, category, text|chunk_text} entries.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or []
    if not isinstance(raw, list):
        raise ValueError(f"Expected a list of documents in {path}")

    docs: list[RagDocument] = []
    for idx, item in enumerate(raw, start=1):
        text = (item.get("chunk_text") or item.get("text") or "").strip()
        if not text:
            continue
        docs.append(
            RagDocument(
                id=str(item.get("id") or idx),
                source=str(item.get("source") or f"document-{idx}"),
                category=str(item.get("category") or ""),
                chunk_text=text,
            )
        )
    return docs


def make_retriever(settings: Settings | None = None) -> DocumentRetriever:
    settings = settings or load_settings()
    if settings.database_url:
        return PostgresDocumentRetriever(settings.database_url)
    documents = load_documents(settings.rag_documents_path) if settings.rag_documents_path else []
    return InMemoryDocumentRetriever(documents)
