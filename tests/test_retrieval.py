from __future__ import annotations

import pytest

from aurabot.config import Settings
from aurabot.retrieval import (
    InMemoryDocumentRetriever,
    PostgresDocumentRetriever,
    load_documents,
    make_retriever,
    term_overlap,
)


def test_search_filters_by_category_and_threshold(retriever):
    docs = retriever.search_relevant_documents(
        "Why does my image need alt text?", max_results=5, min_similarity=0.5, categories=["lesson"]
    )

    assert [d.id for d in docs] == ["1", "2"]
    assert all(0.5 <= d.similarity_score <= 1 for d in docs)


def test_search_respects_max_results_and_ordering():
    retriever = InMemoryDocumentRetriever()
    retriever.add_document("a.md", "html", "tables rows cells")
    retriever.add_document("b.md", "html", "tables rows")
    retriever.add_document("c.md", "html", "tables")

    docs = retriever.search_relevant_documents("tables rows cells", max_results=2, min_similarity=0.0)
    assert [d.source for d in docs] == ["a.md", "b.md"]
    assert docs[0].similarity_score == 1.0


def test_high_threshold_excludes_weak_matches(retriever):
    assert retriever.search_relevant_documents("image captions and figures", min_similarity=0.9) == []


def test_empty_query():
    assert InMemoryDocumentRetriever().search_relevant_documents("") == []


def test_load_documents_yaml(tmp_path):
    path = tmp_path / "docs.yaml"
    path.write_text(
        "- source: headings.md\n"
        "  category: lesson\n"
        "  text: Use one h1 per page.\n"
        "- source: blank.md\n"
        "  text: '   '\n",
        encoding="utf-8",
    )

    docs = load_documents(path)
    assert len(docs) == 1
    assert docs[0].source == "headings.md"
    assert docs[0].category == "lesson"

    retriever = make_retriever(Settings(rag_documents_path=str(path)))
    assert retriever.search_relevant_documents("h1 page", min_similarity=0.5)[0].source == "headings.md"


def test_load_documents_rejects_non_list(tmp_path):
    path = tmp_path / "docs.yaml"
    path.write_text("source: x\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_documents(path)


def test_term_overlap():
    assert term_overlap({"img", "alt"}, {"alt", "img", "src"}) == 1.0
    assert term_overlap(["img", "alt", "alt"], ["img"]) == 0.5
    assert term_overlap([], ["img"]) == 0.0


class _FakeCursor:
    def __init__(self, query_lexemes, rows):
        self.query_lexemes = query_lexemes
        self.rows = rows
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def fetchone(self):
        return {"lexemes": self.query_lexemes}

    def fetchall(self):
        return self.rows


class _FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def cursor(self):
        return self._cursor


def _postgres_retriever(monkeypatch, query_lexemes, rows):
    cursor = _FakeCursor(query_lexemes, rows)
    retriever = PostgresDocumentRetriever("postgresql://example/aurabot")
    monkeypatch.setattr(retriever, "_connect", lambda: _FakeConnection(cursor))
    return retriever, cursor


def test_postgres_scores_full_lexeme_match_as_one(monkeypatch):
    chunk = "Every <img> needs an alt attribute that describes the image for screen readers."
    rows = [
        {"id": 7, "source": "lesson-images.md", "chunk_text": chunk,
         "lexemes": ["alt", "attribut", "describ", "everi", "imag", "img", "need", "reader", "screen"]},
        {"id": 9, "source": "css-intro.md", "chunk_text": "CSS styles the image borders.",
         "lexemes": ["border", "css", "imag", "style"]},
    ]
    retriever, cursor = _postgres_retriever(monkeypatch, ["alt", "imag", "need", "text"], rows)

    docs = retriever.search_relevant_documents(
        "Why does my image need alt text?", max_results=5, min_similarity=0.7, categories=["lesson"]
    )

    assert [(d.id, d.source) for d in docs] == [("7", "lesson-images.md")]
    assert docs[0].similarity_score == 0.75
    candidate_params = cursor.executed[1][1]
    assert candidate_params[0] == ["alt", "imag", "need", "text"]
    assert candidate_params[1] == ["lesson"]


def test_postgres_complete_match_reaches_default_threshold(monkeypatch):
    rows = [{"id": 1, "source": "headings.md", "chunk_text": "Use one h1 per page.",
             "lexemes": ["h1", "one", "page", "use"]}]
    retriever, _ = _postgres_retriever(monkeypatch, ["h1", "page"], rows)

    docs = retriever.search_relevant_documents("h1 page")
    assert [d.similarity_score for d in docs] == [1.0]


def test_postgres_query_without_lexemes_skips_search(monkeypatch):
    retriever, cursor = _postgres_retriever(monkeypatch, [], [])

    assert retriever.search_relevant_documents("the and of") == []
    assert len(cursor.executed) == 1
