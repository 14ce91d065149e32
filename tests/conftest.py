from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from aurabot.chat_store import InMemoryChatRepo
from aurabot.config import Settings
from aurabot.retrieval import InMemoryDocumentRetriever, RagDocument
from aurabot.tutor import AuraBotTutor


class FakeChatClient:
    def __init__(self, content: str | None = "Try adding a <title> inside <head>!", total_tokens: int = 42):
        self.content = content
        self.total_tokens = total_tokens
        self.calls: list[dict[str, Any]] = []

    def create_chat_completion(self, messages, *, max_tokens, temperature):
        self.calls.append({"messages": messages, "max_tokens": max_tokens, "temperature": temperature})
        return {
            "choices": [{"message": {"role": "assistant", "content": self.content}}],
            "usage": {"total_tokens": self.total_tokens},
        }


class FailingChatClient:
    def create_chat_completion(self, messages, *, max_tokens, temperature):
        raise RuntimeError("model unavailable")


FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    return Settings(rag_min_similarity=0.5)


@pytest.fixture
def repo() -> InMemoryChatRepo:
    return InMemoryChatRepo()


@pytest.fixture
def retriever() -> InMemoryDocumentRetriever:
    return InMemoryDocumentRetriever(
        [
            RagDocument(id="1", source="lesson-images.md", category="lesson", chunk_text="Every image needs alt text for accessibility."),
            RagDocument(id="2", source="lesson-images.md", category="lesson", chunk_text="Image alt text describes the image content."),
            RagDocument(id="3", source="css-intro.md", category="css", chunk_text="Image alt text styling with CSS."),
        ]
    )


@pytest.fixture
def llm() -> FakeChatClient:
    return FakeChatClient()


@pytest.fixture
def tutor(repo, retriever, llm, settings) -> AuraBotTutor:
    return AuraBotTutor(repo, retriever, llm, settings, clock=lambda: FIXED_NOW)
