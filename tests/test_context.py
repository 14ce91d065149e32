from __future__ import annotations

from aurabot.chat_store import ChatMessage
from aurabot.context import (
    CONVERSATION_START,
    NO_EDITOR_CONTENT,
    NO_RETRIEVED_CONTENT,
    build_conversation_context,
    build_editor_context,
    build_retrieved_context,
)
from aurabot.retrieval import RetrievedDocument


def _turn(role: str, content: str) -> ChatMessage:
    return ChatMessage(session_id="s1", message_id=f"{role}-{len(content)}", role=role, content=content)


def test_empty_inputs_use_fixed_sentences():
    assert build_retrieved_context([]) == NO_RETRIEVED_CONTENT
    assert build_conversation_context([]) == CONVERSATION_START
    assert build_editor_context() == NO_EDITOR_CONTENT
    assert build_editor_context("  ", "\n", "") == NO_EDITOR_CONTENT


def test_retrieved_documents_listing():
    text = build_retrieved_context(
        [
            RetrievedDocument(id="1", source="lists.md", chunk_text="  Use <ul> for bullets. ", similarity_score=0.8567),
            RetrievedDocument(id="2", source="tables.md", chunk_text="Tables need <th>.", similarity_score=None),
        ]
    )

    assert text.startswith("Relevant learning material:\n\n")
    assert "Source: lists.md\nContent: Use <ul> for bullets.\nRelevance: 85.7%\n---\n" in text
    assert "Source: tables.md\nContent: Tables need <th>.\n---\n" in text
    assert text.count("Relevance:") == 1


def test_conversation_labels_and_truncation():
    long_answer = "a" * 250
    text = build_conversation_context([_turn("user", "Hi there"), _turn("assistant", long_answer)])

    lines = text.strip().splitlines()
    assert lines[0] == "Previous conversation context:"
    assert lines[2] == "Student: Hi there"
    assert lines[3] == "AuraBot: " + "a" * 200 + "..."


def test_editor_context_includes_only_present_sections():
    text = build_editor_context(html_context="  <p>x</p> ", feedback_context="Add a title")

    assert text.startswith("Current HTML code in editor:\n```html\n<p>x</p>\n```\n\n")
    assert "Previous submission feedback:\nAdd a title" in text
    assert "Activity instructions" not in text


def test_editor_context_instructions_only():
    text = build_editor_context(instructions_context="Make a list of fruits")
    assert text == "Activity instructions:\nMake a list of fruits\n\n"
