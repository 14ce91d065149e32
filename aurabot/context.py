from __future__ import annotations

from typing import Protocol, Sequence

from aurabot.retrieval import RetrievedDocument

NO_RETRIEVED_CONTENT = "No specific relevant content found in the knowledge base."
CONVERSATION_START = "This is the start of our conversation."
NO_EDITOR_CONTENT = "No current code, instructions, or feedback context available."

MAX_TURN_CHARS = 200


class Turn(Protocol):
    role: str
    content: str


def _limit(text: str, max_chars: int = MAX_TURN_CHARS, end: str = "...") -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + end


def build_retrieved_context(documents: Sequence[RetrievedDocument]) -> str:
    if not documents:
        return NO_RETRIEVED_CONTENT

    lines = ["Relevant learning material:", ""]
    for doc in documents:
        lines.append(f"Source: {doc.source}")
        lines.append(f"Content: {doc.chunk_text.strip()}")
        if doc.similarity_score:
            lines.append(f"Relevance: {round(doc.similarity_score * 100, 1)}%")
        lines.append("---")
    return "\n".join(lines) + "\n"


def build_conversation_context(turns: Sequence[Turn]) -> str:
    if not turns:
        return CONVERSATION_START

    lines = ["Previous conversation context:", ""]
    for turn in turns:
        speaker = "Student" if turn.role == "user" else "AuraBot"
        lines.append(f"{speaker}: {_limit(turn.content or '')}")
    return "\n".join(lines) + "\n"


def build_editor_context(
    html_context: str | None = None,
    instructions_context: str | None = None,
    feedback_context: str | None = None,
) -> str:
    sections: list[str] = []
    if html_context and html_context.strip():
        sections.append(f"Current HTML code in editor:\n```html\n{html_context.strip()}\n```\n\n")
    if instructions_context and instructions_context.strip():
        sections.append(f"Activity instructions:\n{instructions_context.strip()}\n\n")
    if feedback_context and feedback_context.strip():
        sections.append(f"Previous submission feedback:\n{feedback_context.strip()}\n\n")

    if not sections:
        return NO_EDITOR_CONTENT
    return "".join(sections)
