from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from cachetools import TTLCache


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatSession:
    session_id: str
    user_id: int | None = None
    attempt_count: int = 0
    progress_data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def touch(self) -> None:
        self.updated_at = _now()


@dataclass
class ChatMessage:
    session_id: str
    message_id: str
    role: str  # "user" | "assistant"
    content: str
    user_id: int | None = None
    html_context: str | None = None
    instructions_context: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    cited_sources: list[dict[str, Any]] = field(default_factory=list)
    tokens_used: int = 0
    sent_at: datetime = field(default_factory=_now)


class InMemoryChatRepo:
    """
    Process-local sessions and conversations. Entries expire after ttl_seconds
    without being rewritten; everything is lost on restart.
    """

    def __init__(
        self, *, maxsize: int = 10_000, ttl_seconds: int = 24 * 60 * 60, max_messages: int = 500
    ) -> None:
        self._max_messages = max_messages
        self._sessions: TTLCache[str, ChatSession] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        self._messages: TTLCache[str, list[ChatMessage]] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        # TTLCache is not thread-safe and FastAPI runs sync routes in a threadpool.
        self._lock = threading.RLock()

    def get(self, session_id: str) -> ChatSession | None:
        with self._lock:
            return self._sessions.get(session_id)

    def get_or_create(self, session_id: str, user_id: int | None = None) -> ChatSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ChatSession(session_id=session_id, user_id=user_id)
                self._sessions[session_id] = session
            return session

    def update_progress(self, session: ChatSession, progress: dict[str, Any]) -> ChatSession:
        with self._lock:
            session.progress_data = dict(progress)
            session.touch()
            self._sessions[session.session_id] = session
            return session

    def reset_attempts(self, session_id: str) -> ChatSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.attempt_count = 0
            session.touch()
            self._sessions[session_id] = session
            return session

    def save_user_message(
        self,
        session_id: str,
        message_id: str,
        content: str,
        user_id: int | None = None,
        html_context: str | None = None,
        instructions_context: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChatMessage:
        msg = ChatMessage(
            session_id=session_id,
            message_id=message_id,
            role="user",
            content=content,
            user_id=user_id,
            html_context=html_context,
            instructions_context=instructions_context,
            metadata=dict(metadata or {}),
        )
        self._append(msg)
        return msg

    def save_assistant_message(
        self,
        session_id: str,
        message_id: str,
        content: str,
        user_id: int | None = None,
        cited_sources: list[dict[str, Any]] | None = None,
        tokens_used: int = 0,
    ) -> ChatMessage:
        msg = ChatMessage(
            session_id=session_id,
            message_id=message_id,
            role="assistant",
            content=content,
            user_id=user_id,
            cited_sources=list(cited_sources or []),
            tokens_used=tokens_used,
        )
        self._append(msg)
        return msg

    def get_recent_context(self, session_id: str, limit: int = 5) -> list[ChatMessage]:
        """Last `limit` messages, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._messages.get(session_id, [])[-limit:])

    def get_session_history(self, session_id: str, limit: int = 20) -> list[ChatMessage]:
        """First `limit` messages of the session, oldest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(self._messages.get(session_id, [])[:limit])

    def _append(self, msg: ChatMessage) -> None:
        with self._lock:
            messages = self._messages.get(msg.session_id) or []
            messages.append(msg)
            if len(messages) > self._max_messages:
                messages = messages[-self._max_messages:]
            self._messages[msg.session_id] = messages
