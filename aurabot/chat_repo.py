from __future__ import annotations

import json
from typing import Any, Protocol

from aurabot.chat_store import ChatMessage, ChatSession, InMemoryChatRepo
from aurabot.config import load_settings


class ChatRepo(Protocol):
    def get(self, session_id: str) -> ChatSession | None: ...

    def get_or_create(self, session_id: str, user_id: int | None = None) -> ChatSession: ...

    def update_progress(self, session: ChatSession, progress: dict[str, Any]) -> ChatSession: ...

    def reset_attempts(self, session_id: str) -> ChatSession | None: ...

    def save_user_message(
        self,
        session_id: str,
        message_id: str,
        content: str,
        user_id: int | None = None,
        html_context: str | None = None,
        instructions_context: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ChatMessage: ...

    def save_assistant_message(
        self,
        session_id: str,
        message_id: str,
        content: str,
        user_id: int | None = None,
        cited_sources: list[dict[str, Any]] | None = None,
        tokens_used: int = 0,
    ) -> ChatMessage: ...

    def get_recent_context(self, session_id: str, limit: int = 5) -> list[ChatMessage]: ...

    def get_session_history(self, session_id: str, limit: int = 20) -> list[ChatMessage]: ...


_SESSION_COLUMNS = "session_id, user_id, attempt_count, progress_data, created_at, updated_at"
_MESSAGE_COLUMNS = (
    "session_id, message_id, role, content, user_id, html_context, instructions_context, "
    "metadata, cited_sources, tokens_used, sent_at"
)


class PostgresChatRepo:
    """
    Sessions and conversations in Postgres.
    Requires DATABASE_URL.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url

    def _connect(self):
        # Import lazily so the in-memory setup runs without psycopg installed.
        import psycopg  # type: ignore
        from psycopg.rows import dict_row  # type: ignore

        return psycopg.connect(self.database_url, row_factory=dict_row)

    @staticmethod
    def _jsonb(value: Any):
        from psycopg.types.json import Jsonb  # type: ignore

        return Jsonb(value)

    def ensure_schema(self) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS chatbot_sessions (
                      session_id TEXT PRIMARY KEY,
                      user_id BIGINT,
                      attempt_count INTEGER NOT NULL DEFAULT 0,
                      progress_data JSONB NOT NULL DEFAULT '{}'::jsonb,
                      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    );
                    """
                )
                cur.execute(
                    """
                    CREATE TABLE IF NOT EXISTS chatbot_conversations (
                      id BIGSERIAL PRIMARY KEY,
                      session_id TEXT NOT NULL REFERENCES chatbot_sessions(session_id) ON DELETE CASCADE,
                      message_id TEXT NOT NULL UNIQUE,
                      role TEXT NOT NULL,
                      content TEXT NOT NULL,
                      user_id BIGINT,
                      html_context TEXT,
                      instructions_context TEXT,
                      metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
                      cited_sources JSONB NOT NULL DEFAULT '[]'::jsonb,
                      tokens_used INTEGER NOT NULL DEFAULT 0,
                      sent_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    );
                    """
                )
                cur.execute(
                    "CREATE INDEX IF NOT EXISTS idx_chatbot_conversations_session "
                    "ON chatbot_conversations(session_id, id);"
                )
            conn.commit()

    def get(self, session_id: str) -> ChatSession | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM chatbot_sessions WHERE session_id = %s;",
                    (session_id,),
                )
                row = cur.fetchone()
        return _row_to_session(row) if row else None

    def get_or_create(self, session_id: str, user_id: int | None = None) -> ChatSession:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO chatbot_sessions (session_id, user_id)
                    VALUES (%s, %s)
                    ON CONFLICT (session_id) DO NOTHING;
                    """,
                    (session_id, user_id),
                )
                cur.execute(
                    f"SELECT {_SESSION_COLUMNS} FROM chatbot_sessions WHERE session_id = %s;",
                    (session_id,),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_session(row)

    def update_progress(self, session: ChatSession, progress: dict[str, Any]) -> ChatSession:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE chatbot_sessions
                       SET progress_data = %s,
                           updated_at = now()
                     WHERE session_id = %s
                    RETURNING {_SESSION_COLUMNS};
                    """,
                    (self._jsonb(progress), session.session_id),
                )
                row = cur.fetchone()
            conn.commit()
        updated = _row_to_session(row)
        session.progress_data = updated.progress_data
        session.updated_at = updated.updated_at
        return session

    def reset_attempts(self, session_id: str) -> ChatSession | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE chatbot_sessions
                       SET attempt_count = 0,
                           updated_at = now()
                     WHERE session_id = %s
                    RETURNING {_SESSION_COLUMNS};
                    """,
                    (session_id,),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_session(row) if row else None

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
        return self._insert_message(
            session_id=session_id,
            message_id=message_id,
            role="user",
            content=content,
            user_id=user_id,
            html_context=html_context,
            instructions_context=instructions_context,
            metadata=metadata or {},
            cited_sources=[],
            tokens_used=0,
        )

    def save_assistant_message(
        self,
        session_id: str,
        message_id: str,
        content: str,
        user_id: int | None = None,
        cited_sources: list[dict[str, Any]] | None = None,
        tokens_used: int = 0,
    ) -> ChatMessage:
        return self._insert_message(
            session_id=session_id,
            message_id=message_id,
            role="assistant",
            content=content,
            user_id=user_id,
            html_context=None,
            instructions_context=None,
            metadata={},
            cited_sources=cited_sources or [],
            tokens_used=tokens_used,
        )

    def _insert_message(self, **values: Any) -> ChatMessage:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO chatbot_conversations ({_MESSAGE_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, now())
                    RETURNING {_MESSAGE_COLUMNS};
                    """,
                    (
                        values["session_id"],
                        values["message_id"],
                        values["role"],
                        values["content"],
                        values["user_id"],
                        values["html_context"],
                        values["instructions_context"],
                        self._jsonb(values["metadata"]),
                        self._jsonb(values["cited_sources"]),
                        values["tokens_used"],
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        return _row_to_message(row)

    def get_recent_context(self, session_id: str, limit: int = 5) -> list[ChatMessage]:
        if limit <= 0:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {_MESSAGE_COLUMNS}
                      FROM chatbot_conversations
                     WHERE session_id = %s
                     ORDER BY id DESC
                     LIMIT %s;
                    """,
                    (session_id, limit),
                )
                rows = cur.fetchall() or []
        return [_row_to_message(r) for r in reversed(rows)]

    def get_session_history(self, session_id: str, limit: int = 20) -> list[ChatMessage]:
        if limit <= 0:
            return []
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {_MESSAGE_COLUMNS}
                      FROM chatbot_conversations
                     WHERE session_id = %s
                     ORDER BY id ASC
                     LIMIT %s;
                    """,
                    (session_id, limit),
                )
                rows = cur.fetchall() or []
        return [_row_to_message(r) for r in rows]


def _row_to_session(row: dict | None) -> ChatSession:
    if not row:
        raise ValueError("Missing session row")
    return ChatSession(
        session_id=row["session_id"],
        user_id=row.get("user_id"),
        attempt_count=row.get("attempt_count") or 0,
        progress_data=_coerce_json(row.get("progress_data"), dict),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_message(row: dict | None) -> ChatMessage:
    if not row:
        raise ValueError("Missing message row")
    return ChatMessage(
        session_id=row["session_id"],
        message_id=row["message_id"],
        role=row["role"],
        content=row.get("content") or "",
        user_id=row.get("user_id"),
        html_context=row.get("html_context"),
        instructions_context=row.get("instructions_context"),
        metadata=_coerce_json(row.get("metadata"), dict),
        cited_sources=_coerce_json(row.get("cited_sources"), list),
        tokens_used=row.get("tokens_used") or 0,
        sent_at=row["sent_at"],
    )


def _coerce_json(value: Any, kind: type):
    """
    Psycopg JSONB usually arrives as Python objects, but some adapters hand back
    a JSON string. Normalize to `kind` (dict or list); anything unreadable becomes empty.
    """
    if isinstance(value, kind):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return kind()
        return parsed if isinstance(parsed, kind) else kind()
    return kind()


def make_chat_repo() -> ChatRepo:
    db_url = load_settings().database_url
    if db_url:
        return PostgresChatRepo(db_url)
    return InMemoryChatRepo()
