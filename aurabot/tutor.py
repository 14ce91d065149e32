from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from aurabot.chat_repo import ChatRepo
from aurabot.chat_store import ChatSession
from aurabot.config import Settings, load_settings
from aurabot.context import build_conversation_context, build_editor_context, build_retrieved_context
from aurabot.llm_client import ChatCompletionClient
from aurabot.prompts import PromptRegistry, compose_prompt
from aurabot.retrieval import DocumentRetriever, RetrievedDocument
from aurabot.schemas import (
    UNLIMITED_ATTEMPTS,
    AskFailure,
    AskResponse,
    HistoryMessage,
    SessionInfo,
    SessionStatus,
)
from aurabot.topics import extract_topics

logger = logging.getLogger(__name__)

PROCESSING_ERROR = "I apologize, but I encountered an error processing your question. Please try again."
NO_RESPONSE = "I apologize, but I could not generate a response."
QUESTION_HISTORY_SIZE = 10
CITATION_PREVIEW_CHARS = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuraBotTutor:
    """
    Runs one tutoring exchange end to end: session, history, retrieval, prompt,
    model call, persistence and progress tracking.

    Question limits are disabled, so every response reports UNLIMITED_ATTEMPTS
    and sessions are never blocked.
    """

    def __init__(
        self,
        repo: ChatRepo,
        retriever: DocumentRetriever,
        llm: ChatCompletionClient,
        settings: Settings | None = None,
        *,
        registry: PromptRegistry | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repo = repo
        self.retriever = retriever
        self.llm = llm
        self.settings = settings or load_settings()
        self.registry = registry
        self._clock = clock

    def process_question(
        self,
        session_id: str,
        question: str,
        html_context: str | None = None,
        instructions_context: str | None = None,
        feedback_context: str | None = None,
        user_id: int | None = None,
    ) -> AskResponse | AskFailure:
        try:
            session = self.repo.get_or_create(session_id, user_id)
            attempt_number = session.attempt_count + 1

            user_message_id = str(uuid.uuid4())
            assistant_message_id = str(uuid.uuid4())

            self.repo.save_user_message(
                session_id,
                user_message_id,
                question,
                user_id,
                html_context,
                instructions_context,
                {"attempt_number": attempt_number},
            )

            history = self.repo.get_recent_context(session_id, self.settings.history_limit)
            documents = self.retriever.search_relevant_documents(
                question,
                self.settings.rag_max_chunks,
                self.settings.rag_min_similarity,
                self.settings.rag_categories,
            )

            content, tokens_used = self._generate(
                question,
                editor_context=build_editor_context(html_context, instructions_context, feedback_context),
                conversation_context=build_conversation_context(history),
                retrieved_context=build_retrieved_context(documents),
                attempt_number=attempt_number,
            )

            self.repo.save_assistant_message(
                session_id,
                assistant_message_id,
                content,
                user_id,
                [_citation(doc) for doc in documents],
                tokens_used,
            )

            # Attempts are not incremented: questions are unlimited.
            self._update_progress(session, question)

            return AskResponse(
                response=content,
                messageId=assistant_message_id,
                remainingAttempts=UNLIMITED_ATTEMPTS,
                tokensUsed=tokens_used,
                retrievedSources=_unique_sources(documents),
                sessionInfo=SessionInfo(
                    attemptCount=session.attempt_count,
                    maxAttempts=UNLIMITED_ATTEMPTS,
                    isBlocked=False,
                ),
            )
        except Exception:
            logger.exception(
                "AuraBot processing error session_id=%s question_length=%d",
                session_id,
                len(question or ""),
                extra={"session_id": session_id, "question_length": len(question or "")},
            )
            return AskFailure(error=PROCESSING_ERROR, remainingAttempts=UNLIMITED_ATTEMPTS)

    def _generate(
        self,
        question: str,
        *,
        editor_context: str,
        conversation_context: str,
        retrieved_context: str,
        attempt_number: int,
    ) -> tuple[str, int]:
        bundle = compose_prompt(
            question,
            editor_context,
            conversation_context,
            retrieved_context,
            attempt_number=attempt_number,
            registry=self.registry,
        )
        response = self.llm.create_chat_completion(
            bundle.messages(),
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
        )

        choices = response.get("choices") or []
        message = (choices[0] or {}).get("message") if choices else None
        content = (message or {}).get("content") or NO_RESPONSE
        tokens_used = int((response.get("usage") or {}).get("total_tokens") or 0)
        return content, tokens_used

    def _update_progress(self, session: ChatSession, question: str) -> None:
        current: dict[str, Any] = dict(session.progress_data or {})
        topics = extract_topics(question)

        discussed = list(dict.fromkeys([*current.get("topics_discussed", []), *topics]))
        questions = [*current.get("question_history", []), question][-QUESTION_HISTORY_SIZE:]

        updated = {
            **current,
            "total_questions": int(current.get("total_questions", 0)) + 1,
            "topics_discussed": discussed,
            "last_question_topics": topics,
            "last_interaction": self._clock().isoformat(),
            "question_history": questions,
        }
        self.repo.update_progress(session, updated)

    def get_session_status(self, session_id: str) -> SessionStatus:
        session = self.repo.get(session_id)
        if session is None:
            return SessionStatus(exists=False, attemptCount=0)
        return SessionStatus(
            exists=True,
            attemptCount=session.attempt_count,
            progress=dict(session.progress_data or {}),
        )

    def get_conversation_history(self, session_id: str, limit: int = 20) -> list[HistoryMessage]:
        return [
            HistoryMessage(
                id=m.message_id,
                role=m.role,
                content=m.content,
                timestamp=m.sent_at.isoformat(),
                metadata=dict(m.metadata or {}),
            )
            for m in self.repo.get_session_history(session_id, limit)
        ]

    def reset_session(self, session_id: str) -> bool:
        session = self.repo.reset_attempts(session_id)
        if session is None:
            return False
        logger.info("Session reset session_id=%s", session_id)
        return True


def _citation(doc: RetrievedDocument) -> dict[str, Any]:
    return {
        "id": doc.id,
        "source": doc.source,
        "similarity_score": doc.similarity_score or 0,
        "chunk_text": doc.chunk_text[:CITATION_PREVIEW_CHARS] + "...",
    }


def _unique_sources(documents: Sequence[RetrievedDocument]) -> list[str]:
    return list(dict.fromkeys(doc.source for doc in documents))
