from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware

from aurabot.chat_repo import PostgresChatRepo, make_chat_repo
from aurabot.config import configure_logging, load_settings
from aurabot.llm_client import LazyChatClient
from aurabot.retrieval import PostgresDocumentRetriever, make_retriever
from aurabot.schemas import (
    AskFailure,
    AskRequest,
    AskResponse,
    HistoryResponse,
    ResetResponse,
    SessionStatus,
)
from aurabot.tutor import AuraBotTutor

configure_logging()

app = FastAPI(title="AuraBot Tutoring API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_tutor() -> AuraBotTutor:
    settings = load_settings()
    return AuraBotTutor(
        repo=make_chat_repo(),
        retriever=make_retriever(settings),
        llm=LazyChatClient(),
        settings=settings,
    )


@app.on_event("startup")
def _startup() -> None:
    if not load_settings().database_url:
        return
    tutor = get_tutor()
    if isinstance(tutor.repo, PostgresChatRepo):
        tutor.repo.ensure_schema()
    if isinstance(tutor.retriever, PostgresDocumentRetriever):
        tutor.retriever.ensure_schema()


@app.get("/")
def root() -> dict:
    return {
        "ok": True,
        "service": "aurabot",
        "endpoints": [
            "/health",
            "/chat/ask",
            "/chat/sessions/{sessionId}",
            "/chat/sessions/{sessionId}/history",
            "/chat/sessions/{sessionId}/reset",
        ],
        "docs": "/docs",
    }


@app.get("/health")
def health() -> dict:
    return {"ok": True}


@app.post("/chat/ask", response_model=AskResponse | AskFailure)
def chat_ask(req: AskRequest, tutor: AuraBotTutor = Depends(get_tutor)) -> AskResponse | AskFailure:
    # Failures come back as AskFailure (success=false) with HTTP 200.
    return tutor.process_question(
        req.sessionId,
        req.question,
        html_context=req.htmlContext,
        instructions_context=req.instructionsContext,
        feedback_context=req.feedbackContext,
        user_id=req.userId,
    )


@app.get("/chat/sessions/{session_id}", response_model=SessionStatus)
def chat_session_status(session_id: str, tutor: AuraBotTutor = Depends(get_tutor)) -> SessionStatus:
    return tutor.get_session_status(session_id)


@app.get("/chat/sessions/{session_id}/history", response_model=HistoryResponse)
def chat_session_history(
    session_id: str,
    limit: int = Query(20, ge=1, le=200),
    tutor: AuraBotTutor = Depends(get_tutor),
) -> HistoryResponse:
    return HistoryResponse(sessionId=session_id, messages=tutor.get_conversation_history(session_id, limit))


@app.post("/chat/sessions/{session_id}/reset", response_model=ResetResponse)
def chat_session_reset(session_id: str, tutor: AuraBotTutor = Depends(get_tutor)) -> ResetResponse:
    return ResetResponse(reset=tutor.reset_session(session_id))
