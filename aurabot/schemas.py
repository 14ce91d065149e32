from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

# Question limits are disabled; this value stands for "unlimited".
UNLIMITED_ATTEMPTS = 999


class AskRequest(BaseModel):
    sessionId: str = Field(..., min_length=1)
    question: str = Field(..., min_length=1, description="The student's question")
    htmlContext: str | None = Field(None, description="Current HTML code in the editor")
    instructionsContext: str | None = Field(None, description="Activity instructions shown to the student")
    feedbackContext: str | None = Field(None, description="Feedback from the previous submission")
    userId: int | None = None


class SessionInfo(BaseModel):
    attemptCount: int
    maxAttempts: int = UNLIMITED_ATTEMPTS
    isBlocked: bool = False


class AskResponse(BaseModel):
    success: Literal[True] = True
    response: str
    messageId: str
    remainingAttempts: int = UNLIMITED_ATTEMPTS
    tokensUsed: int
    retrievedSources: list[str] = Field(default_factory=list)
    sessionInfo: SessionInfo


class AskFailure(BaseModel):
    success: Literal[False] = False
    error: str
    remainingAttempts: int = UNLIMITED_ATTEMPTS


class SessionStatus(BaseModel):
    exists: bool
    canAsk: bool = True
    remainingAttempts: int = UNLIMITED_ATTEMPTS
    attemptCount: int = 0
    isBlocked: bool = False
    blockedUntil: str | None = None
    progress: dict[str, Any] = Field(default_factory=dict)


class HistoryMessage(BaseModel):
    id: str
    role: str
    content: str
    timestamp: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class HistoryResponse(BaseModel):
    sessionId: str
    messages: list[HistoryMessage]


class ResetResponse(BaseModel):
    reset: bool
