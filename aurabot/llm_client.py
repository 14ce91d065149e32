from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

import httpx
from google import genai
from google.genai import types

from aurabot.config import _env

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    pass


class ChatCompletionClient(Protocol):
    def create_chat_completion(
        self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float
    ) -> dict[str, Any]:
        """
        Returns the chat-completion shape:
        {"choices": [{"message": {"content": ...}}], "usage": {"total_tokens": n}}
        """
        ...


def _completion(content: str | None, total_tokens: int | None) -> dict[str, Any]:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"total_tokens": total_tokens or 0},
    }


def _is_model_not_found(err: Exception) -> bool:
    msg = str(err)
    return "NOT_FOUND" in msg and ("not found" in msg or "Publisher Model" in msg or "models/" in msg)


class GeminiClient:
    """
    Supports two modes:
    - Vertex AI mode (recommended on Cloud Run): GOOGLE_CLOUD_PROJECT + GOOGLE_CLOUD_LOCATION
    - API key mode (local/dev): GOOGLE_API_KEY
    """

    FALLBACK_MODELS = ("gemini-2.5-flash", "gemini-2.0-flash", "gemini-2.5-pro")

    def __init__(self) -> None:
        # Model availability varies by project/region; GEMINI_MODEL overrides the default.
        self.model = _env("GEMINI_MODEL", "gemini-2.5-flash")

        api_key = _env("GOOGLE_API_KEY")
        project = _env("GOOGLE_CLOUD_PROJECT")
        location = _env("GOOGLE_CLOUD_LOCATION", "us-central1")

        if api_key:
            self.client = genai.Client(api_key=api_key)
        elif project:
            # Uses ADC (service account) on Cloud Run
            self.client = genai.Client(vertexai=True, project=project, location=location)
        else:
            raise LLMError(
                "Missing config: set GOOGLE_API_KEY (local) or GOOGLE_CLOUD_PROJECT (+ optional GOOGLE_CLOUD_LOCATION) (Vertex/Cloud Run)."
            )

    @staticmethod
    def _split_messages(messages: list[dict[str, str]]) -> tuple[str | None, list[types.Content]]:
        system_parts: list[str] = []
        contents: list[types.Content] = []
        for m in messages:
            role = m.get("role")
            text = m.get("content") or ""
            if role == "system":
                system_parts.append(text)
                continue
            contents.append(
                types.Content(role="model" if role == "assistant" else "user", parts=[types.Part(text=text)])
            )
        return ("\n\n".join(system_parts) or None), contents

    def create_chat_completion(
        self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float
    ) -> dict[str, Any]:
        system, contents = self._split_messages(messages)
        config = types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=max_tokens,
            temperature=temperature,
        )

        candidates: list[str] = [self.model]
        candidates.extend(m for m in self.FALLBACK_MODELS if m not in candidates)

        last_err: Exception | None = None
        for m in candidates:
            try:
                resp = self.client.models.generate_content(model=m, contents=contents, config=config)
            except Exception as e:
                # Only fall through to the next model when this one does not exist / is not enabled.
                if not _is_model_not_found(e):
                    raise LLMError(f"Gemini call failed: {e}") from e
                logger.warning("Gemini model %s unavailable, trying next candidate", m)
                last_err = e
                continue

            usage = getattr(resp, "usage_metadata", None)
            total = getattr(usage, "total_token_count", None) if usage is not None else None
            return _completion(resp.text, total)

        raise LLMError(f"All model candidates failed. Last error: {last_err}")


class NebiusClient:
    """
    OpenAI-compatible chat completions (Nebius AI Studio by default).
    Requires NEBIUS_API_KEY.
    """

    def __init__(self, *, timeout: float = 60) -> None:
        api_key = _env("NEBIUS_API_KEY")
        if not api_key:
            raise LLMError("Missing config: set NEBIUS_API_KEY.")
        self._api_key = api_key
        self.base_url = (_env("NEBIUS_BASE_URL", "https://api.studio.nebius.com/v1") or "").rstrip("/")
        self.model = _env("NEBIUS_MODEL", "meta-llama/Meta-Llama-3.1-70B-Instruct")
        self.timeout = timeout

    def create_chat_completion(
        self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float
    ) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                r = client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"},
                    json={
                        "model": self.model,
                        "messages": messages,
                        "max_tokens": max_tokens,
                        "temperature": temperature,
                    },
                )
        except httpx.HTTPError as e:
            raise LLMError(f"Chat completion request failed: {e}") from e

        if r.status_code >= 400:
            raise LLMError(f"Chat completion failed: {r.status_code} {r.text[:500]}")
        data = r.json()
        if not isinstance(data, dict):
            raise LLMError(f"Unexpected chat completion payload: {str(data)[:500]}")
        return data


def make_chat_client() -> ChatCompletionClient:
    if _env("NEBIUS_API_KEY"):
        return NebiusClient()
    return GeminiClient()


class LazyChatClient:
    """
    Defers building the real client to the first completion, so missing credentials
    surface as a failed request instead of a failed startup.
    """

    def __init__(self, factory: Callable[[], ChatCompletionClient] = make_chat_client) -> None:
        self._factory = factory
        self._client: ChatCompletionClient | None = None

    def create_chat_completion(
        self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float
    ) -> dict[str, Any]:
        if self._client is None:
            self._client = self._factory()
        return self._client.create_chat_completion(messages, max_tokens=max_tokens, temperature=temperature)
