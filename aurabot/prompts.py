from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml

from aurabot.html_analysis import analyze_editor_html

TEMPLATES_DIR = Path(__file__).with_name("templates")

PERSONA_TEMPLATE = "persona/v1.yaml"
USER_TURN_TEMPLATE = "user_turn/v1.yaml"

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class PromptNotFound(Exception):
    pass


class PromptRegistry:
    """
    Loads and renders versioned prompts (templates/<name>/v<N>.yaml).
    """

    def __init__(self, base_dir: str | Path = TEMPLATES_DIR):
        self.base_dir = Path(base_dir)

    def load(self, relative_path: str) -> dict:
        """
        Example: persona/v1.yaml
        """
        path = self.base_dir / relative_path

        if not path.exists():
            raise PromptNotFound(f"Prompt not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def render(self, relative_path: str, **variables: object) -> str:
        template = self.load(relative_path).get("template")
        if not template:
            raise ValueError(f"Prompt template missing in {relative_path}")

        def substitute(match: re.Match) -> str:
            key = match.group(1)
            if key not in variables:
                raise ValueError(f"Missing prompt variable '{key}' for {relative_path}")
            return str(variables[key])

        # Single pass: substituted values are never re-scanned for placeholders.
        return _PLACEHOLDER.sub(substitute, template).rstrip("\n")


@lru_cache(maxsize=1)
def default_registry() -> PromptRegistry:
    return PromptRegistry()


@dataclass(frozen=True)
class PromptBundle:
    system: str
    user: str

    def messages(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


def build_system_prompt(attempt_number: int, registry: PromptRegistry | None = None) -> str:
    registry = registry or default_registry()
    return registry.render(PERSONA_TEMPLATE, attempt_number=attempt_number)


def build_user_prompt(
    question: str,
    editor_context: str,
    conversation_context: str,
    retrieved_context: str,
    registry: PromptRegistry | None = None,
) -> str:
    registry = registry or default_registry()
    return registry.render(
        USER_TURN_TEMPLATE,
        question=question,
        conversation_context=conversation_context,
        retrieved_context=retrieved_context,
        editor_context=editor_context,
        html_analysis=analyze_editor_html(editor_context),
    )


def compose_prompt(
    question: str,
    editor_context: str,
    conversation_context: str,
    retrieved_context: str,
    *,
    attempt_number: int = 1,
    registry: PromptRegistry | None = None,
) -> PromptBundle:
    return PromptBundle(
        system=build_system_prompt(attempt_number, registry),
        user=build_user_prompt(question, editor_context, conversation_context, retrieved_context, registry),
    )
