from __future__ import annotations

import pytest

from aurabot.context import (
    CONVERSATION_START,
    NO_EDITOR_CONTENT,
    NO_RETRIEVED_CONTENT,
    build_conversation_context,
    build_editor_context,
    build_retrieved_context,
)
from aurabot.html_analysis import NO_HTML_DETECTED
from aurabot.prompts import PromptNotFound, PromptRegistry, build_system_prompt, compose_prompt


def test_empty_state_prompt_carries_all_sentinels():
    question = 'Why won\'t my "page" show a title?'
    bundle = compose_prompt(
        question,
        build_editor_context(),
        build_conversation_context([]),
        build_retrieved_context([]),
    )

    assert f'"{question}"' in bundle.user
    for sentence in (NO_RETRIEVED_CONTENT, CONVERSATION_START, NO_EDITOR_CONTENT, NO_HTML_DETECTED):
        assert sentence in bundle.user


def test_user_prompt_includes_structure_analysis():
    bundle = compose_prompt(
        "Is my code ok?",
        build_editor_context(html_context="<body><img src='cat.png'></body>"),
        build_conversation_context([]),
        build_retrieved_context([]),
    )

    assert "STRUCTURE ANALYSIS:" in bundle.user
    assert "⚠️ Has image but missing alt attribute" in bundle.user


def test_system_prompt_is_persona_with_attempt_number():
    system = build_system_prompt(3)

    assert system.startswith("You are AuraBot")
    assert "question #3" in system
    assert "{{" not in system


def test_compose_is_deterministic_and_ordered():
    args = ("q", build_editor_context(), build_conversation_context([]), build_retrieved_context([]))
    first = compose_prompt(*args, attempt_number=2)

    assert first == compose_prompt(*args, attempt_number=2)
    assert [m["role"] for m in first.messages()] == ["system", "user"]
    assert first.user.index(CONVERSATION_START) < first.user.index(NO_RETRIEVED_CONTENT) < first.user.index(NO_HTML_DETECTED)


def test_placeholders_inside_values_are_not_expanded():
    bundle = compose_prompt(
        "what does {{ retrieved_context }} mean?",
        build_editor_context(),
        build_conversation_context([]),
        build_retrieved_context([]),
    )
    assert "what does {{ retrieved_context }} mean?" in bundle.user


def test_registry_errors(tmp_path):
    registry = PromptRegistry(tmp_path)
    with pytest.raises(PromptNotFound):
        registry.load("persona/v9.yaml")

    (tmp_path / "greeting").mkdir()
    (tmp_path / "greeting" / "v1.yaml").write_text("template: 'Hello {{ name }}'\n", encoding="utf-8")
    assert registry.render("greeting/v1.yaml", name="Ada") == "Hello Ada"
    with pytest.raises(ValueError):
        registry.render("greeting/v1.yaml")
