from __future__ import annotations

# topic -> keyword variants, checked in order
TOPIC_KEYWORDS: dict[str, tuple[str, ...]] = {
    "html": ("html", "element", "tag", "markup", "structure"),
    "css": ("css", "style", "styling", "color", "font", "layout"),
    "flexbox": ("flexbox", "flex", "flexible"),
    "grid": ("grid", "css grid", "grid layout"),
    "responsive": ("responsive", "mobile", "media query", "breakpoint"),
    "semantic": ("semantic", "accessibility", "aria", "alt"),
    "forms": ("form", "input", "button", "textarea", "select"),
    "javascript": ("javascript", "js", "script", "dom"),
    "debugging": ("error", "bug", "fix", "debug", "problem", "issue"),
    "best_practices": ("best practice", "convention", "standard", "clean code"),
}


def extract_topics(question: str) -> list[str]:
    """
    Returns the topics whose keywords occur (case-insensitive substring) in the question.
    Each topic appears at most once, in TOPIC_KEYWORDS order.
    """
    lowered = (question or "").lower()
    if not lowered:
        return []
    return [
        topic
        for topic, keywords in TOPIC_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    ]
