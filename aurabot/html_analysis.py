"""
Rule-based structural checklist over the student's editor HTML.

The fragment is parsed once into a MarkupIndex (BeautifulSoup, html.parser, which
accepts malformed markup), then each check_* predicate inspects it independently
and returns its findings. Body content checks only run when a non-empty <body> exists.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag
from bs4.builder import ParserRejectedMarkup

NO_EDITOR_CONTEXT = "⚠️ No editor context received."
NO_HTML_DETECTED = "⚠️ No HTML code detected in the editor context."
EMPTY_EDITOR = "📝 The editor appears to be empty. Student needs to start with basic HTML structure."
UNPARSEABLE = "⚠️ The HTML could not be parsed (check for badly broken markup)"

SEMANTIC_ELEMENTS = ("header", "nav", "main", "section", "article", "aside", "footer")

_FENCED_HTML = re.compile(r"```html\s*(.*?)\s*```", re.S)
_LABELED_HTML = re.compile(r"Current HTML code in editor:\s*(.*?)(?:Current instructions|$)", re.S)
_DOCTYPE_PREFIX = re.compile(r"^doctype\s*", re.I)
_MARKED_SECTION = re.compile(r"<!\[")


@dataclass(frozen=True)
class MarkupIndex:
    code: str
    soup: BeautifulSoup
    body: Tag | None

    @classmethod
    def parse(cls, code: str) -> "MarkupIndex":
        try:
            soup = BeautifulSoup(code, "html.parser")
        except ParserRejectedMarkup:
            # html.parser rejects some marked sections (e.g. "<![ if IE ]>"): keep them as
            # text and parse the rest. A second rejection propagates.
            soup = BeautifulSoup(_MARKED_SECTION.sub("&lt;![", code), "html.parser")
        return cls(code=code, soup=soup, body=soup.find("body"))


def extract_html(editor_context: str | None) -> str | None:
    """
    Locates the HTML fragment inside a formatted editor-context block:
    a ```html fence first, then the "Current HTML code in editor:" label.
    """
    if not editor_context:
        return None
    match = _FENCED_HTML.search(editor_context) or _LABELED_HTML.search(editor_context)
    if not match:
        return None
    return (match.group(1) or "").strip()


# --- document-level checks ---


def check_doctype(index: MarkupIndex) -> list[str]:
    for node in index.soup.descendants:
        if isinstance(node, Doctype) and _DOCTYPE_PREFIX.sub("", node.strip()).lower() == "html":
            return ["✅ Has DOCTYPE declaration (good start!)"]
    return ["❌ Missing DOCTYPE declaration"]


def check_html_root(index: MarkupIndex) -> list[str]:
    root = index.soup.find("html")
    if root is None:
        return ["❌ Missing <html> tag"]
    if root.has_attr("lang"):
        return ["✅ Has <html> tag", "✅ <html> has lang attribute (accessibility!)"]
    return ["✅ Has <html> tag", "💡 <html> missing lang attribute (accessibility)"]


def check_head(index: MarkupIndex) -> list[str]:
    head = index.soup.find("head")
    if head is None:
        return ["❌ Missing <head> section"]
    title = head.find("title")
    if title is None:
        return ["✅ Has <head> section", "❌ Missing <title> tag in <head>"]
    title_text = title.get_text().strip()
    if not title_text:
        return ["✅ Has <head> section", "💡 <title> tag exists but is empty"]
    return ["✅ Has <head> section", f'✅ Has <title>: "{title_text}"']


def check_body(index: MarkupIndex) -> list[str]:
    body = index.body
    if body is None:
        return ["❌ Missing <body> section"]
    if _is_blank(body):
        return ["✅ Has <body> section", "📝 <body> is empty or only contains comments"]
    findings = ["✅ Has <body> section"]
    findings.extend(check(body) for check in BODY_CHECKS)
    return findings


def check_line_breaks(index: MarkupIndex) -> list[str]:
    if index.soup.find("br") is not None:
        return ["⚠️ Uses <br> tags (consider paragraph structure)"]
    return []


def _is_blank(body: Tag) -> bool:
    for node in body.descendants:
        if isinstance(node, Tag):
            return False
        if isinstance(node, Comment):
            continue
        if isinstance(node, NavigableString) and node.strip():
            return False
    return True


# --- body content checks ---


def check_headings(body: Tag) -> str:
    if body.find(["h1", "h2", "h3", "h4", "h5", "h6"]) is not None:
        return "✅ Has heading elements"
    return "💡 No heading elements found"


def check_paragraphs(body: Tag) -> str:
    if body.find("p") is not None:
        return "✅ Has paragraph elements"
    return "💡 No paragraph elements found"


def check_images(body: Tag) -> str:
    images = body.find_all("img")
    if not images:
        return "💡 No images found"
    if any(img.has_attr("alt") for img in images):
        return "✅ Has image with alt text"
    return "⚠️ Has image but missing alt attribute"


def check_lists(body: Tag) -> str:
    if body.find(["ul", "ol"]) is not None:
        return "✅ Has list elements"
    return "💡 No list elements found"


def check_tables(body: Tag) -> str:
    if body.find("table") is not None:
        return "✅ Has table element"
    return "💡 No table elements found"


def check_forms(body: Tag) -> str:
    if body.find("form") is not None:
        return "✅ Has form element"
    return "💡 No form elements found"


def check_semantic_elements(body: Tag) -> str:
    found = [name for name in SEMANTIC_ELEMENTS if body.find(name) is not None]
    if found:
        return "✅ Has semantic elements: " + ", ".join(found)
    return "💡 No semantic HTML5 elements found"


DOCUMENT_CHECKS: tuple[Callable[[MarkupIndex], list[str]], ...] = (
    check_doctype,
    check_html_root,
    check_head,
    check_body,
    check_line_breaks,
)

BODY_CHECKS: tuple[Callable[[Tag], str], ...] = (
    check_headings,
    check_paragraphs,
    check_images,
    check_lists,
    check_tables,
    check_forms,
    check_semantic_elements,
)


def code_length_line(code: str) -> str:
    return f"CODE LENGTH: {len(code)} characters"


def html_findings(editor_context: str | None) -> list[str]:
    """
    Returns the ordered checklist for the HTML embedded in an editor-context block.

    Missing context, missing code and an empty editor each produce a single finding.
    Otherwise the list ends with the CODE LENGTH line.
    """
    if not (editor_context or "").strip():
        return [NO_EDITOR_CONTEXT]

    code = extract_html(editor_context)
    if code is None:
        return [NO_HTML_DETECTED]
    if not code:
        return [EMPTY_EDITOR]

    try:
        index = MarkupIndex.parse(code)
    except ParserRejectedMarkup:
        return [UNPARSEABLE, code_length_line(code)]

    findings: list[str] = []
    for check in DOCUMENT_CHECKS:
        findings.extend(check(index))
    findings.append(code_length_line(code))
    return findings


def analyze_editor_html(editor_context: str | None) -> str:
    """Renders html_findings() as the STRUCTURE ANALYSIS block used in the user prompt."""
    findings = html_findings(editor_context)
    if len(findings) == 1:
        return findings[0]
    *checks, length_line = findings
    return "STRUCTURE ANALYSIS:\n" + "\n".join(checks) + "\n\n" + length_line
