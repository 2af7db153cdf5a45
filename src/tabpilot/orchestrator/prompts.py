from __future__ import annotations

import json
from typing import Any

from tabpilot.core.types import PageContext

ANALYZE_SYSTEM = "Analyze this webpage structure and provide insights."

SUMMARIZE_SYSTEM = (
    "You summarize web pages. Give a short overview of what the page is about, "
    "then the key points as a brief bulleted list. Do not invent content that is not on the page."
)

_CAPABILITIES = """You can:
- Click elements by description
- Fill form fields
- Scroll pages
- Find and highlight text
- Extract structured data
- Answer questions about page content

When suggesting actions:
1. Explain what you will do
2. Use tools to execute actions
3. Confirm success or explain failures

Be concise, helpful, and accurate. If uncertain, ask for clarification."""

_HINTS = (
    ("hasLoginForm", "a login form"),
    ("hasSearch", "a search box"),
    ("hasNavigation", "a navigation menu"),
)


def build_system_prompt(page: PageContext | None) -> str:
    """Per-turn system prompt. Rebuilt every turn from the latest page context."""

    page = page or PageContext()
    lines = [
        "You are an AI web browsing assistant. You help users navigate, understand, and interact with web pages.",
        "",
        f"Current page: {page.title or 'Unknown'}",
        f"URL: {page.url or 'Unknown'}",
    ]

    structure = page.structure or {}
    present = [label for key, label in _HINTS if structure.get(key)]
    if present:
        lines.append(f"The page has {', '.join(present)}.")

    if page.headings:
        lines.append("")
        lines.append("Page headings:")
        lines.extend(f"- {h}" for h in page.headings[:10])

    lines.append("")
    lines.append(_CAPABILITIES)
    return "\n".join(lines)


def analyze_prompt(structure: dict[str, Any]) -> str:
    return f"Analyze this page structure:\n{json.dumps(structure, indent=2, ensure_ascii=False)}"


def summarize_prompt(title: str | None, url: str | None, body: str) -> str:
    return f"Title: {title or 'Unknown'}\nURL: {url or 'Unknown'}\n\nPage text:\n{body}"
