from __future__ import annotations

import time
from typing import Any

from tabpilot.core.config import ExecutorConfig

from .document import DocumentHandle, ElementHandle

INTERACTIVE_SELECTORS = (
    "button",
    "a[href]",
    "input",
    "textarea",
    "select",
    '[role="button"]',
    '[role="link"]',
    '[role="textbox"]',
    "[onclick]",
    '[tabindex]:not([tabindex="-1"])',
)

CONTENT_SELECTORS = ("main", "article", '[role="main"]', ".content", "#content", ".main")

NAVIGATION_SELECTOR = 'nav, [role="navigation"], header, .nav, .navbar, #nav'

SEARCH_SELECTOR = 'input[type="search"], input[name*="search"], input[placeholder*="search" i]'


async def element_info(el: ElementHandle, *, include_text: bool = False) -> dict[str, Any]:
    box = await el.bounding_box() or {}
    classes = await el.attribute("class") or ""
    info: dict[str, Any] = {
        "tag": el.tag,
        "id": await el.attribute("id") or None,
        "classes": classes.split(),
        "ariaLabel": await el.attribute("aria-label") or None,
        "ariaRole": await el.attribute("role") or None,
        "placeholder": await el.attribute("placeholder") or None,
        "name": await el.attribute("name") or None,
        "type": await el.attribute("type") or None,
        "href": await el.link("href"),
        "src": await el.link("src"),
        "visible": await el.is_visible(),
        "position": {
            "top": round(box.get("y", 0)),
            "left": round(box.get("x", 0)),
            "width": round(box.get("width", 0)),
            "height": round(box.get("height", 0)),
        },
    }
    if include_text:
        info["text"] = (await el.text())[:200]
    return info


async def _meta_content(document: DocumentHandle, name: str) -> str | None:
    el = await document.query(f'meta[name="{name}"]')
    if el is None:
        return None
    return await el.attribute("content") or None


async def build_structure(document: DocumentHandle, cfg: ExecutorConfig) -> dict[str, Any]:
    """Structural snapshot of the loaded document.

    Produced fresh on every call; nothing here is cached.
    """

    interactive: list[dict[str, Any]] = []
    for el in await document.query_all(", ".join(INTERACTIVE_SELECTORS)):
        if len(interactive) >= cfg.max_interactive:
            break
        if await el.is_visible():
            interactive.append(await element_info(el))

    forms: list[dict[str, Any]] = []
    for form in await document.query_all("form"):
        fields = []
        for field in await form.query_all("input, select, textarea, button"):
            if await field.attribute("name") or await field.attribute("id"):
                fields.append(await element_info(field, include_text=True))
        forms.append(
            {
                **await element_info(form),
                "action": await form.link("action"),
                "method": (await form.attribute("method") or "get").lower(),
                "fields": fields,
            }
        )

    content_areas = 0
    for sel in CONTENT_SELECTORS:
        if await document.query(sel) is not None:
            content_areas += 1

    headings: list[dict[str, Any]] = []
    for h in await document.query_all("h1, h2, h3, h4, h5, h6"):
        if not await h.is_visible():
            continue
        headings.append({"level": int(h.tag[1]), "text": (await h.text())[:200], **await element_info(h)})

    navigation = [await element_info(el, include_text=True) for el in await document.query_all(NAVIGATION_SELECTOR)]

    body = await document.body_text()

    return {
        "url": await document.url(),
        "title": await document.title(),
        "meta": {
            "description": await _meta_content(document, "description"),
            "keywords": await _meta_content(document, "keywords"),
            "author": await _meta_content(document, "author"),
        },
        "structure": {
            "hasLoginForm": await document.query('input[type="password"]') is not None,
            "hasSearch": await document.query(SEARCH_SELECTOR) is not None,
            "hasNavigation": bool(navigation),
            "contentAreas": content_areas,
        },
        "headings": headings[:20],
        "interactive": {
            "total": len(interactive),
            "buttons": sum(1 for el in interactive if el["tag"] == "button" or el["ariaRole"] == "button"),
            "links": [el for el in interactive if el["tag"] == "a"][:30],
            "inputs": [el for el in interactive if el["tag"] in ("input", "textarea", "select")][:20],
            "elements": interactive[:50],
        },
        "forms": forms,
        "navigation": navigation,
        "textContent": {
            "body": body[: cfg.body_text_limit],
            "wordCount": len(body.split()),
        },
        "timestamp": time.time(),
    }
