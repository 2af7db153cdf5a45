"""Natural-language element resolution.

Clickable targets are resolved by an ordered cascade; the first step that
yields an element wins:

1. explicit CSS selector, when supplied (invalid selectors fall through);
2. substring of an element's own text;
3. aria-label / aria-labelledby, case-insensitive;
4. fuzzy keywords over visible interactive elements.

Form fields use the label/placeholder/name cascade instead. A resolved element
that is not visible is reported as ElementNotVisible; there is no backtracking
to a later step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tabpilot.core.errors import ElementNotFound, ElementNotVisible
from tabpilot.observability.logging import get_logger

from .document import DocumentHandle, ElementHandle

CLICK_CANDIDATES = 'button, a, input, [role="button"]'
FORM_CONTROLS = "input, textarea, select"
# Never rendered, so never a click target by text.
_TEXTLESS_TAGS = {"html", "head", "title", "meta", "link", "base", "script", "style", "noscript", "template"}


@dataclass(frozen=True, slots=True)
class Resolution:
    element: ElementHandle
    method: str


async def describe_element(el: ElementHandle | None) -> dict[str, Any] | None:
    if el is None:
        return None
    text = (await el.text())[:100]
    return {
        "tag": el.tag,
        "id": await el.attribute("id") or None,
        "class": await el.attribute("class") or None,
        "text": text or None,
        "type": await el.attribute("type") or None,
        "name": await el.attribute("name") or None,
    }


class ElementResolver:
    def __init__(self, document: DocumentHandle) -> None:
        self._doc = document
        self._log = get_logger("tabpilot.page.resolver")

    async def resolve_clickable(self, description: str, selector: str | None = None) -> Resolution:
        steps = (
            ("selector", lambda: self._by_selector(selector)),
            ("text", lambda: self._by_own_text(description)),
            ("aria", lambda: self._by_aria(description)),
            ("fuzzy", lambda: self._by_keywords(description)),
        )
        return await self._run(steps, description=description, selector=selector)

    async def resolve_field(self, description: str, selector: str | None = None) -> Resolution:
        steps = (
            ("selector", lambda: self._by_selector(selector)),
            ("label", lambda: self._by_label(description)),
            ("placeholder", lambda: self._by_placeholder(description)),
            ("name/id", lambda: self._by_name_or_id(description)),
            ("aria", lambda: self._by_aria(description)),
        )
        return await self._run(steps, description=description, selector=selector)

    async def _run(self, steps: Any, *, description: str, selector: str | None) -> Resolution:
        for method, step in steps:
            element = await step()
            if element is None:
                continue

            self._log.debug("element_resolved", method=method, description=description)
            if not await element.is_visible():
                raise ElementNotVisible(
                    f'Element found but not visible: "{description}"',
                    details={"element": await describe_element(element), "method": method},
                )
            return Resolution(element=element, method=method)

        raise ElementNotFound(
            f'Could not find element matching: "{description}"',
            details={"attempted": {"description": description, "selector": selector}},
        )

    async def _by_selector(self, selector: str | None) -> ElementHandle | None:
        if not selector:
            return None
        try:
            return await self._doc.query(selector)
        except Exception as e:  # noqa: BLE001
            # Model-written selectors are often invalid; fall back to the description.
            self._log.info("selector_rejected", selector=selector, error=str(e))
            return None

    async def _by_own_text(self, description: str) -> ElementHandle | None:
        if not description:
            return None
        for el in await self._doc.query_all("*"):
            if el.tag in _TEXTLESS_TAGS:
                continue
            if description in await el.own_text():
                return el
        return None

    async def _by_aria(self, description: str) -> ElementHandle | None:
        needle = description.lower().strip()
        if not needle:
            return None
        for el in await self._doc.query_all("[aria-label], [aria-labelledby]"):
            for attr in ("aria-label", "aria-labelledby"):
                value = await el.attribute(attr)
                if value and needle in value.lower():
                    return el
        return None

    async def _by_keywords(self, description: str) -> ElementHandle | None:
        keywords = description.lower().split()
        if not keywords:
            return None
        for el in await self._doc.query_all(CLICK_CANDIDATES):
            if not await el.is_visible():
                continue
            text = (await el.text()) or (await el.value()) or (await el.attribute("aria-label")) or ""
            text = text.lower()
            if any(kw in text for kw in keywords):
                return el
        return None

    async def _by_label(self, description: str) -> ElementHandle | None:
        needle = description.lower()
        for label in await self._doc.query_all("label"):
            if needle not in (await label.text()).lower():
                continue
            for_id = await label.attribute("for")
            if for_id:
                return await self._doc.get_by_id(for_id)
            nested = await label.query_all(FORM_CONTROLS)
            return nested[0] if nested else None
        return None

    async def _by_placeholder(self, description: str) -> ElementHandle | None:
        needle = description.lower()
        for el in await self._doc.query_all("[placeholder]"):
            placeholder = await el.attribute("placeholder") or ""
            if needle in placeholder.lower():
                return el
        return None

    async def _by_name_or_id(self, description: str) -> ElementHandle | None:
        needle = description.lower()
        for el in await self._doc.query_all(FORM_CONTROLS):
            name = (await el.attribute("name") or "").lower()
            el_id = (await el.attribute("id") or "").lower()
            if (name and needle in name) or (el_id and needle in el_id):
                return el
        return None
