"""Static-HTML document adapter over BeautifulSoup.

Visibility is approximated from markup alone: the `hidden` attribute, inline
`display:none` / `visibility:hidden` / `opacity:0`, hidden inputs and
non-rendered containers, checked up the ancestor chain. Layout is synthetic:
elements are stacked in document order and scrolling is tracked virtually.
Interactions mutate the tree and are recorded on the document (`events`,
`navigations`, `focused`) so callers can observe what happened.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, NavigableString, Tag

_NOT_RENDERED = {"script", "style", "noscript", "template", "head"}
_HIDDEN_STYLE = re.compile(
    r"(?:display\s*:\s*none|visibility\s*:\s*hidden|opacity\s*:\s*0(?:\.0*)?\s*(?:;|$))",
    re.IGNORECASE,
)
_ROW_HEIGHT = 24


def _hidden_self(tag: Tag) -> bool:
    if tag.name in _NOT_RENDERED or tag.has_attr("hidden"):
        return True
    if tag.name == "input" and str(tag.get("type", "")).lower() == "hidden":
        return True
    return bool(_HIDDEN_STYLE.search(str(tag.get("style", ""))))


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _rendered_text(node: Tag) -> str:
    parts: list[str] = []
    for child in node.children:
        if isinstance(child, Tag):
            if not _hidden_self(child):
                parts.append(_rendered_text(child))
        elif type(child) is NavigableString:
            parts.append(str(child))
    return " ".join(parts)


def _attr_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return " ".join(value)
    return str(value)


class SoupElement:
    def __init__(self, document: SoupDocument, node: Tag) -> None:
        self._doc = document
        self._node = node

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SoupElement) and other._node is self._node

    def __hash__(self) -> int:
        return id(self._node)

    def __repr__(self) -> str:
        return f"SoupElement(<{self._node.name}>)"

    @property
    def node(self) -> Tag:
        return self._node

    @property
    def tag(self) -> str:
        return (self._node.name or "").lower()

    async def attribute(self, name: str) -> str | None:
        return _attr_text(self._node.get(name))

    async def text(self) -> str:
        if _hidden_self(self._node) and self.tag not in ("option",):
            return ""
        return _collapse(_rendered_text(self._node))

    async def own_text(self) -> str:
        return _collapse("".join(str(c) for c in self._node.children if type(c) is NavigableString))

    async def html(self) -> str:
        return self._node.decode_contents()

    async def value(self) -> str | None:
        if self.tag == "input":
            return str(self._node.get("value", ""))
        if self.tag == "textarea":
            return self._node.get_text()
        if self.tag == "select":
            options = self._node.find_all("option")
            chosen = next((o for o in options if o.has_attr("selected")), options[0] if options else None)
            if chosen is None:
                return ""
            return str(chosen.get("value", _collapse(chosen.get_text())))
        return None

    async def link(self, name: str) -> str | None:
        raw = _attr_text(self._node.get(name))
        if raw is None:
            return None
        return urljoin(self._doc.base_url, raw)

    async def is_visible(self) -> bool:
        return self._doc.is_rendered(self._node)

    async def bounding_box(self) -> dict[str, float] | None:
        if not self._doc.is_rendered(self._node):
            return None
        return {"x": 0.0, "y": float(self._doc.offset_of(self._node)), "width": 100.0, "height": float(_ROW_HEIGHT)}

    async def scroll_into_view(self) -> None:
        center = self._doc.offset_of(self._node) + _ROW_HEIGHT / 2
        await self._doc.scroll_to(center - self._doc.viewport_height / 2)

    async def highlight(self) -> None:
        self._doc.events.append(("highlight", self))

    async def focus(self) -> None:
        self._doc.focused = self

    async def click(self) -> None:
        if self._node.has_attr("disabled"):
            raise RuntimeError(f"<{self.tag}> is disabled")
        self._doc.events.append(("click", self))

        if self.tag == "input" and str(self._node.get("type", "")).lower() in ("checkbox", "radio"):
            if self._node.has_attr("checked"):
                del self._node["checked"]
            else:
                self._node["checked"] = ""
        elif self.tag == "a" and self._node.has_attr("href"):
            self._doc.navigations.append(await self.link("href"))

    async def set_value(self, value: str) -> None:
        if self.tag == "textarea":
            self._node.string = value
        elif self.tag == "select":
            options = self._node.find_all("option")
            target = next((o for o in options if str(o.get("value", _collapse(o.get_text()))) == value), None)
            if target is None:
                raise ValueError(f"No option with value {value!r}")
            for option in options:
                if option.has_attr("selected"):
                    del option["selected"]
            target["selected"] = ""
        else:
            self._node["value"] = value

    async def options(self) -> list[tuple[str, str]]:
        if self.tag != "select":
            return []
        pairs = []
        for option in self._node.find_all("option"):
            text = _collapse(option.get_text())
            pairs.append((text, str(option.get("value", text))))
        return pairs

    async def dispatch_event(self, event_type: str) -> None:
        self._doc.events.append((event_type, self))

    async def query_all(self, selector: str) -> list[SoupElement]:
        return [SoupElement(self._doc, t) for t in self._node.select(selector)]


class SoupDocument:
    def __init__(
        self,
        html: str,
        *,
        url: str = "about:blank",
        viewport_height: int = 800,
        page_height: int = 3000,
    ) -> None:
        self._soup = BeautifulSoup(html, "html.parser")
        self._url = url
        self.viewport_height = viewport_height
        self.page_height = page_height
        self.scroll_y = 0.0
        self.selection = ""
        self.focused: SoupElement | None = None
        self.events: list[tuple[str, SoupElement]] = []
        self.navigations: list[str] = []

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    @property
    def base_url(self) -> str:
        base = self._soup.find("base", href=True)
        if base is not None:
            return urljoin(self._url, str(base["href"]))
        return self._url

    def is_rendered(self, node: Tag) -> bool:
        current: Any = node
        while isinstance(current, Tag) and not isinstance(current, BeautifulSoup):
            if _hidden_self(current):
                return False
            current = current.parent
        return True

    def offset_of(self, node: Tag) -> int:
        for index, tag in enumerate(self._soup.find_all(True)):
            if tag is node:
                return index * _ROW_HEIGHT
        return 0

    def _wrap(self, node: Tag | None) -> SoupElement | None:
        return SoupElement(self, node) if node is not None else None

    async def url(self) -> str:
        return self._url

    async def title(self) -> str:
        if self._soup.title is None:
            return ""
        return _collapse(self._soup.title.get_text())

    async def query(self, selector: str) -> SoupElement | None:
        return self._wrap(self._soup.select_one(selector))

    async def query_all(self, selector: str) -> list[SoupElement]:
        return [SoupElement(self, t) for t in self._soup.select(selector)]

    async def get_by_id(self, element_id: str) -> SoupElement | None:
        return self._wrap(self._soup.find(id=element_id))

    async def scroll_by(self, dy: float) -> None:
        await self.scroll_to(self.scroll_y + dy)

    async def scroll_to(self, y: float) -> None:
        _, max_scroll = await self.scroll_metrics()
        self.scroll_y = float(min(max(0.0, y), max_scroll))

    async def scroll_metrics(self) -> tuple[float, float]:
        return self.scroll_y, float(max(0, self.page_height - self.viewport_height))

    async def mark_text(self, pattern: re.Pattern[str], css_class: str) -> list[dict[str, Any]]:
        hits: list[dict[str, Any]] = []
        seen: set[int] = set()
        for node in list(self._soup.find_all(string=True)):
            if type(node) is not NavigableString:
                continue
            parent = node.parent
            if parent is None or not self.is_rendered(parent):
                continue

            text = str(node)
            if pattern.search(text) is None:
                continue

            pieces: list[Any] = []
            pos = 0
            for match in pattern.finditer(text):
                if match.start() > pos:
                    pieces.append(NavigableString(text[pos : match.start()]))
                mark = self._soup.new_tag("mark", attrs={"class": css_class})
                mark.string = match.group(0)
                pieces.append(mark)
                pos = match.end()
            if pos < len(text):
                pieces.append(NavigableString(text[pos:]))

            node.replace_with(*pieces)
            # One hit per element, however many of its text nodes matched.
            if id(parent) in seen:
                continue
            seen.add(id(parent))
            hits.append({"text": text, "element": SoupElement(self, parent)})
        return hits

    async def clear_marks(self, css_class: str) -> int:
        count = 0
        for mark in self._soup.select(f"mark.{css_class}"):
            parent = mark.parent
            mark.unwrap()
            if parent is not None:
                parent.smooth()
            count += 1
        return count

    async def navigate(self, url: str) -> None:
        self.navigations.append(urljoin(self._url, url))

    async def selection_text(self) -> str:
        return self.selection

    async def body_text(self) -> str:
        root = self._soup.body or self._soup
        return _collapse(_rendered_text(root))
