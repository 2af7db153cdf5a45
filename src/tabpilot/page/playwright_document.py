"""Live-page document adapter over the Playwright async API.

Everything that has no Playwright primitive runs as a fixed script through
`evaluate`; no model-supplied text is ever evaluated as code, it is only
passed in as a script argument.
"""

from __future__ import annotations

import re
from typing import Any

from playwright.async_api import ElementHandle as PwElementHandle
from playwright.async_api import Page

_OWN_TEXT_JS = """el => Array.from(el.childNodes)
  .filter(n => n.nodeType === Node.TEXT_NODE)
  .map(n => n.textContent).join('').replace(/\\s+/g, ' ').trim()"""

_VALUE_JS = """el => ('value' in el && ['INPUT', 'TEXTAREA', 'SELECT'].includes(el.tagName)) ? String(el.value) : null"""

_LINK_JS = """(el, name) => { const raw = el.getAttribute(name);
  return raw === null ? null : new URL(raw, document.baseURI).href; }"""

_SCROLL_INTO_VIEW_JS = """el => el.scrollIntoView({behavior: 'smooth', block: 'center'})"""

_HIGHLIGHT_JS = """el => { const prev = el.style.outline; el.style.outline = '3px solid #4285f4';
  setTimeout(() => { el.style.outline = prev; }, 2000); }"""

_OPTIONS_JS = """el => el.tagName === 'SELECT' ? Array.from(el.options).map(o => [o.text, o.value]) : []"""

_DISPATCH_JS = """(el, type) => el.dispatchEvent(new Event(type, {bubbles: true}))"""

_MARK_TEXT_JS = """([source, flags, cls]) => {
  const skip = new Set(['SCRIPT', 'STYLE', 'NOSCRIPT', 'TEMPLATE']);
  const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, {
    acceptNode: n => (n.parentElement && !skip.has(n.parentElement.tagName)
      && n.parentElement.offsetParent !== null) ? NodeFilter.FILTER_ACCEPT : NodeFilter.FILTER_REJECT,
  });
  const nodes = [];
  while (walker.nextNode()) nodes.push(walker.currentNode);
  const hits = [];
  const seen = new Set();
  for (const node of nodes) {
    const text = node.textContent;
    const re = new RegExp(source, flags + 'g');
    if (!re.test(text)) continue;
    re.lastIndex = 0;
    const frag = document.createDocumentFragment();
    let pos = 0, m;
    while ((m = re.exec(text)) !== null) {
      if (m.index > pos) frag.appendChild(document.createTextNode(text.slice(pos, m.index)));
      const mark = document.createElement('mark');
      mark.className = cls;
      mark.textContent = m[0];
      frag.appendChild(mark);
      pos = m.index + m[0].length;
    }
    if (pos < text.length) frag.appendChild(document.createTextNode(text.slice(pos)));
    const parent = node.parentElement;
    parent.replaceChild(frag, node);
    if (seen.has(parent)) continue;
    seen.add(parent);
    hits.push({text: text, parent: parent});
  }
  return hits;
}"""

_CLEAR_MARKS_JS = """cls => { const marks = document.querySelectorAll('mark.' + CSS.escape(cls));
  marks.forEach(mark => { const parent = mark.parentNode;
    parent.replaceChild(document.createTextNode(mark.textContent), mark); parent.normalize(); });
  return marks.length; }"""


class PlaywrightElement:
    def __init__(self, handle: PwElementHandle, tag: str) -> None:
        self._handle = handle
        self._tag = tag

    @classmethod
    async def wrap(cls, handle: PwElementHandle | None) -> PlaywrightElement | None:
        if handle is None:
            return None
        tag = await handle.evaluate("el => el.tagName.toLowerCase()")
        return cls(handle, tag)

    @property
    def tag(self) -> str:
        return self._tag

    async def attribute(self, name: str) -> str | None:
        return await self._handle.get_attribute(name)

    async def text(self) -> str:
        return " ".join((await self._handle.inner_text()).split())

    async def own_text(self) -> str:
        return await self._handle.evaluate(_OWN_TEXT_JS)

    async def html(self) -> str:
        return await self._handle.inner_html()

    async def value(self) -> str | None:
        return await self._handle.evaluate(_VALUE_JS)

    async def link(self, name: str) -> str | None:
        return await self._handle.evaluate(_LINK_JS, name)

    async def is_visible(self) -> bool:
        return await self._handle.is_visible()

    async def bounding_box(self) -> dict[str, float] | None:
        box = await self._handle.bounding_box()
        return dict(box) if box else None

    async def scroll_into_view(self) -> None:
        await self._handle.evaluate(_SCROLL_INTO_VIEW_JS)

    async def highlight(self) -> None:
        await self._handle.evaluate(_HIGHLIGHT_JS)

    async def focus(self) -> None:
        await self._handle.focus()

    async def click(self) -> None:
        await self._handle.click()

    async def set_value(self, value: str) -> None:
        if self._tag == "select":
            await self._handle.select_option(value=value)
        else:
            await self._handle.fill(value)

    async def options(self) -> list[tuple[str, str]]:
        return [(text, value) for text, value in await self._handle.evaluate(_OPTIONS_JS)]

    async def dispatch_event(self, event_type: str) -> None:
        await self._handle.evaluate(_DISPATCH_JS, event_type)

    async def query_all(self, selector: str) -> list[PlaywrightElement]:
        return [await PlaywrightElement.wrap(h) for h in await self._handle.query_selector_all(selector)]


class PlaywrightDocument:
    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def page(self) -> Page:
        return self._page

    async def url(self) -> str:
        return self._page.url

    async def title(self) -> str:
        return await self._page.title()

    async def query(self, selector: str) -> PlaywrightElement | None:
        return await PlaywrightElement.wrap(await self._page.query_selector(selector))

    async def query_all(self, selector: str) -> list[PlaywrightElement]:
        return [await PlaywrightElement.wrap(h) for h in await self._page.query_selector_all(selector)]

    async def get_by_id(self, element_id: str) -> PlaywrightElement | None:
        handle = await self._page.evaluate_handle("id => document.getElementById(id)", element_id)
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        return await PlaywrightElement.wrap(element)

    async def scroll_by(self, dy: float) -> None:
        await self._page.evaluate("dy => window.scrollBy({top: dy, behavior: 'smooth'})", dy)

    async def scroll_to(self, y: float) -> None:
        await self._page.evaluate("y => window.scrollTo({top: y, behavior: 'smooth'})", y)

    async def scroll_metrics(self) -> tuple[float, float]:
        position, max_scroll = await self._page.evaluate(
            "() => [window.scrollY, document.documentElement.scrollHeight - window.innerHeight]"
        )
        return float(position), float(max(0, max_scroll))

    async def mark_text(self, pattern: re.Pattern[str], css_class: str) -> list[dict[str, Any]]:
        flags = "i" if pattern.flags & re.IGNORECASE else ""
        handle = await self._page.evaluate_handle(_MARK_TEXT_JS, [pattern.pattern, flags, css_class])
        try:
            count = await handle.evaluate("hits => hits.length")
            hits: list[dict[str, Any]] = []
            for i in range(count):
                text = await handle.evaluate("(hits, i) => hits[i].text", i)
                parent = await handle.evaluate_handle("(hits, i) => hits[i].parent", i)
                hits.append({"text": text, "element": await PlaywrightElement.wrap(parent.as_element())})
            return hits
        finally:
            await handle.dispose()

    async def clear_marks(self, css_class: str) -> int:
        return int(await self._page.evaluate(_CLEAR_MARKS_JS, css_class))

    async def navigate(self, url: str) -> None:
        await self._page.evaluate("url => { window.location.href = url; }", url)

    async def selection_text(self) -> str:
        return await self._page.evaluate("() => String(window.getSelection() || '')")

    async def body_text(self) -> str:
        return await self._page.evaluate("() => document.body ? document.body.innerText : ''")
