"""Host document primitives used by the page executor.

The executor never talks to a browser API directly. The embedding
environment supplies a DocumentHandle for the loaded document; this package
ships two: `SoupDocument` (static HTML) and `PlaywrightDocument` (live page).
"""

from __future__ import annotations

import re
from typing import Any, Protocol


class ElementHandle(Protocol):
    @property
    def tag(self) -> str:
        """Lower-case tag name."""

    async def attribute(self, name: str) -> str | None: ...

    async def text(self) -> str:
        """Rendered text of the element and its descendants."""

    async def own_text(self) -> str:
        """Text of the element's direct child text nodes only."""

    async def html(self) -> str: ...

    async def value(self) -> str | None:
        """Current form value for input/textarea/select, else None."""

    async def link(self, name: str) -> str | None:
        """`href`/`src` resolved against the document URL."""

    async def is_visible(self) -> bool: ...

    async def bounding_box(self) -> dict[str, float] | None: ...

    async def scroll_into_view(self) -> None:
        """Scroll so the element sits at the viewport center."""

    async def highlight(self) -> None:
        """Brief visual outline flash."""

    async def focus(self) -> None: ...

    async def click(self) -> None: ...

    async def set_value(self, value: str) -> None: ...

    async def options(self) -> list[tuple[str, str]]:
        """(text, value) pairs of a select element's options."""

    async def dispatch_event(self, event_type: str) -> None: ...

    async def query_all(self, selector: str) -> list["ElementHandle"]: ...


class DocumentHandle(Protocol):
    async def url(self) -> str: ...

    async def title(self) -> str: ...

    async def query(self, selector: str) -> ElementHandle | None: ...

    async def query_all(self, selector: str) -> list[ElementHandle]: ...

    async def get_by_id(self, element_id: str) -> ElementHandle | None: ...

    async def scroll_by(self, dy: float) -> None: ...

    async def scroll_to(self, y: float) -> None: ...

    async def scroll_metrics(self) -> tuple[float, float]:
        """(current scroll offset, maximum scroll offset)."""

    async def mark_text(self, pattern: re.Pattern[str], css_class: str) -> list[dict[str, Any]]:
        """Wrap every match in visible text nodes with <mark class=css_class>.

        Script/style/noscript text is never touched. Returns one entry per
        affected text node: {"text": <node text>, "element": ElementHandle}.
        """

    async def clear_marks(self, css_class: str) -> int:
        """Unwrap marks of `css_class`, restoring the original text. Returns count."""

    async def navigate(self, url: str) -> None:
        """Start a navigation without waiting for it to complete."""

    async def selection_text(self) -> str: ...

    async def body_text(self) -> str: ...
