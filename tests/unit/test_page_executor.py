from __future__ import annotations

import asyncio
from typing import Any

from tabpilot.core.config import ExecutorConfig
from tabpilot.page import PageExecutor, SoupDocument

PAGE = """
<html>
<head>
  <title>Daily Paper</title>
  <meta name="description" content="All the news">
</head>
<body>
  <header><nav><a href="/">Home</a> <a href="/world">World</a></nav></header>
  <main>
    <h1>Front page</h1>
    <p>Latest news today. More news tomorrow.</p>
    <p>Weather news and a sunny outlook.</p>
    <script>var news = "not rendered";</script>
    <form action="/subscribe">
      <label for="email">Email</label>
      <input id="email" name="email" type="email">
      <select name="plan">
        <option value="m">Monthly</option>
        <option value="y">Yearly plan</option>
      </select>
      <button type="submit" id="go">Subscribe</button>
      <button id="off" disabled>Unavailable offer</button>
    </form>
  </main>
</body>
</html>
"""


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _executor(**cfg: Any) -> tuple[PageExecutor, SoupDocument, SleepRecorder]:
    doc = SoupDocument(PAGE, url="https://paper.example/")
    sleep = SleepRecorder()
    return PageExecutor(doc, config=ExecutorConfig(**cfg), sleep=sleep), doc, sleep


def _run(executor: PageExecutor, tool: str, params: dict[str, Any]) -> dict[str, Any]:
    return asyncio.run(executor.execute_tool(tool, params)).to_dict()


def test_click_scrolls_highlights_settles_then_clicks() -> None:
    executor, doc, sleep = _executor()

    out = _run(executor, "click_element", {"description": "subscribe button"})

    assert out["success"] is True
    assert out["method"] == "fuzzy"
    assert out["element"]["id"] == "go"
    assert sleep.delays == [0.5]
    kinds = [kind for kind, _ in doc.events]
    assert kinds == ["highlight", "click"]
    assert doc.scroll_y > 0


def test_click_failure_is_a_structured_error() -> None:
    executor, _, _ = _executor(click_settle_ms=0)

    out = _run(executor, "click_element", {"description": "Unavailable offer"})

    assert out["success"] is False
    assert out["error_type"] == "action_failed"
    assert out["error"].startswith("Click failed")


def test_click_not_found() -> None:
    executor, _, _ = _executor()

    out = _run(executor, "click_element", {"description": "zzz qqq"})

    assert out == {
        "success": False,
        "tool": "click_element",
        "attempted": {"description": "zzz qqq", "selector": None},
        "error": 'Could not find element matching: "zzz qqq"',
        "error_type": "element_not_found",
    }


def test_fill_text_field_fires_input_events() -> None:
    executor, doc, sleep = _executor()

    out = _run(executor, "fill_form", {"field_description": "email", "value": "ada@example.com"})

    assert out["success"] is True
    assert out["method"] == "label"
    assert out["field"] == {"tag": "input", "name": "email", "type": "email", "value": "ada@example.com"}
    assert sleep.delays == [0.3]
    assert [kind for kind, _ in doc.events][-3:] == ["input", "change", "keyup"]
    assert doc.focused is not None and doc.focused.tag == "input"


def test_fill_select_matches_option_text() -> None:
    executor, doc, _ = _executor(fill_settle_ms=0)

    out = _run(executor, "fill_form", {"field_description": "plan", "value": "yearly"})

    assert out["success"] is True
    assert out["field"]["value"] == "y"


def test_fill_select_without_matching_option() -> None:
    executor, _, _ = _executor(fill_settle_ms=0)

    out = _run(executor, "fill_form", {"field_description": "plan", "value": "lifetime"})

    assert out["success"] is False
    assert out["error_type"] == "action_failed"
    assert "not found in dropdown" in out["error"]


def test_scroll_directions() -> None:
    executor, _, _ = _executor()

    assert _run(executor, "scroll_page", {"direction": "down"})["newPosition"] == 500
    assert _run(executor, "scroll_page", {"direction": "up", "amount": 200})["newPosition"] == 300
    bottom = _run(executor, "scroll_page", {"direction": "bottom"})
    assert bottom["newPosition"] == bottom["maxScroll"] == 2200
    assert _run(executor, "scroll_page", {"direction": "top"})["newPosition"] == 0

    bad = _run(executor, "scroll_page", {"direction": "sideways"})
    assert bad["success"] is False
    assert bad["error_type"] == "action_failed"


def test_find_text_counts_highlighted_visible_elements() -> None:
    executor, doc, _ = _executor()

    out = _run(executor, "find_text", {"query": "NEWS"})

    assert out["success"] is True
    assert out["count"] == 2
    assert len(out["matches"]) == 2
    marks = doc.soup.select("mark.ai-assistant-highlight")
    assert [m.get_text() for m in marks] == ["news", "news", "news"]
    assert "not rendered" in doc.soup.script.get_text()


def test_find_text_counts_an_element_once_across_text_nodes() -> None:
    doc = SoupDocument("<div>news <b>bold</b> more news</div><p>no match</p>")
    executor = PageExecutor(doc, sleep=SleepRecorder())

    out = asyncio.run(executor.execute_tool("find_text", {"query": "news"})).to_dict()

    assert out["count"] == 1
    assert len(out["matches"]) == 1
    assert out["matches"][0]["element"]["tag"] == "div"
    assert len(doc.soup.select("mark.ai-assistant-highlight")) == 2


def test_find_text_clears_previous_marks() -> None:
    executor, doc, _ = _executor()

    _run(executor, "find_text", {"query": "news"})
    out = _run(executor, "find_text", {"query": "sunny"})

    assert out["count"] == 1
    marks = doc.soup.select("mark.ai-assistant-highlight")
    assert [m.get_text() for m in marks] == ["sunny"]
    first_p = doc.soup.find("p")
    assert first_p.find("mark") is None
    assert first_p.get_text() == "Latest news today. More news tomorrow."


def test_find_text_case_sensitive() -> None:
    executor, _, _ = _executor()

    assert _run(executor, "find_text", {"query": "NEWS", "case_sensitive": True})["count"] == 0


def test_find_text_rejects_short_queries() -> None:
    executor, _, _ = _executor()

    out = _run(executor, "find_text", {"query": "a"})
    assert out["success"] is False
    assert out["error_type"] == "invalid_arguments"


def test_extract_data_reports_field_errors_inline() -> None:
    executor, _, _ = _executor()

    out = _run(
        executor,
        "extract_data",
        {"schema": {"headline": {"selector": "h1"}, "price": {"selector": ".price"}}},
    )

    assert out["success"] is True
    assert out["data"]["headline"] == "Front page"
    assert "error" in out["data"]["price"]


def test_navigate_is_optimistic_and_refuses_script_urls() -> None:
    executor, doc, _ = _executor()

    ok = _run(executor, "navigate", {"url": "https://paper.example/world"})
    assert ok == {"success": True, "tool": "navigate", "navigating": True, "url": "https://paper.example/world"}
    assert doc.navigations == ["https://paper.example/world"]

    bad = _run(executor, "navigate", {"url": "javascript:alert(1)"})
    assert bad["success"] is False
    assert doc.navigations == ["https://paper.example/world"]


def test_unknown_tool() -> None:
    executor, _, _ = _executor()

    out = _run(executor, "teleport", {})
    assert out["error_type"] == "unknown_tool"


def test_missing_required_parameter() -> None:
    executor, _, _ = _executor()

    out = _run(executor, "click_element", {})
    assert out["success"] is False
    assert out["error_type"] == "invalid_arguments"


def test_bus_messages() -> None:
    executor, doc, _ = _executor()
    doc.selection = "Latest news"

    async def run() -> list[dict[str, Any]]:
        return [
            await executor.handle_message(
                {"action": "execute_action", "data": {"tool": "scroll_page", "params": {"direction": "down"}}}
            ),
            await executor.handle_message(
                {"action": "execute_tool", "tool": "find_text", "params": {"query": "sunny"}, "toolCallId": "c1"}
            ),
            await executor.handle_message({"action": "get_selection"}),
            await executor.handle_message({"action": "highlight", "selector": "#go"}),
            await executor.handle_message({"action": "scroll_to", "selector": ".missing"}),
            await executor.handle_message({"action": "self_destruct"}),
        ]

    action, tool, selection, highlight, scroll_to, unknown = asyncio.run(run())
    assert action["success"] is True and action["newPosition"] == 500
    assert tool["count"] == 1
    assert selection == {"text": "Latest news"}
    assert highlight == {"success": True}
    assert scroll_to["success"] is False
    assert unknown == {"success": False, "error": "Unknown action: self_destruct"}


def test_structure_snapshot() -> None:
    executor, _, _ = _executor()

    s = asyncio.run(executor.handle_message({"action": "get_structure"}))

    assert s["url"] == "https://paper.example/"
    assert s["title"] == "Daily Paper"
    assert s["meta"]["description"] == "All the news"
    assert s["structure"] == {"hasLoginForm": False, "hasSearch": False, "hasNavigation": True, "contentAreas": 1}
    assert [h["text"] for h in s["headings"]] == ["Front page"]
    assert s["headings"][0]["level"] == 1
    assert {link["href"] for link in s["interactive"]["links"]} == {"https://paper.example/", "https://paper.example/world"}
    assert s["forms"][0]["action"] == "https://paper.example/subscribe"
    assert [f["name"] for f in s["forms"][0]["fields"]] == ["email", "plan", None, None]
    assert "not rendered" not in s["textContent"]["body"]
    assert s["textContent"]["wordCount"] > 0


def test_dom_mutations_are_coalesced() -> None:
    sent: list[dict[str, Any]] = []

    async def notify(message: dict[str, Any]) -> None:
        sent.append(message)

    async def run() -> None:
        doc = SoupDocument(PAGE, url="https://paper.example/")
        executor = PageExecutor(doc, config=ExecutorConfig(mutation_debounce_ms=20), notify=notify)
        for _ in range(5):
            executor.on_dom_mutation()
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.1)

    asyncio.run(run())

    assert len(sent) == 1
    assert sent[0]["action"] == "dom_changed"
    assert sent[0]["url"] == "https://paper.example/"
