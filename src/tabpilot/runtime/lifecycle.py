from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import re
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

from tabpilot.bus import LocalBus
from tabpilot.core.config import AppConfig, load_config
from tabpilot.core.errors import ConfigError
from tabpilot.llm import build_provider
from tabpilot.observability.logging import configure_logging
from tabpilot.orchestrator import SessionOrchestrator
from tabpilot.page import DocumentHandle, PageExecutor, SoupDocument

logger = logging.getLogger(__name__)

CLI_TAB_ID = "cli"


_SECRET_SEGMENTS = {"apikey", "token", "secret", "password"}


def _is_secret_key(key: str) -> bool:
    # Whole key segments only: `access_token` and `apiKey` match, `max_tokens` does not.
    parts = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", key).lower().replace("-", "_").split("_")
    candidates = set(parts) | {a + b for a, b in zip(parts, parts[1:])}
    return bool(candidates & _SECRET_SEGMENTS)


def _redact_secrets(obj):  # noqa: ANN001
    """Best-effort redaction for human-facing config dumps."""

    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if isinstance(k, str) and _is_secret_key(k):
                out[k] = "<redacted>"
            else:
                out[k] = _redact_secrets(v)
        return out
    if isinstance(obj, list):
        return [_redact_secrets(x) for x in obj]
    return obj


def _config_dump(cfg: AppConfig) -> dict[str, Any]:
    provider: dict[str, Any] = dict(cfg.provider_settings)
    if cfg.provider is not None:
        provider.update(
            provider=cfg.provider.provider,
            model=cfg.provider.model,
            base_url=cfg.provider.resolved_base_url,
            timeout_ms=cfg.provider.timeout_ms,
            max_retries=cfg.provider.max_retries,
            temperature=cfg.provider.temperature,
            max_tokens=cfg.provider.max_tokens,
            key_configured=cfg.provider.has_api_key,
        )
    return {
        "provider": provider,
        "provider_configured": cfg.provider is not None,
        "sessions": asdict(cfg.sessions),
        "executor": asdict(cfg.executor),
        "logging": {"level": cfg.log_level},
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tabpilot",
        description="Conversational page automation: chat with a model that drives the loaded page.",
    )

    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING); overrides the config file",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/app.yaml"),
        help="Path to a YAML config file",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    print_p = sub.add_parser("print-config", help="Load and print the expanded config")
    print_p.set_defaults(command="print-config")

    for name, help_text in (
        ("chat", "Run one chat turn against a page and print the JSON response"),
        ("structure", "Print the structural snapshot of a page"),
    ):
        p = sub.add_parser(name, help=help_text)
        source = p.add_mutually_exclusive_group(required=True)
        source.add_argument("--html", type=Path, help="Static HTML file (parsed with BeautifulSoup)")
        source.add_argument("--url", help="Live page URL (opened with Playwright)")
        p.add_argument("--page-url", default=None, help="URL to report for --html documents")
        if name == "chat":
            p.add_argument("message", help="Instruction for the assistant")

    return parser


@contextlib.asynccontextmanager
async def _open_document(ns: argparse.Namespace) -> AsyncIterator[DocumentHandle]:
    if ns.html is not None:
        html = ns.html.read_text(encoding="utf-8")
        yield SoupDocument(html, url=ns.page_url or ns.html.resolve().as_uri())
        return

    from playwright.async_api import async_playwright

    from tabpilot.page.playwright_document import PlaywrightDocument

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=True)
        try:
            page = await browser.new_page()
            await page.goto(ns.url, wait_until="load")
            yield PlaywrightDocument(page)
        finally:
            await browser.close()


async def _run_structure(cfg: AppConfig, ns: argparse.Namespace) -> dict[str, Any]:
    async with _open_document(ns) as document:
        return await PageExecutor(document, config=cfg.executor).get_structure()


async def _run_chat(cfg: AppConfig, ns: argparse.Namespace) -> dict[str, Any]:
    async with _open_document(ns) as document:
        bus = LocalBus()
        executor = PageExecutor(
            document,
            config=cfg.executor,
            notify=lambda message: bus.notify_orchestrator(CLI_TAB_ID, message),
        )
        bus.register(CLI_TAB_ID, executor.handle_message)

        orchestrator = SessionOrchestrator(
            bus,
            provider=build_provider(cfg.provider) if cfg.provider is not None else None,
            session_config=cfg.sessions,
        )
        bus.attach_orchestrator(orchestrator.handle_message)

        await orchestrator.start()
        try:
            structure = await executor.get_structure()
            return await orchestrator.handle_message(
                {
                    "action": "chat",
                    "tabId": CLI_TAB_ID,
                    "message": ns.message,
                    "pageContext": {
                        "url": structure["url"],
                        "title": structure["title"],
                        "timestamp": structure["timestamp"],
                        "structure": structure["structure"],
                        "headings": structure["headings"],
                    },
                }
            )
        finally:
            bus.unregister(CLI_TAB_ID)
            executor.close()
            await orchestrator.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint referenced by pyproject.toml."""

    parser = _build_parser()
    try:
        ns = parser.parse_args(list(argv) if argv is not None else None)
    except SystemExit as e:
        code = e.code
        return int(code) if isinstance(code, int) else 1

    configure_logging(level=ns.log_level or "INFO")

    try:
        cfg = load_config(ns.config)
        if ns.log_level is None:
            configure_logging(level=cfg.log_level)
        logger.info("config_loaded", extra={"config_file": str(ns.config)})

        if ns.command == "print-config":
            out: dict[str, Any] = _redact_secrets(_config_dump(cfg))
        elif ns.command == "structure":
            out = asyncio.run(_run_structure(cfg, ns))
        else:
            out = asyncio.run(_run_chat(cfg, ns))

        sys.stdout.write(json.dumps(out, ensure_ascii=False, indent=2))
        sys.stdout.write("\n")
        return 1 if "error" in out else 0

    except ConfigError as e:
        logger.error("config_error", extra={"error": str(e)})
        sys.stderr.write(f"ConfigError: {e}\n")
        return 2
    except Exception as e:  # noqa: BLE001
        logger.exception("fatal_error")
        sys.stderr.write(f"Fatal error: {e}\n")
        return 1
