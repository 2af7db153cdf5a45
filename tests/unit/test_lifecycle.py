from __future__ import annotations

import json
from pathlib import Path

import pytest

from tabpilot.orchestrator import NOT_CONFIGURED
from tabpilot.runtime.lifecycle import _redact_secrets, main

PAGE = "<html><head><title>Notes</title></head><body><h1>Today</h1><p>Buy milk.</p></body></html>"


def _write_config(tmp_path: Path, provider_block: str) -> Path:
    cfg_path = tmp_path / "app.yaml"
    cfg_path.write_text(provider_block.lstrip() + "\nlogging:\n  level: WARNING\n", encoding="utf-8")
    return cfg_path


def test_redact_secrets_nested() -> None:
    out = _redact_secrets(
        {"provider": {"api_key": "sk-1", "apiKey": "sk-2", "model": "m"}, "list": [{"access_token": "t"}]}
    )
    assert out == {
        "provider": {"api_key": "<redacted>", "apiKey": "<redacted>", "model": "m"},
        "list": [{"access_token": "<redacted>"}],
    }


def test_redact_secrets_matches_whole_key_segments_only() -> None:
    out = _redact_secrets(
        {"max_tokens": 4096, "maxTokens": 4096, "key_configured": True, "client_secret": "s", "authToken": "t", "password": "p"}
    )
    assert out == {
        "max_tokens": 4096,
        "maxTokens": 4096,
        "key_configured": True,
        "client_secret": "<redacted>",
        "authToken": "<redacted>",
        "password": "<redacted>",
    }


def test_print_config_hides_api_key(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg_path = _write_config(
        tmp_path,
        """
provider:
  provider: openai
  api_key: sk-very-secret
  model: gpt-4o
""",
    )

    code = main(["--config", str(cfg_path), "print-config"])
    stdout = capsys.readouterr().out

    assert code == 0
    assert "sk-very-secret" not in stdout
    out = json.loads(stdout)
    assert out["provider_configured"] is True
    assert out["provider"]["model"] == "gpt-4o"
    assert out["provider"]["key_configured"] is True
    assert out["provider"]["max_tokens"] == 4096
    assert out["sessions"]["max_history"] == 20


def test_missing_config_file_exits_with_config_error(tmp_path: Path) -> None:
    assert main(["--config", str(tmp_path / "nope.yaml"), "print-config"]) == 2


def test_structure_from_html_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cfg_path = _write_config(tmp_path, "provider: {}\n")
    html_path = tmp_path / "page.html"
    html_path.write_text(PAGE, encoding="utf-8")

    code = main(
        ["--config", str(cfg_path), "structure", "--html", str(html_path), "--page-url", "https://notes.example/"]
    )
    out = json.loads(capsys.readouterr().out)

    assert code == 0
    assert out["title"] == "Notes"
    assert out["url"] == "https://notes.example/"
    assert "Buy milk." in out["textContent"]["body"]


def test_chat_without_key_reports_not_configured(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    cfg_path = _write_config(tmp_path, "provider:\n  provider: openai\n")
    html_path = tmp_path / "page.html"
    html_path.write_text(PAGE, encoding="utf-8")

    code = main(["--config", str(cfg_path), "chat", "--html", str(html_path), "what is on this page?"])
    out = json.loads(capsys.readouterr().out)

    assert code == 1
    assert out == {"error": NOT_CONFIGURED}
