from __future__ import annotations

from pathlib import Path

import pytest

from tabpilot.core.config import load_config
from tabpilot.core.errors import ConfigError


def test_missing_env_var_is_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TABPILOT_TEST_KEY", raising=False)

    cfg_path = tmp_path / "app.yaml"
    cfg_path.write_text(
        """
provider:
  provider: openai
  api_key: ${TABPILOT_TEST_KEY}
""".lstrip(),
        encoding="utf-8",
    )

    with pytest.raises(ConfigError) as ei:
        load_config(cfg_path, load_dotenv_file=False)

    msg = str(ei.value)
    assert "TABPILOT_TEST_KEY" in msg
    assert "missing" in msg
    assert ei.value.path == "provider.api_key"


def test_empty_env_var_is_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TABPILOT_TEST_KEY", "")

    cfg_path = tmp_path / "app.yaml"
    cfg_path.write_text(
        """
provider:
  provider: openai
  api_key: ${TABPILOT_TEST_KEY}
""".lstrip(),
        encoding="utf-8",
    )

    with pytest.raises(ConfigError) as ei:
        load_config(cfg_path, load_dotenv_file=False)

    assert "empty" in str(ei.value)


def test_missing_file_is_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError) as ei:
        load_config(tmp_path / "nope.yaml", load_dotenv_file=False)
    assert "does not exist" in str(ei.value)


def test_non_mapping_top_level_is_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.yaml"
    cfg_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(cfg_path, load_dotenv_file=False)


def test_section_must_be_mapping(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.yaml"
    cfg_path.write_text("sessions: 3\n", encoding="utf-8")

    with pytest.raises(ConfigError) as ei:
        load_config(cfg_path, load_dotenv_file=False)
    assert ei.value.path == "sessions"


def test_invalid_yaml_is_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "app.yaml"
    cfg_path.write_text("provider: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError) as ei:
        load_config(cfg_path, load_dotenv_file=False)
    assert "YAML" in str(ei.value)
