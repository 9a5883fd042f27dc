"""Tests for devpilot.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from devpilot.config import (
    DEFAULT_ALLOWED_DOTFILES,
    ConfigError,
    DevPilotConfig,
    load_config,
)


def test_defaults_without_file(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert isinstance(config, DevPilotConfig)
    assert config.allowed_host == "github.com"
    assert config.failure_policy == "continue"
    assert config.retention_hours == 24.0
    assert config.scanner.allowed_dotfiles == list(DEFAULT_ALLOWED_DOTFILES)
    assert not config.scanner.respect_gitignore
    assert not config.llm.enabled
    assert config.search.api_key is None
    assert config.service.port == 3001
    assert config.generation.min_confidence == 20


def test_file_values_are_loaded(tmp_path: Path) -> None:
    (tmp_path / "devpilot.yml").write_text(
        """
scratch_root: /var/tmp/devpilot
allowed_host: git.example.com
failure_policy: ABORT
retention_hours: 6
scanner:
  excluded_dirs: [node_modules, coverage]
  respect_gitignore: "yes"
llm:
  base_url: http://localhost:8080/v1
  model: local-model
  temperature: 0.3
search:
  api_key: search-key
  max_results: 3
service:
  port: 9000
  client_url: https://app.example.com
generation:
  min_confidence: 40
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path, environ={})

    assert config.scratch_root == Path("/var/tmp/devpilot")
    assert config.allowed_host == "git.example.com"
    assert config.failure_policy == "abort"
    assert config.retention_hours == 6.0
    assert config.scanner.excluded_dirs == ["node_modules", "coverage"]
    assert config.scanner.respect_gitignore is True
    assert config.llm.enabled
    assert config.llm.model == "local-model"
    assert config.llm.temperature == 0.3
    assert config.llm.max_tokens == 4000
    assert config.search.api_key == "search-key"
    assert config.search.max_results == 3
    assert config.service.port == 9000
    assert config.service.client_url == "https://app.example.com"
    assert config.generation.min_confidence == 40


def test_environment_overrides_file(tmp_path: Path) -> None:
    (tmp_path / "devpilot.yml").write_text("failure_policy: continue\n", encoding="utf-8")
    environ = {
        "DEVPILOT_FAILURE_POLICY": "abort",
        "DEVPILOT_SCRATCH_ROOT": str(tmp_path / "scratch"),
        "OPENAI_BASE_URL": "https://api.example.com/v1",
        "LLAMA_API_KEY": "llm-key",
        "TAVILY_API_KEY": "tv-key",
        "MEM0_API_KEY": "mem-key",
        "PORT": "4000",
        "CLIENT_URL": "http://localhost:3000",
    }

    config = load_config(tmp_path, environ=environ)

    assert config.failure_policy == "abort"
    assert config.scratch_root == tmp_path / "scratch"
    assert config.llm.base_url == "https://api.example.com/v1"
    assert config.llm.api_key == "llm-key"
    assert config.search.api_key == "tv-key"
    assert config.memory.api_key == "mem-key"
    assert config.service.port == 4000
    assert config.service.client_url == "http://localhost:3000"


def test_explicit_file_path(tmp_path: Path) -> None:
    path = tmp_path / "custom.yml"
    path.write_text("allowed_host: example.org\n", encoding="utf-8")

    assert load_config(path, environ={}).allowed_host == "example.org"


def test_empty_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / "devpilot.yml").write_text("\n", encoding="utf-8")
    assert load_config(tmp_path, environ={}).allowed_host == "github.com"


@pytest.mark.parametrize(
    "content",
    [
        "scanner: [unclosed\n",
        "- just\n- a list\n",
        "failure_policy: retry\n",
    ],
)
def test_invalid_files_raise(tmp_path: Path, content: str) -> None:
    (tmp_path / "devpilot.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={})


def test_invalid_policy_from_environment(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path, environ={"DEVPILOT_FAILURE_POLICY": "sometimes"})
