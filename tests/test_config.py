"""Tests for sessiondoc.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from sessiondoc.config import (
    DEFAULT_EXTENSIONS,
    ConfigError,
    LLMConfig,
    SessionDocConfig,
    load_config,
)


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, SessionDocConfig)
    assert config.root == tmp_path.resolve()
    assert config.llm is None
    assert config.pipeline.messages_per_session == 10
    assert config.pipeline.evidence_budget == 2000
    assert config.pipeline.diff_token_limit == 200
    assert config.pipeline.extensions == list(DEFAULT_EXTENSIONS)
    assert config.pipeline.debug_dir is None
    assert config.pipeline.audience == "technical"
    assert config.classifier.enabled is False
    assert config.sessions.claude_dir is None


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".sessiondoc.yml"
    config_file.write_text(
        """
llm:
  runner: "http"
  model: "gpt-docs"
  temperature: 0.2
  max_tokens: 2048
  base_url: "http://localhost:12434/engines/v1"
  api_key: "test-key"
  request_timeout: 60
pipeline:
  messages_per_session: 5
  instruction_files: [AGENTS.md, CLAUDE.md]
  evidence_budget: 500
  diff_token_limit: 50
  max_symbols_per_file: 3
  extensions: [py, ".TS"]
  max_workers: 2
  debug_dir: "build/ir"
  audience: agent
classifier:
  enabled: "yes"
  max_items: 8
sessions:
  claude_dir: "~/transcripts"
  codex_dir: "codex"
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.llm == LLMConfig(
        runner="http",
        model="gpt-docs",
        temperature=0.2,
        max_tokens=2048,
        base_url="http://localhost:12434/engines/v1",
        api_key="test-key",
        request_timeout=60.0,
    )
    pipeline = config.pipeline
    assert pipeline.messages_per_session == 5
    assert pipeline.instruction_files == ["AGENTS.md", "CLAUDE.md"]
    assert pipeline.evidence_budget == 500
    assert pipeline.diff_token_limit == 50
    assert pipeline.max_symbols_per_file == 3
    assert pipeline.extensions == [".py", ".ts"]
    assert pipeline.max_workers == 2
    assert pipeline.debug_dir == tmp_path.resolve() / "build/ir"
    assert pipeline.audience == "agent"
    assert config.classifier.enabled is True
    assert config.classifier.max_items == 8
    assert config.sessions.claude_dir == Path("~/transcripts").expanduser()
    assert config.sessions.codex_dir == tmp_path.resolve() / "codex"


def test_load_config_accepts_file_next_to_config(tmp_path: Path) -> None:
    (tmp_path / ".sessiondoc.yml").write_text("pipeline:\n  evidence_budget: 42\n", encoding="utf-8")

    config = load_config(tmp_path / "CLAUDE.md")

    assert config.pipeline.evidence_budget == 42


def test_load_config_empty_file(tmp_path: Path) -> None:
    (tmp_path / ".sessiondoc.yml").write_text("  \n", encoding="utf-8")

    assert load_config(tmp_path).llm is None


@pytest.mark.parametrize(
    "content",
    [
        "llm: [unclosed\n",
        "- just\n- a list\n",
        "llm:\n  runner: ollama\n",
        "pipeline:\n  evidence_budget: 0\n",
        "pipeline:\n  audience: martians\n",
    ],
)
def test_load_config_rejects_invalid_content(tmp_path: Path, content: str) -> None:
    (tmp_path / ".sessiondoc.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_normalises_audience_alias(tmp_path: Path) -> None:
    (tmp_path / ".sessiondoc.yml").write_text("pipeline:\n  audience: Business\n", encoding="utf-8")

    assert load_config(tmp_path).pipeline.audience == "overview"
