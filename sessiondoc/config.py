"""Configuration loading for sessiondoc (.sessiondoc.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".sessiondoc.yml"

DEFAULT_EXTENSIONS = (
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    ".rs",
    ".py",
    ".pyi",
    ".go",
    ".json",
    ".yaml",
    ".yml",
    ".toml",
    ".css",
    ".scss",
    ".md",
    ".mdx",
)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LLMConfig:
    """LLM runtime settings from .sessiondoc.yml."""

    runner: Optional[str] = None
    executable: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    request_timeout: Optional[float] = None


@dataclass
class PipelineConfig:
    """Limits and locations used by the documentation pipeline."""

    messages_per_session: int = 10
    instruction_files: List[str] = field(default_factory=lambda: ["CLAUDE.md", "claude.md"])
    evidence_budget: int = 2000
    diff_token_limit: int = 200
    max_symbols_per_file: int = 10
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    max_workers: int = 4
    debug_dir: Optional[Path] = None
    audience: str = "technical"


@dataclass
class ClassifierConfig:
    """Optional AI classification of ambiguous user sentences."""

    enabled: bool = False
    max_items: int = 20


@dataclass
class SessionsConfig:
    claude_dir: Optional[Path] = None
    codex_dir: Optional[Path] = None


@dataclass
class SessionDocConfig:
    """Represents the settings defined in .sessiondoc.yml."""

    root: Path
    llm: Optional[LLMConfig] = None
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    sessions: SessionsConfig = field(default_factory=SessionsConfig)


def load_config(config_path: Path) -> SessionDocConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return SessionDocConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    llm_data = _as_dict(data.get("llm"))
    llm = None
    if llm_data:
        llm = LLMConfig(
            runner=_as_str(llm_data.get("runner")),
            executable=_as_str(llm_data.get("executable")),
            model=_as_str(llm_data.get("model")),
            temperature=_as_float(llm_data.get("temperature")),
            max_tokens=_as_int(llm_data.get("max_tokens")),
            base_url=_as_str(llm_data.get("base_url")),
            api_key=_as_str(llm_data.get("api_key")),
            request_timeout=_as_float(llm_data.get("request_timeout")),
        )
        if llm.runner is not None and llm.runner not in {"cli", "http"}:
            raise ConfigError(f"Unsupported llm.runner '{llm.runner}' (expected 'cli' or 'http')")

    pipeline = PipelineConfig()
    pipeline_data = _as_dict(data.get("pipeline"))
    if pipeline_data:
        pipeline.messages_per_session = _positive(
            pipeline_data, "messages_per_session", pipeline.messages_per_session
        )
        instruction_files = _as_str_list(pipeline_data.get("instruction_files"))
        if instruction_files:
            pipeline.instruction_files = instruction_files
        pipeline.evidence_budget = _positive(pipeline_data, "evidence_budget", pipeline.evidence_budget)
        pipeline.diff_token_limit = _positive(
            pipeline_data, "diff_token_limit", pipeline.diff_token_limit
        )
        pipeline.max_symbols_per_file = _positive(
            pipeline_data, "max_symbols_per_file", pipeline.max_symbols_per_file
        )
        extensions = _as_str_list(pipeline_data.get("extensions"))
        if extensions:
            pipeline.extensions = [_normalise_extension(ext) for ext in extensions]
        pipeline.max_workers = _positive(pipeline_data, "max_workers", pipeline.max_workers)
        debug_dir = _as_str(pipeline_data.get("debug_dir"))
        if debug_dir:
            pipeline.debug_dir = _resolve_dir(root, debug_dir)
        audience = _as_str(pipeline_data.get("audience"))
        if audience:
            pipeline.audience = _audience(audience)

    classifier = ClassifierConfig()
    classifier_data = _as_dict(data.get("classifier"))
    if classifier_data:
        classifier.enabled = _as_bool(classifier_data.get("enabled")) or False
        classifier.max_items = _positive(classifier_data, "max_items", classifier.max_items)

    sessions = SessionsConfig()
    sessions_data = _as_dict(data.get("sessions"))
    if sessions_data:
        claude_dir = _as_str(sessions_data.get("claude_dir"))
        codex_dir = _as_str(sessions_data.get("codex_dir"))
        sessions.claude_dir = _resolve_dir(root, claude_dir) if claude_dir else None
        sessions.codex_dir = _resolve_dir(root, codex_dir) if codex_dir else None

    return SessionDocConfig(
        root=root,
        llm=llm,
        pipeline=pipeline,
        classifier=classifier,
        sessions=sessions,
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    if config_path.name != CONFIG_FILENAME:
        return (config_path.parent / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Unable to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _resolve_dir(root: Path, value: str) -> Path:
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    return candidate


def _normalise_extension(value: str) -> str:
    lowered = value.strip().lower()
    return lowered if lowered.startswith(".") else f".{lowered}"


def _audience(value: str) -> str:
    # docs.base imports this module, so the enum is resolved lazily.
    from .docs.base import DocAudience

    try:
        return DocAudience.parse(value).value
    except ValueError as exc:
        raise ConfigError(f"Unsupported pipeline.audience '{value}'") from exc


def _positive(data: Dict[str, Any], key: str, default: int) -> int:
    value = _as_int(data.get(key))
    if value is None:
        return default
    if value <= 0:
        raise ConfigError(f"pipeline option '{key}' must be a positive integer")
    return value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ClassifierConfig",
    "ConfigError",
    "DEFAULT_EXTENSIONS",
    "LLMConfig",
    "PipelineConfig",
    "SessionDocConfig",
    "SessionsConfig",
    "load_config",
]
