"""Project-level lookups: instruction file and display name."""

from __future__ import annotations

import json
import subprocess
import tomllib
from pathlib import Path
from typing import Optional, Sequence

from ..errors import CollectionError
from ..logging import get_logger

DEFAULT_INSTRUCTION_FILES = ("CLAUDE.md", "claude.md")

logger = get_logger("project")


def read_instructions(
    project_path: Path | None,
    names: Sequence[str] = DEFAULT_INSTRUCTION_FILES,
) -> Optional[str]:
    """Return the first instruction file found under ``project_path`` verbatim."""
    if project_path is None:
        return None
    for name in names:
        candidate = project_path / name
        if not candidate.is_file():
            continue
        try:
            return candidate.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise CollectionError(f"Unable to read instruction file {candidate}: {exc}") from exc
    return None


def resolve_project_name(project_path: Path | None, *, fallback: str = "Unknown Project") -> str:
    """Resolve a display name from the git remote, a manifest, or the directory name."""
    if project_path is None:
        return fallback
    for resolver in (_name_from_git_remote, _name_from_package_json, _name_from_pyproject):
        name = resolver(project_path)
        if name:
            return name
    return project_path.name or fallback


def extract_repo_name(url: str) -> Optional[str]:
    """Return the repository name from an ssh or https remote url."""
    cleaned = url.strip()
    if not cleaned:
        return None
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    if "@" in cleaned and ":" in cleaned and not cleaned.startswith(("http://", "https://")):
        cleaned = cleaned.split(":", 1)[1]
    elif not cleaned.startswith(("http://", "https://")):
        return None
    name = cleaned.rstrip("/").rsplit("/", 1)[-1]
    return name or None


def _name_from_git_remote(project_path: Path) -> Optional[str]:
    if not project_path.is_dir():
        return None
    try:
        completed = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            cwd=project_path,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as exc:
        logger.debug("git remote lookup unavailable for %s: %s", project_path, exc)
        return None
    if completed.returncode != 0:
        return None
    return extract_repo_name(completed.stdout)


def _name_from_package_json(project_path: Path) -> Optional[str]:
    manifest = project_path / "package.json"
    if not manifest.is_file():
        return None
    try:
        payload = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Ignoring unreadable %s: %s", manifest, exc)
        return None
    name = payload.get("name") if isinstance(payload, dict) else None
    return name if isinstance(name, str) and name else None


def _name_from_pyproject(project_path: Path) -> Optional[str]:
    manifest = project_path / "pyproject.toml"
    if not manifest.is_file():
        return None
    try:
        payload = tomllib.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        logger.debug("Ignoring unreadable %s: %s", manifest, exc)
        return None
    project = payload.get("project")
    name = project.get("name") if isinstance(project, dict) else None
    return name if isinstance(name, str) and name else None


__all__ = [
    "DEFAULT_INSTRUCTION_FILES",
    "extract_repo_name",
    "read_instructions",
    "resolve_project_name",
]
