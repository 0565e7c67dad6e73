"""Helper utilities for writing assistant session transcripts in tests."""

from __future__ import annotations

import json
import textwrap
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping


class SessionBuilder:
    """Writes Claude-style JSONL transcripts under a throwaway session directory."""

    def __init__(self, tmp_path: Path, project_id: str = "demo-project") -> None:
        self.claude_dir = tmp_path / "claude-projects"
        self.codex_dir = tmp_path / "codex-sessions"
        self.project_root = tmp_path / "workspace"
        self.project_id = project_id
        self.claude_dir.mkdir()
        self.codex_dir.mkdir()
        self.project_root.mkdir()
        self._start = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)
        self._entries: Dict[str, List[Dict[str, Any]]] = {}
        self._clock: Dict[str, int] = {}

    @property
    def project_dir(self) -> Path:
        return self.claude_dir / self.project_id

    def _timestamp(self, session_id: str, minutes: int | None) -> str:
        tick = self._clock.get(session_id, 0) if minutes is None else minutes
        self._clock[session_id] = tick + 1
        return (self._start + timedelta(minutes=tick)).isoformat().replace("+00:00", "Z")

    def _append(self, session_id: str, entry: Dict[str, Any]) -> "SessionBuilder":
        entry.setdefault("cwd", str(self.project_root))
        self._entries.setdefault(session_id, []).append(entry)
        return self

    def user(self, session_id: str, text: str, *, minutes: int | None = None) -> "SessionBuilder":
        return self._append(
            session_id,
            {
                "type": "user",
                "timestamp": self._timestamp(session_id, minutes),
                "message": {"role": "user", "content": text},
            },
        )

    def write(
        self, session_id: str, path: str, content: str, *, minutes: int | None = None
    ) -> "SessionBuilder":
        return self._tool(
            session_id,
            "Write",
            {"file_path": self._absolute(path), "content": textwrap.dedent(content).lstrip("\n")},
            minutes,
        )

    def edit(
        self,
        session_id: str,
        path: str,
        old: str,
        new: str,
        *,
        minutes: int | None = None,
    ) -> "SessionBuilder":
        return self._tool(
            session_id,
            "Edit",
            {"file_path": self._absolute(path), "old_string": old, "new_string": new},
            minutes,
        )

    def _tool(
        self, session_id: str, name: str, tool_input: Mapping[str, Any], minutes: int | None
    ) -> "SessionBuilder":
        return self._append(
            session_id,
            {
                "type": "assistant",
                "timestamp": self._timestamp(session_id, minutes),
                "message": {
                    "role": "assistant",
                    "content": [{"type": "tool_use", "id": f"tool-{name}", "name": name, "input": dict(tool_input)}],
                },
            },
        )

    def _absolute(self, path: str) -> str:
        return str(self.project_root / path)

    def save(self) -> List[str]:
        """Flush every session to ``<claude_dir>/<project_id>/<session>.jsonl``."""
        self.project_dir.mkdir(parents=True, exist_ok=True)
        for session_id, entries in self._entries.items():
            lines = [json.dumps(entry) for entry in entries]
            (self.project_dir / f"{session_id}.jsonl").write_text("\n".join(lines) + "\n", encoding="utf-8")
        return sorted(self._entries)

    def write_raw(self, session_id: str, text: str) -> Path:
        self.project_dir.mkdir(parents=True, exist_ok=True)
        path = self.project_dir / f"{session_id}.jsonl"
        path.write_text(text, encoding="utf-8")
        return path

    def instructions(self, text: str, name: str = "CLAUDE.md") -> Path:
        path = self.project_root / name
        path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return path


__all__ = ["SessionBuilder"]
