"""Readers for assistant session transcripts stored as JSONL."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import CollectionError
from ..logging import get_logger
from ..models import SessionEvent, SessionRecord, SessionSource, ToolCallType

CODEX_PREFIX = "codex:"


def default_claude_dir() -> Path:
    return Path.home() / ".claude" / "projects"


def default_codex_dir() -> Path:
    return Path.home() / ".codex" / "sessions"


class SessionStore:
    """Loads session records for one project and memoises them per instance."""

    def __init__(
        self,
        project_id: str,
        *,
        claude_dir: Path | None = None,
        codex_dir: Path | None = None,
    ) -> None:
        self.project_id = project_id
        self.claude_dir = claude_dir or default_claude_dir()
        self.codex_dir = codex_dir or default_codex_dir()
        self.logger = get_logger("sessions")
        self._cache: Dict[str, SessionRecord] = {}

    @property
    def project_dir(self) -> Path:
        return self.claude_dir / self.project_id

    def load(self, session_id: str) -> SessionRecord:
        """Return the record for ``session_id``; ``codex:``-prefixed ids read Codex storage."""
        cached = self._cache.get(session_id)
        if cached is not None:
            return cached
        if session_id.startswith(CODEX_PREFIX):
            record = self._load_codex(session_id[len(CODEX_PREFIX) :])
        else:
            record = self._load_claude(session_id)
        self._cache[session_id] = record
        return record

    def load_many(self, session_ids: Iterable[str]) -> List[SessionRecord]:
        return [self.load(session_id) for session_id in session_ids]

    def list_sessions(self) -> List[str]:
        """Return session ids available for the project, sorted by name."""
        if not self.project_dir.is_dir():
            return []
        return sorted(path.stem for path in self.project_dir.glob("*.jsonl"))

    def _load_claude(self, session_id: str) -> SessionRecord:
        path = self.project_dir / f"{session_id}.jsonl"
        if not path.is_file():
            raise CollectionError(f"Session '{session_id}' not found at {path}")
        entries = list(_read_jsonl(path))
        record = SessionRecord(session_id=session_id, source=SessionSource.CODE)
        sequence = 0
        for entry in entries:
            if record.cwd is None and isinstance(entry.get("cwd"), str):
                record.cwd = entry["cwd"]
            for event in _claude_events(entry, sequence):
                record.events.append(event)
                sequence += 1
        self.logger.debug(
            "Loaded session %s with %d events from %s", session_id, len(record.events), path
        )
        return record

    def _load_codex(self, session_id: str) -> SessionRecord:
        if not self.codex_dir.is_dir():
            raise CollectionError(f"Codex session directory {self.codex_dir} does not exist")
        for path in sorted(self.codex_dir.rglob("*.jsonl")):
            record = _parse_codex_file(path, session_id)
            if record is not None:
                self.logger.debug(
                    "Loaded codex session %s with %d events from %s",
                    session_id,
                    len(record.events),
                    path,
                )
                return record
        raise CollectionError(f"Codex session '{session_id}' not found under {self.codex_dir}")


def _read_jsonl(path: Path) -> Iterator[Dict[str, Any]]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise CollectionError(f"Unable to read session file {path}: {exc}") from exc

    numbered = [(index, line) for index, line in enumerate(lines, start=1) if line.strip()]
    for position, (line_no, line) in enumerate(numbered):
        try:
            value = json.loads(line)
        except json.JSONDecodeError as exc:
            # Transcripts are append-only; only the final line may be mid-write.
            if position == len(numbered) - 1:
                get_logger("sessions").debug("Skipping partial trailing line in %s", path)
                return
            raise CollectionError(f"Corrupt session file {path} at line {line_no}: {exc}") from exc
        if not isinstance(value, dict):
            raise CollectionError(f"Corrupt session file {path} at line {line_no}: expected an object")
        yield value


def _claude_events(entry: Dict[str, Any], start: int) -> List[SessionEvent]:
    entry_type = entry.get("type")
    timestamp = str(entry.get("timestamp") or "")
    message = entry.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")

    if entry_type == "user":
        if entry.get("isMeta"):
            return []
        texts = _user_texts(content)
        return [
            SessionEvent(
                timestamp=timestamp,
                tool_call_type=ToolCallType.MESSAGE,
                message_text=text,
                sequence=start + offset,
            )
            for offset, text in enumerate(texts)
        ]

    if entry_type == "assistant" and isinstance(content, list):
        events: List[SessionEvent] = []
        for block in content:
            if not isinstance(block, dict) or block.get("type") != "tool_use":
                continue
            for tool_type, path, body, old_text, new_text in _tool_mutations(block):
                events.append(
                    SessionEvent(
                        timestamp=timestamp,
                        tool_call_type=tool_type,
                        path=path,
                        content=body,
                        old_text=old_text,
                        new_text=new_text,
                        sequence=start + len(events),
                    )
                )
        return events

    return []


def _user_texts(content: Any) -> List[str]:
    if isinstance(content, str):
        return [content] if content.strip() else []
    texts: List[str] = []
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                if isinstance(text, str) and text.strip():
                    texts.append(text)
    return texts


_Mutation = Tuple[ToolCallType, str, Optional[str], Optional[str], Optional[str]]


def _tool_mutations(block: Dict[str, Any]) -> List[_Mutation]:
    name = block.get("name")
    tool_input = block.get("input")
    if not isinstance(tool_input, dict):
        return []
    path = tool_input.get("file_path")
    if not isinstance(path, str) or not path:
        return []

    if name == "Write":
        body = tool_input.get("content")
        return [(ToolCallType.WRITE, path, body if isinstance(body, str) else "", None, None)]
    if name == "Edit":
        return [
            (
                ToolCallType.EDIT,
                path,
                None,
                _as_text(tool_input.get("old_string")),
                _as_text(tool_input.get("new_string")),
            )
        ]
    if name == "MultiEdit":
        mutations: List[_Mutation] = []
        edits = tool_input.get("edits")
        if isinstance(edits, list):
            for edit in edits:
                if isinstance(edit, dict):
                    mutations.append(
                        (
                            ToolCallType.EDIT,
                            path,
                            None,
                            _as_text(edit.get("old_string")),
                            _as_text(edit.get("new_string")),
                        )
                    )
        return mutations
    return []


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _parse_codex_file(path: Path, session_id: str) -> Optional[SessionRecord]:
    record: Optional[SessionRecord] = None
    sequence = 0
    for entry in _read_jsonl(path):
        entry_type = entry.get("type")
        payload = entry.get("payload")
        if not isinstance(payload, dict):
            continue
        if entry_type == "session_meta":
            if payload.get("id") != session_id:
                return None
            cwd = payload.get("cwd")
            record = SessionRecord(
                session_id=f"{CODEX_PREFIX}{session_id}",
                cwd=cwd if isinstance(cwd, str) else None,
                source=SessionSource.CODEX,
            )
            continue
        if record is None or entry_type != "response_item":
            continue
        if payload.get("type") != "message" or payload.get("role") != "user":
            continue
        content = payload.get("content")
        if not isinstance(content, list):
            continue
        for item in content:
            if isinstance(item, dict) and item.get("type") == "input_text":
                text = item.get("text")
                if isinstance(text, str) and text.strip():
                    record.events.append(
                        SessionEvent(
                            timestamp=str(entry.get("timestamp") or ""),
                            tool_call_type=ToolCallType.MESSAGE,
                            message_text=text,
                            sequence=sequence,
                        )
                    )
                    sequence += 1
    return record


__all__ = ["CODEX_PREFIX", "SessionStore", "default_claude_dir", "default_codex_dir"]
