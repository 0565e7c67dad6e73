"""Core data models shared across sessiondoc components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import List, Optional, Tuple


class ToolCallType(str, Enum):
    """Kind of event recorded in a session transcript."""

    WRITE = "write"
    EDIT = "edit"
    MESSAGE = "message"
    OTHER = "other"


class SessionSource(str, Enum):
    CODE = "code"
    CODEX = "codex"


@dataclass(frozen=True)
class SessionEvent:
    """Timestamped event read from session storage."""

    timestamp: str
    tool_call_type: ToolCallType
    path: Optional[str] = None
    content: Optional[str] = None
    message_text: Optional[str] = None
    old_text: Optional[str] = None
    new_text: Optional[str] = None
    sequence: int = 0

    @property
    def is_mutation(self) -> bool:
        return self.tool_call_type in (ToolCallType.WRITE, ToolCallType.EDIT) and bool(self.path)


@dataclass
class SessionRecord:
    """Ordered events of a single assistant session."""

    session_id: str
    events: List[SessionEvent] = field(default_factory=list)
    cwd: Optional[str] = None
    source: SessionSource = SessionSource.CODE


@dataclass(frozen=True)
class UserMessage:
    session_id: str
    text: str
    timestamp: str


@dataclass(frozen=True)
class RawIntentData:
    """Verbatim instructions and user messages collected for a run."""

    instructions: Optional[str]
    user_messages: Tuple[UserMessage, ...] = ()
    session_count: int = 0

    @property
    def has_intent(self) -> bool:
        return bool((self.instructions or "").strip()) or bool(self.user_messages)

    def summary(self) -> str:
        source = "instructions" if self.instructions else "no instructions"
        return f"{source}, {len(self.user_messages)} messages from {self.session_count} sessions"


class ChangeType(str, Enum):
    CREATED = "created"
    MODIFIED = "modified"


@dataclass(frozen=True)
class Signature:
    """Declaration header of a public symbol; never includes the body."""

    name: str
    kind: str
    text: str
    line: int


@dataclass(frozen=True)
class EditDiff:
    """Replacement recorded by an edit event."""

    old_text: str
    new_text: str
    timestamp: str
    applied: bool = True


@dataclass(frozen=True)
class FileArtifact:
    """A documentable file touched during the selected sessions."""

    path: str
    change_type: ChangeType
    latest_content: str
    public_symbols: Tuple[Signature, ...] = ()
    edits: Tuple[EditDiff, ...] = ()
    sessions: Tuple[str, ...] = ()

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix.lower()

    @property
    def line_count(self) -> int:
        return len(self.latest_content.splitlines())

    @property
    def symbol_names(self) -> List[str]:
        return [symbol.name for symbol in self.public_symbols]


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime; unknown values sort first."""
    if not value:
        return datetime.min.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


__all__ = [
    "ChangeType",
    "EditDiff",
    "FileArtifact",
    "RawIntentData",
    "SessionEvent",
    "SessionRecord",
    "SessionSource",
    "Signature",
    "ToolCallType",
    "UserMessage",
    "parse_timestamp",
]
