"""Error taxonomy and diagnostics shared by pipeline stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

from .logging import get_logger


class SessionDocError(RuntimeError):
    """Base class for errors raised by sessiondoc."""


class CollectionError(SessionDocError):
    """Raised when session or instruction storage cannot be read."""


class InvariantViolation(SessionDocError):
    """Raised when the IR would break a hard invariant. Always fatal."""

    def __init__(self, message: str, issues: Sequence["InvariantIssue"] = ()) -> None:
        super().__init__(message)
        self.issues = list(issues)


class WriterFailure(SessionDocError):
    """Raised inside the writer when the AI response cannot be used."""

    def __init__(self, reason: str, detail: str | None = None) -> None:
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message)
        self.reason = reason
        self.detail = detail


class PipelineCancelled(SessionDocError):
    """Raised at a stage boundary when the run was cancelled."""


class InvalidTransition(SessionDocError):
    """Raised when the pipeline state machine is asked for a disallowed move."""


class PipelineError(SessionDocError):
    """Fatal pipeline error annotated with the stage at which it occurred."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(f"Pipeline failed during {stage}: {cause}")
        self.stage = stage
        self.cause = cause


@dataclass(frozen=True)
class InvariantIssue:
    """Single invariant breach found while validating the IR."""

    validator: str
    location: str
    detail: str


class DiagnosticKind(str, Enum):
    EXTRACTION_WARNING = "extraction_warning"
    FACT_REJECTED = "fact_rejected"
    WRITER_FAILURE = "writer_failure"


@dataclass(frozen=True)
class Diagnostic:
    """Recoverable problem surfaced alongside the pipeline output."""

    kind: DiagnosticKind
    stage: str
    message: str
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        payload = asdict(self)
        payload["kind"] = self.kind.value
        return payload


class DiagnosticLog:
    """Per-run collector for warnings and rejections."""

    def __init__(self) -> None:
        self._entries: List[Diagnostic] = []
        self.logger = get_logger("diagnostics")

    def extraction_warning(self, stage: str, message: str, *, subject: str | None = None) -> Diagnostic:
        return self._record(DiagnosticKind.EXTRACTION_WARNING, stage, message, subject)

    def fact_rejected(self, stage: str, message: str, *, subject: str | None = None) -> Diagnostic:
        return self._record(DiagnosticKind.FACT_REJECTED, stage, message, subject)

    def writer_failure(self, stage: str, message: str, *, subject: str | None = None) -> Diagnostic:
        return self._record(DiagnosticKind.WRITER_FAILURE, stage, message, subject)

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [entry for entry in self._entries if entry.kind is kind]

    def _record(
        self,
        kind: DiagnosticKind,
        stage: str,
        message: str,
        subject: str | None,
    ) -> Diagnostic:
        entry = Diagnostic(kind=kind, stage=stage, message=message, subject=subject)
        self._entries.append(entry)
        if kind is DiagnosticKind.FACT_REJECTED:
            self.logger.info("[%s] fact rejected: %s", stage, message)
        else:
            self.logger.warning("[%s] %s", stage, message)
        return entry

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "CollectionError",
    "Diagnostic",
    "DiagnosticKind",
    "DiagnosticLog",
    "InvalidTransition",
    "InvariantIssue",
    "InvariantViolation",
    "PipelineCancelled",
    "PipelineError",
    "SessionDocError",
    "WriterFailure",
]
