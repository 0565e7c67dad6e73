"""Artifact extraction: fold file-mutation events into one artifact per path."""

from __future__ import annotations

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import DEFAULT_EXTENSIONS
from ..errors import DiagnosticLog
from ..logging import get_logger
from ..models import (
    ChangeType,
    EditDiff,
    FileArtifact,
    SessionEvent,
    SessionRecord,
    Signature,
    ToolCallType,
    parse_timestamp,
)
from .base import PipelineState, Stage, StageContext
from .symbols import SymbolExtractor, SymbolParseError


@dataclass(frozen=True)
class _Mutation:
    path: str
    event: SessionEvent
    session_index: int
    session_id: str

    def order_key(self) -> tuple:
        return (parse_timestamp(self.event.timestamp), self.session_index, self.event.sequence)


class ArtifactExtractor(Stage[Sequence[SessionRecord], List[FileArtifact]]):
    """Produces one FileArtifact per documentable path, sorted by path."""

    name = "artifacts"
    state = PipelineState.EXTRACTING

    def __init__(
        self,
        symbol_extractor: SymbolExtractor | None = None,
        *,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        max_workers: int = 1,
    ) -> None:
        self.symbol_extractor = symbol_extractor or SymbolExtractor()
        self.extensions = {ext.lower() for ext in extensions}
        self.max_workers = max(1, max_workers)
        self.logger = get_logger("artifacts")

    def run(self, payload: Sequence[SessionRecord], context: StageContext) -> List[FileArtifact]:
        return self.extract(payload, diagnostics=context.diagnostics)

    def extract(
        self,
        records: Sequence[SessionRecord],
        *,
        diagnostics: DiagnosticLog | None = None,
    ) -> List[FileArtifact]:
        diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        per_session = self._scan_sessions(records)

        # Merge step: every mutation for a path is ordered before folding, so
        # parallel scanning never decides which write is latest.
        grouped: Dict[str, List[_Mutation]] = defaultdict(list)
        for mutations in per_session:
            for mutation in mutations:
                grouped[mutation.path].append(mutation)

        artifacts = [self._fold(path, grouped[path], diagnostics) for path in sorted(grouped)]
        self.logger.info(
            "Extracted %d artifacts from %d sessions", len(artifacts), len(records)
        )
        return artifacts

    def is_documentable(self, path: str) -> bool:
        return PurePosixPath(path).suffix.lower() in self.extensions

    def _scan_sessions(self, records: Sequence[SessionRecord]) -> List[List[_Mutation]]:
        indexed = list(enumerate(records))
        if self.max_workers == 1 or len(indexed) < 2:
            return [self._scan_session(item) for item in indexed]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(self._scan_session, indexed))

    def _scan_session(self, item: Tuple[int, SessionRecord]) -> List[_Mutation]:
        index, record = item
        mutations: List[_Mutation] = []
        for event in record.events:
            if not event.is_mutation or event.path is None:
                continue
            path = _relative_path(event.path, record.cwd)
            if not self.is_documentable(path):
                continue
            mutations.append(
                _Mutation(path=path, event=event, session_index=index, session_id=record.session_id)
            )
        return mutations

    def _fold(self, path: str, mutations: List[_Mutation], diagnostics: DiagnosticLog) -> FileArtifact:
        ordered = sorted(mutations, key=_Mutation.order_key)
        content: Optional[str] = None
        edits: List[EditDiff] = []
        writes = 0
        sessions: List[str] = []
        for mutation in ordered:
            event = mutation.event
            if mutation.session_id not in sessions:
                sessions.append(mutation.session_id)
            if event.tool_call_type is ToolCallType.WRITE:
                content = event.content or ""
                writes += 1
                continue
            old_text = event.old_text or ""
            new_text = event.new_text or ""
            applied = False
            if content is None:
                self.logger.debug("Edit to %s precedes any recorded write; content unknown", path)
            elif old_text and old_text in content:
                content = content.replace(old_text, new_text, 1)
                applied = True
            else:
                diagnostics.extraction_warning(
                    self.name,
                    f"Edit to {path} does not match the latest recorded content",
                    subject=path,
                )
            edits.append(
                EditDiff(old_text=old_text, new_text=new_text, timestamp=event.timestamp, applied=applied)
            )

        change_type = ChangeType.CREATED if len(ordered) == 1 and writes == 1 else ChangeType.MODIFIED
        latest_content = content or ""
        return FileArtifact(
            path=path,
            change_type=change_type,
            latest_content=latest_content,
            public_symbols=tuple(self._symbols(path, latest_content, diagnostics)),
            edits=tuple(edits),
            sessions=tuple(sessions),
        )

    def _symbols(self, path: str, content: str, diagnostics: DiagnosticLog) -> List[Signature]:
        try:
            return self.symbol_extractor.extract(path, content)
        except SymbolParseError as exc:
            diagnostics.extraction_warning(self.name, str(exc), subject=path)
            return []


def _relative_path(path: str, cwd: Optional[str]) -> str:
    normalised = path.replace("\\", "/")
    if cwd:
        base = cwd.replace("\\", "/").rstrip("/") + "/"
        if normalised.startswith(base):
            return normalised[len(base) :]
    return normalised


__all__ = ["ArtifactExtractor"]
