"""Data collection: instruction file plus the first user messages of each session."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..logging import get_logger
from ..models import RawIntentData, SessionRecord, ToolCallType, UserMessage
from ..sessions.project import DEFAULT_INSTRUCTION_FILES, read_instructions
from ..sessions.reader import SessionStore
from .base import PipelineState, Stage, StageContext


@dataclass(frozen=True)
class CollectionRequest:
    project_path: Optional[Path]
    session_ids: Tuple[str, ...] = ()


class DataCollector(Stage[CollectionRequest, RawIntentData]):
    """Reads instructions and user messages verbatim; selection is positional only."""

    name = "collector"
    state = PipelineState.COLLECTING

    def __init__(
        self,
        store: SessionStore,
        *,
        messages_per_session: int = 10,
        instruction_files: Sequence[str] = DEFAULT_INSTRUCTION_FILES,
    ) -> None:
        self.store = store
        self.messages_per_session = messages_per_session
        self.instruction_files = tuple(instruction_files)
        self.logger = get_logger("collector")

    def run(self, payload: CollectionRequest, context: StageContext) -> RawIntentData:
        return self.collect(payload.project_path, payload.session_ids)

    def collect(self, project_path: Path | None, session_ids: Sequence[str]) -> RawIntentData:
        """Return instructions and the first N user messages of each session in order."""
        instructions = read_instructions(project_path, self.instruction_files)
        records = self.store.load_many(session_ids)
        messages: List[UserMessage] = []
        for record in records:
            messages.extend(self._first_messages(record))
        data = RawIntentData(
            instructions=instructions,
            user_messages=tuple(messages),
            session_count=len(records),
        )
        self.logger.info("Collected %s", data.summary())
        return data

    def _first_messages(self, record: SessionRecord) -> List[UserMessage]:
        selected: List[UserMessage] = []
        for event in record.events:
            if len(selected) >= self.messages_per_session:
                break
            if event.tool_call_type is not ToolCallType.MESSAGE or not event.message_text:
                continue
            selected.append(
                UserMessage(
                    session_id=record.session_id,
                    text=event.message_text,
                    timestamp=event.timestamp,
                )
            )
        return selected


__all__ = ["CollectionRequest", "DataCollector"]
