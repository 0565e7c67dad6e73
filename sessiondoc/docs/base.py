"""Base classes for documentation pipeline stages."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar

from ..config import PipelineConfig
from ..errors import DiagnosticLog, PipelineCancelled

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class PipelineState(str, Enum):
    COLLECTING = "collecting"
    EXTRACTING = "extracting"
    REDUCING = "reducing"
    CLASSIFYING = "classifying"
    STRUCTURING = "structuring"
    SERIALIZING = "serializing"
    WRITING = "writing"
    DONE = "done"
    FAILED = "failed"


class DocAudience(str, Enum):
    """Who the generated document is written for."""

    TECHNICAL = "technical"
    OVERVIEW = "overview"
    AGENT = "agent"

    @classmethod
    def parse(cls, value: "str | DocAudience | None") -> "DocAudience":
        if isinstance(value, DocAudience):
            return value
        lowered = (value or "").strip().lower()
        aliases = {"engineer": cls.TECHNICAL, "business": cls.OVERVIEW}
        if lowered in aliases:
            return aliases[lowered]
        for member in cls:
            if member.value == lowered:
                return member
        raise ValueError(f"Unknown audience '{value}'")


@dataclass
class StageContext:
    """Per-run state handed to every stage; never shared between runs."""

    config: PipelineConfig = field(default_factory=PipelineConfig)
    diagnostics: DiagnosticLog = field(default_factory=DiagnosticLog)
    project_name: str = "Unknown Project"
    audience: DocAudience = DocAudience.TECHNICAL
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise PipelineCancelled("Run cancelled")


class Stage(ABC, Generic[InT, OutT]):
    """Contract for a pure pipeline transformation from ``InT`` to ``OutT``."""

    name: str = "stage"
    state: PipelineState = PipelineState.COLLECTING

    @abstractmethod
    def run(self, payload: InT, context: StageContext) -> OutT:
        """Transform the previous stage's complete output into this stage's output."""


__all__ = ["DocAudience", "PipelineState", "Stage", "StageContext"]
