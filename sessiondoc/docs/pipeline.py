"""Pipeline orchestration: fixed-order stages behind an explicit state machine."""

from __future__ import annotations

import logging
import tempfile
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import LLMConfig, SessionDocConfig
from ..errors import (
    Diagnostic,
    DiagnosticLog,
    InvalidTransition,
    PipelineError,
)
from ..llm.runner import LLMRunner
from ..logging import get_logger
from ..models import FileArtifact, RawIntentData, SessionRecord
from ..postproc.lint import MarkdownLinter
from ..prompting.builder import Prompt, PromptBuilder
from ..sessions.project import resolve_project_name
from ..sessions.reader import SessionStore
from ..stores.ir_store import IRStore
from .artifacts import ArtifactExtractor
from .base import DocAudience, PipelineState, StageContext
from .classifier import SentenceClassifier
from .collector import CollectionRequest, DataCollector
from .evidence import EvidenceExtractor, EvidenceRequest, EvidenceSet
from .ir import ConversionInput, DocumentationIR, IRConverter
from .semantic import SemanticExtractor, SemanticInput
from .structure import StructureBuilder, StructureInput
from .symbols import SymbolExtractor
from .writer import DocumentationWriter, WriterInput, WriterOutput

ALLOWED_TRANSITIONS: Mapping[PipelineState, Tuple[PipelineState, ...]] = {
    PipelineState.COLLECTING: (PipelineState.EXTRACTING, PipelineState.FAILED),
    PipelineState.EXTRACTING: (PipelineState.REDUCING, PipelineState.FAILED),
    PipelineState.REDUCING: (PipelineState.CLASSIFYING, PipelineState.FAILED),
    PipelineState.CLASSIFYING: (PipelineState.STRUCTURING, PipelineState.FAILED),
    PipelineState.STRUCTURING: (PipelineState.SERIALIZING, PipelineState.FAILED),
    PipelineState.SERIALIZING: (PipelineState.WRITING, PipelineState.FAILED),
    PipelineState.WRITING: (PipelineState.DONE, PipelineState.FAILED),
    PipelineState.DONE: (),
    PipelineState.FAILED: (),
}


class PipelineStateMachine:
    """Tracks the current stage; every move is checked against ``ALLOWED_TRANSITIONS``."""

    def __init__(self, initial: PipelineState = PipelineState.COLLECTING) -> None:
        self.state = initial
        self.history: List[PipelineState] = [initial]

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.state]

    def can_advance(self, target: PipelineState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def advance(self, target: PipelineState) -> PipelineState:
        if not self.can_advance(target):
            raise InvalidTransition(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target
        self.history.append(target)
        return target

    def fail(self) -> PipelineState:
        return self.advance(PipelineState.FAILED)


class GenerationStatus(str, Enum):
    SUCCESS = "success"
    FALLBACK_USED = "fallback_used"
    NO_FILES_FOUND = "no_files_found"
    WEAK_INTENT = "weak_intent"


@dataclass(frozen=True)
class PipelineRequest:
    project_id: str
    session_ids: Tuple[str, ...]
    project_path: Optional[Path] = None
    project_name: Optional[str] = None
    audience: Optional[str] = None
    custom_prompt: Optional[str] = None
    use_ai: bool = True


@dataclass
class PipelineResult:
    project_name: str
    markdown: str
    used_fallback: bool
    status: GenerationStatus
    state: PipelineState
    ir: DocumentationIR
    ir_path: Optional[Path] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    session_count: int = 0
    file_count: int = 0
    failure: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_name": self.project_name,
            "markdown": self.markdown,
            "used_fallback": self.used_fallback,
            "status": self.status.value,
            "state": self.state.value,
            "ir_path": str(self.ir_path) if self.ir_path else None,
            "diagnostics": [entry.to_dict() for entry in self.diagnostics],
            "session_count": self.session_count,
            "file_count": self.file_count,
            "failure": self.failure,
        }


@dataclass
class PreparedRun:
    """Everything up to the AI call; used for prompt previews."""

    project_name: str
    ir: DocumentationIR
    ir_path: Optional[Path]
    prompt: Prompt
    diagnostics: List[Diagnostic]
    state: PipelineState
    intent: RawIntentData
    artifacts: List[FileArtifact]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_name": self.project_name,
            "ir_path": str(self.ir_path) if self.ir_path else None,
            "system_prompt": self.prompt.system,
            "prompt": self.prompt.user,
            "diagnostics": [entry.to_dict() for entry in self.diagnostics],
            "ir": self.ir.to_dict(),
        }


@dataclass
class _Run:
    machine: PipelineStateMachine
    context: StageContext
    runner: Optional[LLMRunner]
    intent: RawIntentData
    artifacts: List[FileArtifact]
    evidence: EvidenceSet
    ir: DocumentationIR
    ir_path: Optional[Path]


class DocumentationPipeline:
    """Runs collector through writer in fixed order for one project per call.

    Stage objects and the ``StageContext`` are created per run, so concurrent
    runs for different projects share nothing mutable.
    """

    def __init__(
        self,
        config: SessionDocConfig | None = None,
        *,
        llm_runner: LLMRunner | None = None,
        prompt_builder: PromptBuilder | None = None,
        linter: MarkdownLinter | None = None,
        symbol_extractor: SymbolExtractor | None = None,
    ) -> None:
        self.config = config or SessionDocConfig(root=Path.cwd())
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.linter = linter or MarkdownLinter()
        self.symbol_extractor = symbol_extractor or SymbolExtractor()
        self.logger = get_logger("pipeline")
        self._llm_runner = llm_runner

    def run(
        self,
        request: PipelineRequest,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PipelineResult:
        """Produce the final document; fatal errors surface as ``PipelineError``."""
        prepared = self._prepare(request, cancel_event)
        machine = prepared.machine
        context = prepared.context
        try:
            context.check_cancelled()
            machine.advance(PipelineState.WRITING)
            writer = DocumentationWriter(
                prepared.runner,
                prompt_builder=self.prompt_builder,
                linter=self.linter,
            )
            output: WriterOutput = writer.run(
                WriterInput(ir=prepared.ir, custom_prompt=request.custom_prompt), context
            )
            machine.advance(PipelineState.DONE)
        except Exception as exc:
            raise self._failure(machine, exc) from exc

        status = self._status(prepared, output)
        self.logger.info(
            "Generated documentation for %s (%s, fallback=%s)",
            context.project_name,
            status.value,
            output.used_fallback,
        )
        return PipelineResult(
            project_name=context.project_name,
            markdown=output.markdown,
            used_fallback=output.used_fallback,
            status=status,
            state=machine.state,
            ir=prepared.ir,
            ir_path=prepared.ir_path,
            diagnostics=list(context.diagnostics),
            session_count=prepared.intent.session_count,
            file_count=len(prepared.artifacts),
            failure=output.failure,
        )

    def prepare(
        self,
        request: PipelineRequest,
        *,
        cancel_event: threading.Event | None = None,
    ) -> PreparedRun:
        """Run through Serializing and build the writer prompt without calling the AI."""
        prepared = self._prepare(request, cancel_event)
        prompt = self.prompt_builder.build_writer_prompt(prepared.ir, request.custom_prompt)
        return PreparedRun(
            project_name=prepared.context.project_name,
            ir=prepared.ir,
            ir_path=prepared.ir_path,
            prompt=prompt,
            diagnostics=list(prepared.context.diagnostics),
            state=prepared.machine.state,
            intent=prepared.intent,
            artifacts=prepared.artifacts,
        )

    def _prepare(self, request: PipelineRequest, cancel_event: threading.Event | None) -> _Run:
        pipeline_cfg = self.config.pipeline
        audience = DocAudience.parse(request.audience or pipeline_cfg.audience)
        project_name = request.project_name or resolve_project_name(
            request.project_path, fallback=request.project_id
        )
        context = StageContext(
            config=pipeline_cfg,
            diagnostics=DiagnosticLog(),
            project_name=project_name,
            audience=audience,
            cancel_event=cancel_event or threading.Event(),
        )
        machine = PipelineStateMachine()
        self.logger.info(
            "Starting run for %s with %d session(s) [%s]",
            project_name,
            len(request.session_ids),
            audience.value,
        )

        try:
            context.check_cancelled()
            runner = self._resolve_llm_runner() if request.use_ai else None
            store = SessionStore(
                request.project_id,
                claude_dir=self.config.sessions.claude_dir,
                codex_dir=self.config.sessions.codex_dir,
            )
            collector = DataCollector(
                store,
                messages_per_session=pipeline_cfg.messages_per_session,
                instruction_files=pipeline_cfg.instruction_files,
            )
            intent = collector.run(
                CollectionRequest(request.project_path, tuple(request.session_ids)), context
            )
            records: Sequence[SessionRecord] = store.load_many(request.session_ids)

            self._enter(machine, context, PipelineState.EXTRACTING)
            artifacts = ArtifactExtractor(
                self.symbol_extractor,
                extensions=pipeline_cfg.extensions,
                max_workers=pipeline_cfg.max_workers,
            ).run(records, context)

            self._enter(machine, context, PipelineState.REDUCING)
            semantic = SemanticExtractor(
                max_symbols_per_file=pipeline_cfg.max_symbols_per_file,
                classifier=self._classifier(runner),
            )
            excerpts = semantic.excerpt_requests(artifact.path for artifact in artifacts)
            evidence = EvidenceExtractor(
                budget=pipeline_cfg.evidence_budget,
                diff_token_limit=pipeline_cfg.diff_token_limit,
            ).run(EvidenceRequest(tuple(artifacts), tuple(excerpts)), context)

            self._enter(machine, context, PipelineState.CLASSIFYING)
            facts = semantic.run(SemanticInput(intent=intent, evidence=evidence), context)

            self._enter(machine, context, PipelineState.STRUCTURING)
            structure = StructureBuilder().run(
                StructureInput(facts=facts, evidence=evidence, intent=intent), context
            )

            self._enter(machine, context, PipelineState.SERIALIZING)
            ir = IRConverter().run(
                ConversionInput(structure=structure, evidence=evidence, session_count=intent.session_count),
                context,
            )
            ir_path = IRStore(self._debug_dir(), project_id=request.project_id).persist(ir)
        except Exception as exc:
            raise self._failure(machine, exc) from exc

        return _Run(
            machine=machine,
            context=context,
            runner=runner,
            intent=intent,
            artifacts=artifacts,
            evidence=evidence,
            ir=ir,
            ir_path=ir_path,
        )

    @staticmethod
    def _enter(machine: PipelineStateMachine, context: StageContext, state: PipelineState) -> None:
        context.check_cancelled()
        machine.advance(state)

    def _failure(self, machine: PipelineStateMachine, exc: Exception) -> PipelineError:
        if isinstance(exc, PipelineError):
            return exc
        stage = machine.state.value
        if not machine.is_terminal:
            machine.fail()
        self._log_exception(f"Pipeline failed during {stage}", exc)
        return PipelineError(stage, exc)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)

    @staticmethod
    def _status(prepared: _Run, output: WriterOutput) -> GenerationStatus:
        if not prepared.artifacts:
            return GenerationStatus.NO_FILES_FOUND
        if output.used_fallback:
            return GenerationStatus.FALLBACK_USED
        if not prepared.intent.has_intent:
            return GenerationStatus.WEAK_INTENT
        return GenerationStatus.SUCCESS

    def _debug_dir(self) -> Path:
        configured = self.config.pipeline.debug_dir
        if configured is not None:
            return configured
        return Path(tempfile.gettempdir()) / "sessiondoc"

    def _classifier(self, runner: LLMRunner | None) -> SentenceClassifier | None:
        settings = self.config.classifier
        if runner is None or not settings.enabled:
            return None
        return SentenceClassifier(
            runner,
            max_items=settings.max_items,
            prompt_builder=self.prompt_builder,
        )

    def _resolve_llm_runner(self) -> LLMRunner | None:
        if self._llm_runner is not None:
            return self._llm_runner
        llm_cfg = self.config.llm or LLMConfig()
        self._llm_runner = build_llm_runner(llm_cfg)
        return self._llm_runner


def build_llm_runner(llm_cfg: LLMConfig) -> LLMRunner:
    """Create the runner described by the ``llm`` config section."""
    kwargs: Dict[str, object] = {}
    if llm_cfg.executable:
        kwargs["executable"] = llm_cfg.executable
    if llm_cfg.model:
        kwargs["model"] = llm_cfg.model
    if llm_cfg.runner == "cli":
        kwargs["base_url"] = None
    elif llm_cfg.base_url is not None:
        kwargs["base_url"] = llm_cfg.base_url
    if llm_cfg.temperature is not None:
        kwargs["temperature"] = llm_cfg.temperature
    if llm_cfg.max_tokens is not None:
        kwargs["max_tokens"] = llm_cfg.max_tokens
    if llm_cfg.api_key is not None:
        kwargs["api_key"] = llm_cfg.api_key
    if llm_cfg.request_timeout is not None:
        kwargs["request_timeout"] = llm_cfg.request_timeout
    runner = LLMRunner(**kwargs)  # type: ignore[arg-type]
    if llm_cfg.runner == "http" and not runner.base_url:
        raise ValueError("llm.runner 'http' requires llm.base_url")
    return runner


__all__ = [
    "ALLOWED_TRANSITIONS",
    "DocumentationPipeline",
    "GenerationStatus",
    "PipelineRequest",
    "PipelineResult",
    "PipelineStateMachine",
    "PreparedRun",
    "build_llm_runner",
]
