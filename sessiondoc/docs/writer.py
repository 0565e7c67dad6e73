"""Documentation writer: one AI call over the IR, with a deterministic fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import DiagnosticLog, WriterFailure
from ..failsafe import render_fallback_document
from ..llm.runner import LLMRunner, LLMTimeoutError
from ..logging import get_logger
from ..postproc.lint import MarkdownLinter
from ..prompting.builder import IR_MARKER, WRITER_CLOSING, PromptBuilder
from .base import PipelineState, Stage, StageContext
from .ir import DocumentationIR


@dataclass(frozen=True)
class WriterOutput:
    markdown: str
    used_fallback: bool
    failure: Optional[str] = None


@dataclass(frozen=True)
class WriterInput:
    ir: DocumentationIR
    custom_prompt: Optional[str] = None


class DocumentationWriter(Stage[WriterInput, WriterOutput]):
    """Turns a validated IR into markdown.

    The IR is the only project data the AI sees. Any failure of the call or of
    its response is recorded as a ``writer_failure`` diagnostic and answered
    with the fallback document, so the run still completes.
    """

    name = "writer"
    state = PipelineState.WRITING

    def __init__(
        self,
        runner: Optional[LLMRunner] = None,
        *,
        prompt_builder: Optional[PromptBuilder] = None,
        linter: Optional[MarkdownLinter] = None,
    ) -> None:
        self.runner = runner
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.linter = linter or MarkdownLinter()
        self.logger = get_logger("writer")

    def run(self, payload: WriterInput, context: StageContext) -> WriterOutput:
        return self.write(payload.ir, payload.custom_prompt, diagnostics=context.diagnostics)

    def write(
        self,
        ir: DocumentationIR,
        custom_prompt: str | None = None,
        *,
        diagnostics: DiagnosticLog | None = None,
    ) -> WriterOutput:
        diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        if self.runner is None:
            return self._fallback(ir, "ai_disabled")
        if ir.is_empty:
            return self._fallback(ir, "empty_ir")

        prompt = self.prompt_builder.build_writer_prompt(ir, custom_prompt)
        try:
            response = self.runner.run(prompt.user, system=prompt.system)
            markdown = self._accept(response)
        except WriterFailure as exc:
            diagnostics.writer_failure(self.name, str(exc), subject=exc.reason)
            return self._fallback(ir, exc.reason)
        except LLMTimeoutError as exc:
            self._log_exception("AI writer timed out", exc)
            diagnostics.writer_failure(self.name, str(exc), subject="llm_timeout")
            return self._fallback(ir, "llm_timeout")
        except (RuntimeError, OSError, UnicodeError) as exc:
            self._log_exception("AI writer failed", exc)
            diagnostics.writer_failure(self.name, str(exc), subject="llm_error")
            return self._fallback(ir, "llm_error")

        self.logger.info("AI writer produced %d characters of markdown", len(markdown))
        return WriterOutput(markdown=markdown, used_fallback=False)

    def _accept(self, response: str | None) -> str:
        body = self.linter.strip_outer_fence(response or "")
        if not body:
            raise WriterFailure("llm_empty", "response was empty")
        if self._looks_like_prompt_echo(body):
            raise WriterFailure("llm_prompt_echo", "response repeated the prompt")
        if self._looks_like_structured_payload(body):
            raise WriterFailure("llm_structured_payload", "response was JSON rather than markdown")
        if not self.linter.has_heading(body):
            raise WriterFailure("llm_malformed", "response has no markdown heading")
        return self.linter.lint(body)

    def _fallback(self, ir: DocumentationIR, reason: str) -> WriterOutput:
        self.logger.info("Rendering fallback documentation (%s)", reason)
        return WriterOutput(
            markdown=render_fallback_document(ir, reason),
            used_fallback=True,
            failure=reason,
        )

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)

    @staticmethod
    def _looks_like_prompt_echo(body: str) -> bool:
        markers = (IR_MARKER, WRITER_CLOSING, "Outline:", "Rules:")
        marker_hits = sum(1 for marker in markers if marker in body)
        if marker_hits >= 2:
            return True
        first_line = body.lstrip().split("\n", 1)[0]
        if first_line.startswith(IR_MARKER):
            return True
        return first_line.startswith("Write ") and "documentation for the project" in first_line

    @staticmethod
    def _looks_like_structured_payload(body: str) -> bool:
        sample = body.strip()
        if sample.startswith("{") and sample.endswith("}"):
            return True
        if sample.startswith("[") and sample.endswith("]"):
            return True
        if sample.startswith("{") and '"schema_version"' in sample:
            return True
        return False


__all__ = ["DocumentationWriter", "WriterInput", "WriterOutput"]
