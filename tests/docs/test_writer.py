"""Tests for the AI documentation writer and its fallback paths."""

from __future__ import annotations

import json

import pytest

from sessiondoc.docs.writer import DocumentationWriter
from sessiondoc.errors import DiagnosticKind, DiagnosticLog
from sessiondoc.llm.runner import LLMError, LLMTimeoutError
from sessiondoc.prompting.builder import IR_MARKER
from tests._fixtures.ir_factory import empty_ir, sample_ir

GOOD_MARKDOWN = """# Habit Tracker

## Overview
A small service that tracks daily habits.

## Features
### Authentication
- Users can log in.
"""


def test_writer_returns_linted_markdown(fake_llm) -> None:
    runner = fake_llm("```markdown\n" + GOOD_MARKDOWN + "```")
    diagnostics = DiagnosticLog()

    output = DocumentationWriter(runner).write(sample_ir(), "Keep it short.", diagnostics=diagnostics)

    assert output.used_fallback is False
    assert output.failure is None
    assert output.markdown.startswith("# Habit Tracker\n\n## Overview\n")
    assert "\n\n### Authentication\n" in output.markdown
    assert len(diagnostics) == 0
    request = runner.requests[0]
    assert IR_MARKER in request.prompt
    assert "Keep it short." in request.prompt
    assert request.system


def test_writer_makes_exactly_one_call(fake_llm) -> None:
    runner = fake_llm("Just prose without headings.")

    DocumentationWriter(runner).write(sample_ir())

    assert len(runner.requests) == 1


def test_no_runner_renders_fallback() -> None:
    output = DocumentationWriter(None).write(sample_ir())

    assert output.used_fallback is True
    assert output.failure == "ai_disabled"
    assert output.markdown.startswith("# Habit Tracker Documentation")


def test_empty_ir_skips_the_call(fake_llm) -> None:
    runner = fake_llm(GOOD_MARKDOWN)

    output = DocumentationWriter(runner).write(empty_ir())

    assert output.failure == "empty_ir"
    assert runner.requests == []


def test_timeout_falls_back_with_diagnostic(fake_llm) -> None:
    def slow(request):
        raise LLMTimeoutError("no answer within 1s")

    diagnostics = DiagnosticLog()

    output = DocumentationWriter(fake_llm(slow)).write(sample_ir(), diagnostics=diagnostics)

    assert output.used_fallback is True
    assert output.failure == "llm_timeout"
    failures = diagnostics.of_kind(DiagnosticKind.WRITER_FAILURE)
    assert [entry.subject for entry in failures] == ["llm_timeout"]
    assert "timed out" in output.markdown


def test_service_error_falls_back(fake_llm) -> None:
    def broken(request):
        raise LLMError("exit code 1")

    output = DocumentationWriter(fake_llm(broken)).write(sample_ir())

    assert output.failure == "llm_error"


@pytest.mark.parametrize(
    ("response", "reason"),
    [
        ("   ", "llm_empty"),
        (f"{IR_MARKER}\n{{}}", "llm_prompt_echo"),
        ('Write technical documentation for the project "Habit Tracker".\n\n# Title', "llm_prompt_echo"),
        ("Rules:\n- x\n\nOutline:\n- Overview\n\n# Title", "llm_prompt_echo"),
        (json.dumps({"schema_version": "1", "features": []}), "llm_structured_payload"),
        ("[1, 2, 3]", "llm_structured_payload"),
        ("No headings here, only prose.", "llm_malformed"),
    ],
)
def test_unusable_responses_fall_back(fake_llm, response, reason) -> None:
    diagnostics = DiagnosticLog()

    output = DocumentationWriter(fake_llm(response)).write(sample_ir(), diagnostics=diagnostics)

    assert output.used_fallback is True
    assert output.failure == reason
    assert [entry.subject for entry in diagnostics] == [reason]


def test_undecodable_response_falls_back(fake_llm) -> None:
    def garbled(request):
        return b"# Doc\n\xff\xfe".decode("utf-8")

    output = DocumentationWriter(fake_llm(garbled)).write(sample_ir())

    assert output.used_fallback
    assert output.failure == "llm_error"
