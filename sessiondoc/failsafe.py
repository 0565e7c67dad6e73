"""Deterministic documentation rendered straight from the IR when AI writing is unavailable."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .postproc.lint import MarkdownLinter
from .prompting.builder import create_environment
from .prompting.constants import FALLBACK_REASONS

if TYPE_CHECKING:  # pragma: no cover
    from .docs.ir import DocumentationIR

FALLBACK_TEMPLATE = "fallback.md.j2"


def render_fallback_document(
    ir: "DocumentationIR",
    reason: str | None = None,
    *,
    templates_dir: Path | None = None,
) -> str:
    """Return the fallback markdown for ``ir``; uses no facts beyond the IR."""
    template = create_environment(templates_dir).get_template(FALLBACK_TEMPLATE)
    rendered = template.render(ir=ir, reason=_format_reason(reason))
    return MarkdownLinter().lint(rendered)


def _format_reason(reason: str | None) -> str | None:
    if not reason:
        return None
    described = FALLBACK_REASONS.get(reason, reason)
    cleaned = " ".join(described.strip().split())
    if not cleaned:
        return None
    return cleaned[:200] + ("…" if len(cleaned) > 200 else "")


__all__ = ["FALLBACK_TEMPLATE", "render_fallback_document"]
