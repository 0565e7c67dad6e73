"""Builds writer and classifier prompts from jinja2 templates."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, TYPE_CHECKING

from jinja2 import Environment, FileSystemLoader

from ..docs.base import DocAudience
from .constants import AUDIENCE_GUIDANCE, AUDIENCE_LABELS, AUDIENCE_OUTLINES

if TYPE_CHECKING:  # pragma: no cover
    from ..docs.ir import DocumentationIR

TEMPLATES_DIR = Path(__file__).with_name("templates")
WRITER_CLOSING = "Generate the documentation now."
IR_MARKER = "Documentation IR (JSON):"


def create_environment(templates_dir: Path | None = None) -> Environment:
    """Return a jinja2 environment searching ``templates_dir`` before the bundled templates."""
    directories: List[str] = []
    if templates_dir:
        directories.append(str(templates_dir))
    if str(TEMPLATES_DIR) not in directories:
        directories.append(str(TEMPLATES_DIR))
    return Environment(
        loader=FileSystemLoader(directories),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


@dataclass(frozen=True)
class PromptMessage:
    """Represents a single chat message for LLM prompting."""

    role: str
    content: str


@dataclass(frozen=True)
class Prompt:
    """System and user text for one completion call."""

    system: str
    user: str

    @property
    def messages(self) -> List[PromptMessage]:
        return [
            PromptMessage(role="system", content=self.system),
            PromptMessage(role="user", content=self.user),
        ]

    def render(self) -> str:
        """Plain-text rendering used for previews."""
        return f"{self.system}\n\n{self.user}"


class PromptBuilder:
    """Assembles audience-aware prompts; the IR is the only project data included."""

    WRITER_SYSTEM_PROMPT = (
        "You are a senior technical writer. Write documentation strictly from the structured facts "
        "you are given. Never invent features, files, commands or dependencies, and never paste code "
        "that is not quoted in the facts."
    )
    CLASSIFIER_SYSTEM_PROMPT = (
        "You label sentences from developer conversations. Answer with JSON only."
    )

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir
        self._env = create_environment(templates_dir)

    @property
    def environment(self) -> Environment:
        return self._env

    def build_writer_prompt(self, ir: "DocumentationIR", custom_prompt: str | None = None) -> Prompt:
        audience = ir.audience
        template = self._env.get_template("writer.j2")
        user = template.render(
            project_name=ir.project_name,
            audience_label=AUDIENCE_LABELS[audience],
            guidance=AUDIENCE_GUIDANCE[audience],
            outline=AUDIENCE_OUTLINES[audience],
            custom_prompt=(custom_prompt or "").strip(),
            ir_marker=IR_MARKER,
            ir_json=ir.to_json(include_timestamp=False),
            closing=WRITER_CLOSING,
        )
        return Prompt(system=self.WRITER_SYSTEM_PROMPT, user=user.strip() + "\n")

    def build_classifier_prompt(self, sentences: Sequence[str]) -> Prompt:
        template = self._env.get_template("classifier.j2")
        numbered = [
            {"index": index, "text": json.dumps(text, ensure_ascii=False)}
            for index, text in enumerate(sentences)
        ]
        user = template.render(sentences=numbered)
        return Prompt(system=self.CLASSIFIER_SYSTEM_PROMPT, user=user.strip() + "\n")

    @staticmethod
    def outline_for(audience: DocAudience) -> Sequence[str]:
        return AUDIENCE_OUTLINES[audience]


__all__ = [
    "IR_MARKER",
    "Prompt",
    "PromptBuilder",
    "PromptMessage",
    "TEMPLATES_DIR",
    "WRITER_CLOSING",
    "create_environment",
]
