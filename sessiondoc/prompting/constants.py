"""Shared constants for writer prompting and fallbacks."""

from __future__ import annotations

from ..docs.base import DocAudience

AUDIENCE_LABELS: dict[DocAudience, str] = {
    DocAudience.TECHNICAL: "technical",
    DocAudience.OVERVIEW: "high-level overview",
    DocAudience.AGENT: "coding-agent context",
}

AUDIENCE_OUTLINES: dict[DocAudience, tuple[str, ...]] = {
    DocAudience.TECHNICAL: (
        "Overview",
        "Architecture",
        "Features",
        "Key Decisions",
        "Constraints",
        "Current State",
    ),
    DocAudience.OVERVIEW: (
        "Overview",
        "What It Does",
        "Key Decisions",
        "Current State",
    ),
    DocAudience.AGENT: (
        "Project Context",
        "Features",
        "Conventions and Constraints",
        "Key Decisions",
        "Open Work",
    ),
}

AUDIENCE_GUIDANCE: dict[DocAudience, str] = {
    DocAudience.TECHNICAL: (
        "Readers are engineers joining the project. Reference symbols and files where the IR names them."
    ),
    DocAudience.OVERVIEW: (
        "Readers are non-engineers. Describe capabilities in plain language and avoid code identifiers."
    ),
    DocAudience.AGENT: (
        "Readers are coding agents resuming the work. Be terse, list constraints as rules, and keep "
        "open work actionable."
    ),
}

FALLBACK_REASONS: dict[str, str] = {
    "ai_disabled": "AI writing was disabled for this run",
    "empty_ir": "no documentable facts were found",
    "llm_error": "the AI writer failed",
    "llm_timeout": "the AI writer timed out",
    "llm_empty": "the AI writer returned nothing",
    "llm_prompt_echo": "the AI writer echoed its prompt",
    "llm_structured_payload": "the AI writer returned structured data instead of markdown",
    "llm_malformed": "the AI writer returned malformed markdown",
}


__all__ = ["AUDIENCE_GUIDANCE", "AUDIENCE_LABELS", "AUDIENCE_OUTLINES", "FALLBACK_REASONS"]
