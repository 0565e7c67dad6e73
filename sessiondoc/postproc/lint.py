"""Linting utilities for generated markdown."""

from __future__ import annotations

import re
from typing import List

_FENCE = re.compile(r"^```[\w-]*\s*$")
_HEADING = re.compile(r"^(#{1,6})([^#\s])")


class MarkdownLinter:
    """Normalises headings, blank lines and code fences in writer output."""

    def strip_outer_fence(self, markdown: str) -> str:
        """Drop a code fence wrapping the whole document."""
        lines = markdown.strip().splitlines()
        if len(lines) >= 2 and _FENCE.match(lines[0].strip()) and lines[-1].strip() == "```":
            return "\n".join(lines[1:-1]).strip()
        return markdown.strip()

    def lint(self, markdown: str) -> str:
        normalized = markdown.replace("\r\n", "\n").replace("\r", "\n")
        cleaned: List[str] = []
        in_code = False
        previous_blank = False

        for line in normalized.split("\n"):
            stripped = line.rstrip()
            if stripped.lstrip().startswith("```"):
                if not in_code and cleaned and cleaned[-1] != "":
                    cleaned.append("")
                in_code = not in_code
                cleaned.append(stripped)
                previous_blank = False
                continue

            if not in_code:
                stripped = _HEADING.sub(r"\1 \2", stripped)
                if stripped.startswith("#") and cleaned and cleaned[-1] != "":
                    cleaned.append("")
                if not stripped:
                    if previous_blank or not cleaned:
                        continue
                    previous_blank = True
                    cleaned.append("")
                    continue

            cleaned.append(stripped)
            previous_blank = False

        if in_code:
            cleaned.append("```")

        while cleaned and cleaned[-1] == "":
            cleaned.pop()

        return "\n".join(cleaned) + "\n"

    @staticmethod
    def has_heading(markdown: str) -> bool:
        return any(line.startswith("#") for line in markdown.splitlines())


__all__ = ["MarkdownLinter"]
