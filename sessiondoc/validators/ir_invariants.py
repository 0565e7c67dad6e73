"""Hard invariants every DocumentationIR must satisfy."""

from __future__ import annotations

import hashlib
import re
from pathlib import PurePosixPath
from typing import List

from ..errors import InvariantIssue
from .base import ValidationContext, iter_strings

_FILENAME_PATTERN = re.compile(r"[\w.-]+\.[A-Za-z0-9]{1,5}")


class NoRawCodeValidator:
    """Rejects any IR string identical to an artifact's full content."""

    name = "no_raw_code"

    def validate(self, context: ValidationContext) -> List[InvariantIssue]:
        if not context.content_digests:
            return []
        issues: List[InvariantIssue] = []
        for location, text in iter_strings(context.payload):
            if not text.strip():
                continue
            digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
            path = context.content_digests.get(digest)
            if path is not None:
                issues.append(
                    InvariantIssue(
                        validator=self.name,
                        location=location,
                        detail=f"field reproduces the full content of {path}",
                    )
                )
        return issues


class NoPathTitleValidator:
    """Rejects section titles that are file paths."""

    name = "no_path_titles"

    def validate(self, context: ValidationContext) -> List[InvariantIssue]:
        paths = set(context.artifact_paths)
        basenames = {PurePosixPath(path).name for path in paths}
        issues: List[InvariantIssue] = []
        for group in ("features", "decisions"):
            entries = context.payload.get(group) or []
            for index, entry in enumerate(entries):
                title = entry.get("title") if isinstance(entry, dict) else None
                if not isinstance(title, str):
                    continue
                if self.looks_like_path(title, paths, basenames):
                    issues.append(
                        InvariantIssue(
                            validator=self.name,
                            location=f"$.{group}[{index}].title",
                            detail=f"section title '{title}' is a file path",
                        )
                    )
        return issues

    @staticmethod
    def looks_like_path(title: str, paths: set[str], basenames: set[str]) -> bool:
        stripped = title.strip()
        if stripped in paths or stripped in basenames:
            return True
        if "/" in stripped or "\\" in stripped:
            return True
        return bool(_FILENAME_PATTERN.fullmatch(stripped))


DEFAULT_IR_VALIDATORS = (NoRawCodeValidator(), NoPathTitleValidator())


__all__ = ["DEFAULT_IR_VALIDATORS", "NoPathTitleValidator", "NoRawCodeValidator"]
