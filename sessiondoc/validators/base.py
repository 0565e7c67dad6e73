"""Core validation data structures and helpers."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Protocol, Set, Tuple

from ..errors import InvariantIssue

_TOKEN_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_.:/-]*")
_CAMEL_PATTERN = re.compile(r"(?<!^)(?=[A-Z])")
_STOPWORDS = {
    "about",
    "after",
    "all",
    "also",
    "and",
    "any",
    "are",
    "because",
    "being",
    "between",
    "both",
    "but",
    "can",
    "could",
    "each",
    "for",
    "from",
    "have",
    "into",
    "its",
    "just",
    "let",
    "lets",
    "like",
    "make",
    "more",
    "must",
    "need",
    "only",
    "other",
    "over",
    "please",
    "should",
    "some",
    "than",
    "that",
    "the",
    "their",
    "them",
    "then",
    "there",
    "these",
    "they",
    "this",
    "those",
    "through",
    "under",
    "use",
    "using",
    "want",
    "was",
    "were",
    "what",
    "when",
    "where",
    "which",
    "will",
    "with",
    "within",
    "would",
    "you",
    "your",
}


def tokenize(text: str) -> Set[str]:
    """Return normalised lowercase terms used to match sentences against evidence."""
    tokens: Set[str] = set()
    for match in _TOKEN_PATTERN.finditer(text):
        raw = match.group(0).strip("`").strip(":;,!.")
        cleaned = raw.strip("()[]{}<>")
        if len(cleaned) < 3:
            continue
        lowered = cleaned.lower()
        if lowered not in _STOPWORDS:
            tokens.add(lowered)
        if any(c.isupper() for c in cleaned[1:]):
            parts = [part.lower() for part in _CAMEL_PATTERN.split(cleaned) if part]
            tokens.update(part for part in parts if len(part) >= 3 and part not in _STOPWORDS)
        for splitter in ("-", "_", "/", ".", ":"):
            if splitter in cleaned:
                for subpart in cleaned.split(splitter):
                    for piece in _CAMEL_PATTERN.split(subpart):
                        lowered_piece = piece.lower()
                        if len(lowered_piece) >= 3 and lowered_piece not in _STOPWORDS:
                            tokens.add(lowered_piece)
    for token in list(tokens):
        if token.endswith("es") and len(token) > 5:
            tokens.add(token[:-2])
        if token.endswith("s") and len(token) > 4:
            tokens.add(token[:-1])
    return tokens


@dataclass
class ValidationContext:
    """Context shared with validators when checking a serialised IR."""

    payload: Dict[str, Any]
    content_digests: Dict[str, str] = field(default_factory=dict)
    artifact_paths: List[str] = field(default_factory=list)


class Validator(Protocol):
    """Protocol implemented by IR validators."""

    name: str

    def validate(self, context: ValidationContext) -> List[InvariantIssue]:
        """Run validation and return any issues."""


def iter_strings(value: Any, location: str = "$") -> Iterator[Tuple[str, str]]:
    """Yield ``(location, text)`` for every string nested in a JSON-like value."""
    if isinstance(value, str):
        yield location, value
        return
    if isinstance(value, dict):
        for key, item in value.items():
            yield from iter_strings(item, f"{location}.{key}")
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            yield from iter_strings(item, f"{location}[{index}]")


def run_validators(
    validators: Iterable[Validator], context: ValidationContext
) -> List[InvariantIssue]:
    issues: List[InvariantIssue] = []
    for validator in validators:
        issues.extend(validator.validate(context))
    return issues


__all__ = [
    "ValidationContext",
    "Validator",
    "iter_strings",
    "run_validators",
    "tokenize",
]
