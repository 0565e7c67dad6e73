"""Evidence extraction: reduce artifacts to bounded, IR-safe proof snippets."""

from __future__ import annotations

import difflib
import hashlib
import math
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from ..errors import DiagnosticLog
from ..logging import get_logger
from ..models import ChangeType, FileArtifact, Signature
from .base import PipelineState, Stage, StageContext

CHARS_PER_TOKEN = 4

_LANGUAGE_NAMES = {
    ".py": "Python",
    ".pyi": "Python",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".rs": "Rust",
    ".go": "Go",
    ".css": "CSS",
    ".scss": "SCSS",
}

_JS_IMPORT_PATTERN = re.compile(r"""(?:from\s+|require\(\s*|import\s+)['"]([^'"]+)['"]""")
_PY_IMPORT_PATTERN = re.compile(r"^\s*(?:from\s+([\w.]+)\s+import|import\s+([\w.]+))", re.MULTILINE)
_RUST_USE_PATTERN = re.compile(r"^\s*(?:pub\s+)?use\s+([A-Za-z_][\w]*)::", re.MULTILINE)
_RUST_LOCAL_ROOTS = {"crate", "self", "super", "std", "core", "alloc"}


class EvidenceKind(str, Enum):
    SIGNATURE = "signature"
    DIFF = "diff"
    EXCERPT = "excerpt"


@dataclass(frozen=True)
class EvidenceSnippet:
    """Minimal proof text; the only file-derived text allowed into the IR."""

    id: str
    source_ref: str
    kind: EvidenceKind
    text: str
    token_cost_estimate: int
    truncated: bool = False
    symbol: Optional[str] = None
    symbol_kind: Optional[str] = None
    justification: Optional[str] = None


@dataclass(frozen=True)
class ArtifactSummary:
    """Content-free metadata about an artifact kept alongside its evidence."""

    path: str
    change_type: ChangeType
    language: Optional[str]
    line_count: int
    imports: Tuple[str, ...]
    sessions: Tuple[str, ...]
    content_digest: Optional[str]
    symbol_count: int


@dataclass(frozen=True)
class ExcerptRequest:
    """Justified request for file content made by a downstream stage."""

    path: str
    justification: str


@dataclass(frozen=True)
class EvidenceRequest:
    artifacts: Tuple[FileArtifact, ...]
    excerpts: Tuple[ExcerptRequest, ...] = ()


def estimate_tokens(text: str) -> int:
    """Approximate token count at four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def content_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EvidenceSet:
    """Ordered snippets plus the id lookup table used to resolve fact references."""

    def __init__(self, budget: int) -> None:
        self.budget = budget
        self.used_tokens = 0
        self._snippets: Dict[str, EvidenceSnippet] = {}
        self._summaries: Dict[str, ArtifactSummary] = {}

    def add(self, snippet: EvidenceSnippet, *, charged: bool) -> bool:
        if snippet.id in self._snippets:
            return False
        self._snippets[snippet.id] = snippet
        if charged:
            self.used_tokens += snippet.token_cost_estimate
        return True

    def add_summary(self, summary: ArtifactSummary) -> None:
        self._summaries[summary.path] = summary

    @property
    def remaining_budget(self) -> int:
        return max(0, self.budget - self.used_tokens)

    def get(self, ref: str) -> Optional[EvidenceSnippet]:
        return self._snippets.get(ref)

    def resolve(self, refs: Iterable[str]) -> List[EvidenceSnippet]:
        return [self._snippets[ref] for ref in refs if ref in self._snippets]

    def for_source(
        self, path: str, kinds: Sequence[EvidenceKind] | None = None
    ) -> List[EvidenceSnippet]:
        return [
            snippet
            for snippet in self._snippets.values()
            if snippet.source_ref == path and (kinds is None or snippet.kind in kinds)
        ]

    def summary(self, path: str) -> Optional[ArtifactSummary]:
        return self._summaries.get(path)

    @property
    def summaries(self) -> List[ArtifactSummary]:
        return [self._summaries[path] for path in sorted(self._summaries)]

    @property
    def snippets(self) -> List[EvidenceSnippet]:
        return list(self._snippets.values())

    def content_digests(self) -> Dict[str, str]:
        """Map digest to path for every artifact with non-blank content."""
        return {
            summary.content_digest: summary.path
            for summary in self.summaries
            if summary.content_digest is not None
        }

    def reproduced_path(self, text: str) -> Optional[str]:
        """Return the artifact whose whole content equals ``text``, if any."""
        if not text.strip():
            return None
        return self.content_digests().get(content_digest(text))

    def __contains__(self, ref: object) -> bool:
        return ref in self._snippets

    def __iter__(self) -> Iterator[EvidenceSnippet]:
        return iter(self.snippets)

    def __len__(self) -> int:
        return len(self._snippets)


class EvidenceExtractor(Stage[EvidenceRequest, EvidenceSet]):
    """Builds a bounded EvidenceSet; full content only for justified requests."""

    name = "evidence"
    state = PipelineState.REDUCING

    def __init__(self, *, budget: int = 2000, diff_token_limit: int = 200) -> None:
        self.budget = budget
        self.diff_token_limit = diff_token_limit
        self.logger = get_logger("evidence")

    def run(self, payload: EvidenceRequest, context: StageContext) -> EvidenceSet:
        return self.extract(payload.artifacts, payload.excerpts, diagnostics=context.diagnostics)

    def extract(
        self,
        artifacts: Sequence[FileArtifact],
        requests: Sequence[ExcerptRequest] = (),
        *,
        diagnostics: DiagnosticLog | None = None,
    ) -> EvidenceSet:
        diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        evidence = EvidenceSet(self.budget)
        by_path = {artifact.path: artifact for artifact in artifacts}
        ordered = [by_path[path] for path in sorted(by_path)]

        for artifact in ordered:
            evidence.add_summary(_summarise(artifact))
            for signature in artifact.public_symbols:
                evidence.add(self._signature_snippet(artifact, signature), charged=False)

        for request in requests:
            artifact = by_path.get(request.path)
            if artifact is None:
                self.logger.debug("Excerpt requested for unknown artifact %s", request.path)
                continue
            evidence.add(self.request_excerpt(artifact, request.justification, evidence), charged=True)

        for artifact in ordered:
            if not artifact.edits:
                continue
            if evidence.remaining_budget == 0:
                diagnostics.extraction_warning(
                    self.name,
                    f"Evidence budget exhausted; diff for {artifact.path} omitted",
                    subject=artifact.path,
                )
                continue
            snippet = self._diff_snippet(artifact, min(self.diff_token_limit, evidence.remaining_budget))
            if snippet is not None:
                evidence.add(snippet, charged=True)

        self.logger.info(
            "Reduced %d artifacts to %d snippets (%d/%d budget tokens)",
            len(ordered),
            len(evidence),
            evidence.used_tokens,
            evidence.budget,
        )
        return evidence

    def request_excerpt(
        self,
        artifact: FileArtifact,
        justification: str,
        evidence: EvidenceSet,
    ) -> EvidenceSnippet:
        """Return the artifact content as an excerpt, truncated to the remaining budget."""
        if not justification.strip():
            raise ValueError("Excerpt requests require a justification")
        limit = evidence.remaining_budget
        text, truncated = truncate_to_tokens(artifact.latest_content, limit)
        if truncated:
            self.logger.debug(
                "Excerpt for %s truncated to %d tokens", artifact.path, estimate_tokens(text)
            )
        return _make_snippet(
            artifact.path,
            EvidenceKind.EXCERPT,
            text,
            truncated=truncated,
            justification=justification,
        )

    def _signature_snippet(self, artifact: FileArtifact, signature: Signature) -> EvidenceSnippet:
        text = signature.text
        if text.strip() == artifact.latest_content.strip():
            text = f"{signature.kind} {signature.name}"
        return _make_snippet(
            artifact.path,
            EvidenceKind.SIGNATURE,
            text,
            symbol=signature.name,
            symbol_kind=signature.kind,
        )

    def _diff_snippet(self, artifact: FileArtifact, limit: int) -> Optional[EvidenceSnippet]:
        edit = artifact.edits[-1]
        lines = difflib.unified_diff(
            edit.old_text.splitlines(),
            edit.new_text.splitlines(),
            fromfile=f"a/{artifact.path}",
            tofile=f"b/{artifact.path}",
            lineterm="",
            n=1,
        )
        diff = "\n".join(lines)
        if not diff:
            return None
        text, truncated = truncate_to_tokens(diff, limit)
        return _make_snippet(artifact.path, EvidenceKind.DIFF, text, truncated=truncated)


def truncate_to_tokens(text: str, max_tokens: int) -> Tuple[str, bool]:
    """Cut ``text`` so its token estimate is at most ``max_tokens``."""
    max_chars = max(0, max_tokens) * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text, False
    cut = text[:max_chars]
    newline = cut.rfind("\n")
    if newline > max_chars // 2:
        cut = cut[:newline]
    return cut, True


def _make_snippet(
    source: str,
    kind: EvidenceKind,
    text: str,
    *,
    truncated: bool = False,
    symbol: str | None = None,
    symbol_kind: str | None = None,
    justification: str | None = None,
) -> EvidenceSnippet:
    digest = hashlib.sha1(
        "\0".join((kind.value, source, symbol or "", text)).encode("utf-8")
    ).hexdigest()
    return EvidenceSnippet(
        id=f"ev-{digest[:12]}",
        source_ref=source,
        kind=kind,
        text=text,
        token_cost_estimate=estimate_tokens(text),
        truncated=truncated,
        symbol=symbol,
        symbol_kind=symbol_kind,
        justification=justification,
    )


def _summarise(artifact: FileArtifact) -> ArtifactSummary:
    content = artifact.latest_content
    return ArtifactSummary(
        path=artifact.path,
        change_type=artifact.change_type,
        language=_LANGUAGE_NAMES.get(artifact.extension),
        line_count=artifact.line_count,
        imports=scan_imports(artifact.path, content),
        sessions=artifact.sessions,
        content_digest=content_digest(content) if content.strip() else None,
        symbol_count=len(artifact.public_symbols),
    )


def scan_imports(path: str, content: str) -> Tuple[str, ...]:
    """Return the sorted package names a file imports."""
    suffix = PurePosixPath(path).suffix.lower()
    names: set[str] = set()
    if suffix in (".ts", ".tsx", ".js", ".jsx", ".mjs"):
        for match in _JS_IMPORT_PATTERN.finditer(content):
            specifier = match.group(1)
            if specifier.startswith((".", "/")):
                continue
            parts = specifier.split("/")
            names.add("/".join(parts[:2]) if specifier.startswith("@") else parts[0])
    elif suffix in (".py", ".pyi"):
        for match in _PY_IMPORT_PATTERN.finditer(content):
            module = match.group(1) or match.group(2) or ""
            if module and not module.startswith("."):
                names.add(module.split(".")[0])
    elif suffix == ".rs":
        for match in _RUST_USE_PATTERN.finditer(content):
            root = match.group(1)
            if root not in _RUST_LOCAL_ROOTS:
                names.add(root)
    return tuple(sorted(names))


__all__ = [
    "ArtifactSummary",
    "CHARS_PER_TOKEN",
    "EvidenceExtractor",
    "EvidenceKind",
    "EvidenceRequest",
    "EvidenceSet",
    "EvidenceSnippet",
    "ExcerptRequest",
    "content_digest",
    "estimate_tokens",
    "scan_imports",
    "truncate_to_tokens",
]
