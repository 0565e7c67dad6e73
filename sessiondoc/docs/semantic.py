"""Semantic extraction: evidence-backed bullet facts from intent data and evidence."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import re
import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ..errors import DiagnosticLog
from ..logging import get_logger
from ..models import RawIntentData
from ..validators.base import tokenize
from .base import PipelineState, Stage, StageContext
from .evidence import EvidenceKind, EvidenceSet, EvidenceSnippet, ExcerptRequest

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .classifier import SentenceClassifier


class FactCategory(str, Enum):
    INTENT = "intent"
    DECISION = "decision"
    CONSTRAINT = "constraint"
    FEATURE_CAPABILITY = "feature_capability"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


DEFAULT_CAPABILITY = "Core Functionality"

CAPABILITY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Testing", ("test", "tests", "spec", "fixture", "mock", "conftest")),
    (
        "Authentication",
        ("auth", "login", "logout", "password", "oauth", "signin", "signup", "credential", "token"),
    ),
    ("API", ("api", "endpoint", "handler", "client", "request", "fetch", "http", "service", "server")),
    ("State Management", ("store", "state", "context", "reducer", "slice", "atom", "provider")),
    ("Routing", ("router", "routing", "route", "routes", "navigation", "navigate", "page", "pages")),
    (
        "User Interface",
        ("component", "components", "button", "modal", "dialog", "view", "screen", "layout", "widget", "form"),
    ),
    ("Command Line Interface", ("cli", "argparse", "argv", "subcommand")),
    (
        "Data Model",
        ("model", "models", "schema", "entity", "types", "dto", "database", "repository", "migration"),
    ),
    ("Configuration", ("config", "settings", "env", "options", "preferences")),
    ("Styling", ("style", "styles", "theme", "css", "color", "colors")),
    ("Utilities", ("util", "utils", "helper", "helpers", "format", "formatter", "lib")),
    ("Documentation", ("readme", "docs", "doc", "changelog")),
)
CAPABILITY_LABELS = frozenset(label for label, _ in CAPABILITY_KEYWORDS) | {DEFAULT_CAPABILITY}

FRAMEWORKS: Dict[str, str] = {
    "react": "React",
    "next": "Next.js",
    "vue": "Vue",
    "svelte": "Svelte",
    "@tauri-apps/api": "Tauri",
    "tauri": "Tauri",
    "zustand": "Zustand",
    "redux": "Redux",
    "@reduxjs/toolkit": "Redux",
    "zod": "Zod",
    "tailwindcss": "Tailwind CSS",
    "@tanstack/react-query": "React Query",
    "express": "Express",
    "prisma": "Prisma",
    "@prisma/client": "Prisma",
    "vite": "Vite",
    "vitest": "Vitest",
    "jest": "Jest",
    "fastapi": "FastAPI",
    "django": "Django",
    "flask": "Flask",
    "pydantic": "Pydantic",
    "sqlalchemy": "SQLAlchemy",
    "click": "Click",
    "typer": "Typer",
    "pytest": "pytest",
    "requests": "Requests",
    "httpx": "HTTPX",
    "numpy": "NumPy",
    "pandas": "pandas",
    "tokio": "Tokio",
    "serde": "Serde",
    "axum": "Axum",
    "actix-web": "Actix Web",
    "actix_web": "Actix Web",
}

MANIFEST_NAMES = ("package.json", "pyproject.toml", "Cargo.toml")
MANIFEST_JUSTIFICATION = "dependency manifest"

_CONSTRAINT_CUES = re.compile(
    r"\b(must|never|always|do not|don't|should not|shouldn't|without|only|cannot|can't)\b",
    re.IGNORECASE,
)
_DECISION_CUES = re.compile(
    r"\b(use|using|instead of|switch(?:ed)? to|prefer|go with|decided|chose|choose|replace)\b",
    re.IGNORECASE,
)
_INTENT_CUES = re.compile(
    r"\b(add|implement|create|build|fix|make|want|need|support|refactor|update|write|generate|improve)\b",
    re.IGNORECASE,
)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_CODE_FENCE = re.compile(r"```.*?(?:```|$)", re.DOTALL)
_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9_.-]*)")

MAX_STATEMENT_CHARS = 160
_MIN_SENTENCE_CHARS = 12
_SENTENCES_PER_MESSAGE = 3
_INSTRUCTION_SENTENCES = 20
_MAX_OVERLAP_REFS = 5
_MAX_SESSION_REFS = 3


@dataclass(frozen=True)
class SemanticFact:
    """Atomic, evidence-backed statement; a single bullet, never prose."""

    id: str
    category: FactCategory
    statement: str
    evidence: Tuple[str, ...]
    confidence: Confidence
    capability: Optional[str] = None
    topic: Optional[str] = None
    session_id: Optional[str] = None
    timestamp: Optional[str] = None


@dataclass
class SemanticFacts:
    facts: List[SemanticFact] = field(default_factory=list)
    stack: List[str] = field(default_factory=list)

    def of(self, category: FactCategory) -> List[SemanticFact]:
        return [fact for fact in self.facts if fact.category is category]

    def __len__(self) -> int:
        return len(self.facts)


@dataclass(frozen=True)
class SemanticInput:
    intent: RawIntentData
    evidence: EvidenceSet


@dataclass(frozen=True)
class _Sentence:
    text: str
    session_id: Optional[str]
    timestamp: Optional[str]


def make_fact_id(category: FactCategory, statement: str) -> str:
    digest = hashlib.sha1(f"{category.value}\0{statement}".encode("utf-8")).hexdigest()
    return f"fact-{digest[:12]}"


def to_bullet(text: str, limit: int = MAX_STATEMENT_CHARS) -> str:
    """Collapse ``text`` into a single bounded bullet line."""
    cleaned = " ".join(text.split()).lstrip("-*•> ").strip()
    if len(cleaned) <= limit:
        return cleaned
    cut = cleaned[: limit - 3]
    space = cut.rfind(" ")
    if space > limit // 2:
        cut = cut[:space]
    return cut.rstrip(" ,;:") + "..."


class SemanticExtractor(Stage[SemanticInput, SemanticFacts]):
    """Derives intents, decisions, constraints and capabilities using heuristics first."""

    name = "semantic"
    state = PipelineState.CLASSIFYING

    def __init__(
        self,
        *,
        max_symbols_per_file: int = 10,
        classifier: "SentenceClassifier | None" = None,
    ) -> None:
        self.max_symbols_per_file = max_symbols_per_file
        self.classifier = classifier
        self.logger = get_logger("semantic")

    def run(self, payload: SemanticInput, context: StageContext) -> SemanticFacts:
        return self.extract(payload.intent, payload.evidence, diagnostics=context.diagnostics)

    @staticmethod
    def excerpt_requests(paths: Iterable[str]) -> List[ExcerptRequest]:
        """Declare the artifacts whose content is needed beyond their signatures."""
        return [
            ExcerptRequest(path=path, justification=MANIFEST_JUSTIFICATION)
            for path in sorted(set(paths))
            if PurePosixPath(path).name in MANIFEST_NAMES
        ]

    def extract(
        self,
        intent: RawIntentData,
        evidence: EvidenceSet,
        *,
        diagnostics: DiagnosticLog | None = None,
    ) -> SemanticFacts:
        diagnostics = diagnostics if diagnostics is not None else DiagnosticLog()
        facts: Dict[Tuple[FactCategory, str], SemanticFact] = {}

        def emit(candidate: Optional[SemanticFact]) -> None:
            if candidate is None:
                return
            if not candidate.evidence:
                diagnostics.fact_rejected(
                    self.name,
                    f"No evidence for {candidate.category.value}: {candidate.statement}",
                    subject=candidate.statement,
                )
                return
            copied_from = evidence.reproduced_path(candidate.statement)
            if copied_from is not None:
                diagnostics.fact_rejected(
                    self.name,
                    f"Statement reproduces the full content of {copied_from}",
                    subject=candidate.statement,
                )
                return
            key = (candidate.category, candidate.statement.lower())
            existing = facts.get(key)
            if existing is None:
                facts[key] = candidate
                return
            merged = existing.evidence + tuple(
                ref for ref in candidate.evidence if ref not in existing.evidence
            )
            facts[key] = dataclasses.replace(existing, evidence=merged)

        for fact in self._capability_facts(evidence):
            emit(fact)

        frameworks = self._framework_evidence(evidence)
        for framework in sorted(frameworks):
            emit(
                self._fact(
                    FactCategory.DECISION,
                    f"Uses {framework}",
                    frameworks[framework],
                    Confidence.HIGH,
                    topic="Technology",
                )
            )
        for fact in self._manifest_constraints(evidence):
            emit(fact)

        snippet_tokens = {
            snippet.id: tokenize(" ".join(filter(None, (snippet.symbol, snippet.source_ref))))
            for snippet in evidence
            if snippet.kind in (EvidenceKind.SIGNATURE, EvidenceKind.DIFF)
        }
        ambiguous: List[_Sentence] = []
        for sentence in self._sentences(intent):
            category = self._cue_category(sentence.text)
            if category is None:
                ambiguous.append(sentence)
                continue
            emit(self._message_fact(category, sentence, evidence, snippet_tokens))

        for sentence, category in self._classify(ambiguous, diagnostics):
            emit(self._message_fact(category, sentence, evidence, snippet_tokens))

        stack = self._stack(evidence, frameworks)
        result = SemanticFacts(facts=list(facts.values()), stack=stack)
        self.logger.info(
            "Derived %d facts (%s)",
            len(result),
            ", ".join(f"{cat.value}={len(result.of(cat))}" for cat in FactCategory),
        )
        return result

    def _fact(
        self,
        category: FactCategory,
        text: str,
        evidence: Sequence[str],
        confidence: Confidence,
        *,
        capability: str | None = None,
        topic: str | None = None,
        session_id: str | None = None,
        timestamp: str | None = None,
    ) -> SemanticFact:
        statement = to_bullet(text)
        return SemanticFact(
            id=make_fact_id(category, statement),
            category=category,
            statement=statement,
            evidence=tuple(dict.fromkeys(evidence)),
            confidence=confidence,
            capability=capability,
            topic=topic,
            session_id=session_id,
            timestamp=timestamp,
        )

    def _capability_facts(self, evidence: EvidenceSet) -> Iterable[SemanticFact]:
        for summary in evidence.summaries:
            signatures = evidence.for_source(summary.path, [EvidenceKind.SIGNATURE])
            if signatures:
                if len(signatures) > self.max_symbols_per_file:
                    self.logger.debug(
                        "Capping %s at %d of %d symbols",
                        summary.path,
                        self.max_symbols_per_file,
                        len(signatures),
                    )
                for snippet in signatures[: self.max_symbols_per_file]:
                    kind = (snippet.symbol_kind or "symbol").capitalize()
                    yield self._fact(
                        FactCategory.FEATURE_CAPABILITY,
                        f"{kind} `{snippet.symbol}` in {summary.path}",
                        [snippet.id],
                        Confidence.HIGH,
                        capability=classify_capability(summary.path, snippet.symbol, snippet.symbol_kind),
                    )
                continue
            diffs = evidence.for_source(summary.path, [EvidenceKind.DIFF])
            if diffs:
                yield self._fact(
                    FactCategory.FEATURE_CAPABILITY,
                    f"Changes to {summary.path}",
                    [snippet.id for snippet in diffs],
                    Confidence.MEDIUM,
                    capability=classify_capability(summary.path),
                )

    def _framework_evidence(self, evidence: EvidenceSet) -> Dict[str, List[str]]:
        found: Dict[str, List[str]] = {}
        for summary in evidence.summaries:
            backing = evidence.for_source(summary.path, [EvidenceKind.SIGNATURE, EvidenceKind.DIFF])
            for package in summary.imports:
                framework = FRAMEWORKS.get(package.lower())
                if framework is None:
                    continue
                refs = found.setdefault(framework, [])
                if backing and len(refs) < _MAX_SESSION_REFS:
                    refs.append(backing[0].id)
        for snippet, manifest in self._manifests(evidence):
            for package in _manifest_dependencies(snippet.source_ref, manifest):
                framework = FRAMEWORKS.get(package.lower())
                if framework is not None:
                    refs = found.setdefault(framework, [])
                    if snippet.id not in refs:
                        refs.append(snippet.id)
        return found

    def _manifest_constraints(self, evidence: EvidenceSet) -> Iterable[SemanticFact]:
        for snippet, manifest in self._manifests(evidence):
            for requirement in _manifest_requirements(snippet.source_ref, manifest):
                yield self._fact(
                    FactCategory.CONSTRAINT,
                    requirement,
                    [snippet.id],
                    Confidence.HIGH,
                )

    def _manifests(self, evidence: EvidenceSet) -> Iterable[Tuple[EvidenceSnippet, dict]]:
        for snippet in evidence:
            if snippet.kind is not EvidenceKind.EXCERPT:
                continue
            name = PurePosixPath(snippet.source_ref).name
            try:
                if name == "package.json":
                    manifest = json.loads(snippet.text)
                elif name in ("pyproject.toml", "Cargo.toml"):
                    manifest = tomllib.loads(snippet.text)
                else:
                    continue
            except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
                self.logger.debug("Skipping unparseable manifest excerpt %s: %s", snippet.source_ref, exc)
                continue
            if isinstance(manifest, dict):
                yield snippet, manifest

    def _sentences(self, intent: RawIntentData) -> Iterable[_Sentence]:
        if intent.instructions:
            for text in _split_sentences(intent.instructions, limit=_INSTRUCTION_SENTENCES):
                yield _Sentence(text=text, session_id=None, timestamp=None)
        for message in intent.user_messages:
            for text in _split_sentences(message.text, limit=_SENTENCES_PER_MESSAGE):
                yield _Sentence(text=text, session_id=message.session_id, timestamp=message.timestamp)

    @staticmethod
    def _cue_category(text: str) -> Optional[FactCategory]:
        if _CONSTRAINT_CUES.search(text):
            return FactCategory.CONSTRAINT
        if _DECISION_CUES.search(text):
            return FactCategory.DECISION
        if _INTENT_CUES.search(text):
            return FactCategory.INTENT
        return None

    def _message_fact(
        self,
        category: FactCategory,
        sentence: _Sentence,
        evidence: EvidenceSet,
        snippet_tokens: Dict[str, Set[str]],
    ) -> SemanticFact:
        refs, confidence = self._message_evidence(sentence, evidence, snippet_tokens)
        return self._fact(
            category,
            sentence.text,
            refs,
            confidence,
            topic="Approach" if category is FactCategory.DECISION else None,
            session_id=sentence.session_id,
            timestamp=sentence.timestamp,
        )

    @staticmethod
    def _message_evidence(
        sentence: _Sentence,
        evidence: EvidenceSet,
        snippet_tokens: Dict[str, Set[str]],
    ) -> Tuple[List[str], Confidence]:
        tokens = tokenize(sentence.text)
        scored: List[Tuple[int, str, str]] = []
        for ref, terms in snippet_tokens.items():
            overlap = len(tokens & terms)
            if overlap:
                snippet = evidence.get(ref)
                source = snippet.source_ref if snippet is not None else ""
                scored.append((-overlap, source, ref))
        if scored:
            scored.sort()
            best = -scored[0][0]
            refs = [ref for _, _, ref in scored[:_MAX_OVERLAP_REFS]]
            return refs, Confidence.HIGH if best >= 2 else Confidence.MEDIUM

        if sentence.session_id is None:
            return [], Confidence.LOW
        linked: List[str] = []
        for summary in evidence.summaries:
            if sentence.session_id not in summary.sessions:
                continue
            backing = evidence.for_source(summary.path, [EvidenceKind.SIGNATURE, EvidenceKind.DIFF])
            if backing:
                linked.append(backing[0].id)
            if len(linked) >= _MAX_SESSION_REFS:
                break
        return linked, Confidence.LOW

    def _classify(
        self, sentences: List[_Sentence], diagnostics: DiagnosticLog
    ) -> List[Tuple[_Sentence, FactCategory]]:
        if self.classifier is None or not sentences:
            if sentences:
                self.logger.debug("Leaving %d sentences without a cue unclassified", len(sentences))
            return []
        batch = sentences[: self.classifier.max_items]
        try:
            labels = self.classifier.classify([sentence.text for sentence in batch])
        except RuntimeError as exc:
            diagnostics.extraction_warning(self.name, f"Sentence classifier unavailable: {exc}")
            return []
        return [(batch[index], category) for index, category in sorted(labels.items())]

    @staticmethod
    def _stack(evidence: EvidenceSet, frameworks: Dict[str, List[str]]) -> List[str]:
        languages = sorted({summary.language for summary in evidence.summaries if summary.language})
        return languages + sorted(name for name, refs in frameworks.items() if refs)


def classify_capability(path: str, symbol: str | None = None, symbol_kind: str | None = None) -> str:
    """Map a symbol and its file onto the fixed capability vocabulary."""
    lowered_path = path.lower()
    pure = PurePosixPath(lowered_path)
    if (
        pure.name.startswith("test_")
        or ".test." in pure.name
        or ".spec." in pure.name
        or any(part in ("tests", "test", "__tests__") for part in pure.parts[:-1])
    ):
        return "Testing"
    if symbol_kind == "component":
        return "User Interface"
    if symbol_kind == "command":
        return "API"
    if pure.suffix in (".css", ".scss"):
        return "Styling"
    if pure.suffix in (".md", ".mdx"):
        return "Documentation"

    candidates = [tokenize(symbol)] if symbol else []
    candidates.append(tokenize(" ".join(pure.parts)))
    for tokens in candidates:
        for label, keywords in CAPABILITY_KEYWORDS:
            if tokens.intersection(keywords):
                return label
    return DEFAULT_CAPABILITY


def _split_sentences(text: str, *, limit: int) -> List[str]:
    without_code = _CODE_FENCE.sub(" ", text)
    sentences: List[str] = []
    for line in without_code.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "|", "<")):
            continue
        for part in _SENTENCE_SPLIT.split(stripped):
            candidate = to_bullet(part)
            if len(candidate) < _MIN_SENTENCE_CHARS:
                continue
            sentences.append(candidate)
            if len(sentences) >= limit:
                return sentences
    return sentences


def _manifest_dependencies(path: str, manifest: dict) -> List[str]:
    name = PurePosixPath(path).name
    names: List[str] = []
    if name == "package.json":
        for key in ("dependencies", "devDependencies", "peerDependencies"):
            section = manifest.get(key)
            if isinstance(section, dict):
                names.extend(str(dep) for dep in section)
    elif name == "pyproject.toml":
        project = manifest.get("project")
        if isinstance(project, dict):
            requirements = list(project.get("dependencies") or [])
            optional = project.get("optional-dependencies")
            if isinstance(optional, dict):
                for extra in optional.values():
                    requirements.extend(extra or [])
            for requirement in requirements:
                match = _REQUIREMENT_NAME.match(str(requirement))
                if match:
                    names.append(match.group(1))
        tool = manifest.get("tool")
        poetry = tool.get("poetry") if isinstance(tool, dict) else None
        if isinstance(poetry, dict) and isinstance(poetry.get("dependencies"), dict):
            names.extend(str(dep) for dep in poetry["dependencies"])
    elif name == "Cargo.toml":
        for key in ("dependencies", "dev-dependencies"):
            section = manifest.get(key)
            if isinstance(section, dict):
                names.extend(str(dep) for dep in section)
    return names


def _manifest_requirements(path: str, manifest: dict) -> List[str]:
    name = PurePosixPath(path).name
    requirements: List[str] = []
    if name == "package.json":
        engines = manifest.get("engines")
        if isinstance(engines, dict):
            for engine, version in sorted(engines.items()):
                requirements.append(f"Requires {engine} {version}")
    elif name == "pyproject.toml":
        project = manifest.get("project")
        if isinstance(project, dict) and project.get("requires-python"):
            requirements.append(f"Requires Python {project['requires-python']}")
    elif name == "Cargo.toml":
        package = manifest.get("package")
        if isinstance(package, dict):
            if package.get("rust-version"):
                requirements.append(f"Requires Rust {package['rust-version']}")
            if package.get("edition"):
                requirements.append(f"Targets Rust edition {package['edition']}")
    return requirements


__all__ = [
    "CAPABILITY_KEYWORDS",
    "CAPABILITY_LABELS",
    "Confidence",
    "DEFAULT_CAPABILITY",
    "FRAMEWORKS",
    "FactCategory",
    "SemanticExtractor",
    "SemanticFact",
    "SemanticFacts",
    "SemanticInput",
    "classify_capability",
    "make_fact_id",
    "to_bullet",
]
