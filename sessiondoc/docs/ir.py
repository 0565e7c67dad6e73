"""Canonical Intermediate Representation and the converter that validates it."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import InvariantViolation
from ..logging import get_logger
from ..validators.base import ValidationContext, Validator, run_validators
from ..validators.ir_invariants import DEFAULT_IR_VALIDATORS
from .base import DocAudience, PipelineState, Stage, StageContext
from .evidence import EvidenceKind, EvidenceSet, EvidenceSnippet
from .semantic import SemanticFact
from .structure import DocStructure

IR_SCHEMA_VERSION = "1"


@dataclass(frozen=True)
class IREvidence:
    """Evidence resolved into the IR; only ever built from an EvidenceSnippet."""

    ref: str
    kind: str
    source: str
    text: Optional[str]
    truncated: bool
    symbol: Optional[str] = None
    justification: Optional[str] = None

    @classmethod
    def from_snippet(cls, snippet: EvidenceSnippet, *, include_text: bool) -> "IREvidence":
        # Excerpts resolve to a locator; their text stays inside the evidence stage.
        inline = include_text and snippet.kind is not EvidenceKind.EXCERPT
        return cls(
            ref=snippet.id,
            kind=snippet.kind.value,
            source=snippet.source_ref,
            text=snippet.text if inline else None,
            truncated=snippet.truncated,
            symbol=snippet.symbol,
            justification=snippet.justification,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ref": self.ref,
            "kind": self.kind,
            "source": self.source,
            "truncated": self.truncated,
        }
        if self.symbol is not None:
            payload["symbol"] = self.symbol
        if self.text is not None:
            payload["text"] = self.text
        if self.justification is not None:
            payload["justification"] = self.justification
        return payload


@dataclass(frozen=True)
class IRFact:
    id: str
    category: str
    statement: str
    confidence: str
    evidence: Tuple[str, ...]

    @classmethod
    def from_fact(cls, fact: SemanticFact) -> "IRFact":
        return cls(
            id=fact.id,
            category=fact.category.value,
            statement=fact.statement,
            confidence=fact.confidence.value,
            evidence=fact.evidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "statement": self.statement,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
        }


@dataclass
class IRFeature:
    title: str
    capabilities: List[IRFact] = field(default_factory=list)
    intents: List[IRFact] = field(default_factory=list)
    constraints: List[IRFact] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    evidence: List[IREvidence] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "capabilities": [fact.to_dict() for fact in self.capabilities],
            "intents": [fact.to_dict() for fact in self.intents],
            "constraints": [fact.to_dict() for fact in self.constraints],
            "files": list(self.files),
            "evidence": [item.to_dict() for item in self.evidence],
        }


@dataclass
class IRDecision:
    title: str
    facts: List[IRFact] = field(default_factory=list)
    evidence: List[IREvidence] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "facts": [fact.to_dict() for fact in self.facts],
            "evidence": [item.to_dict() for item in self.evidence],
        }


@dataclass
class IROverview:
    purpose: str
    stack: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)


@dataclass
class IRState:
    completed: List[str] = field(default_factory=list)
    in_progress: List[str] = field(default_factory=list)
    incomplete: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    files_created: int = 0
    files_modified: int = 0


@dataclass
class DocumentationIR:
    """The only object allowed to cross into AI interpretation."""

    project_name: str
    audience: DocAudience
    overview: IROverview
    features: List[IRFeature] = field(default_factory=list)
    decisions: List[IRDecision] = field(default_factory=list)
    constraints: List[IRFact] = field(default_factory=list)
    constraint_evidence: List[IREvidence] = field(default_factory=list)
    unclassified: List[IRFact] = field(default_factory=list)
    unclassified_evidence: List[IREvidence] = field(default_factory=list)
    state: IRState = field(default_factory=IRState)
    session_count: int = 0
    file_count: int = 0
    generated_at: str = ""
    schema_version: str = IR_SCHEMA_VERSION

    @property
    def feature_titles(self) -> List[str]:
        return [feature.title for feature in self.features]

    @property
    def is_empty(self) -> bool:
        return not (self.features or self.decisions or self.constraints or self.unclassified)

    def to_dict(self, *, include_timestamp: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "schema_version": self.schema_version,
            "project_name": self.project_name,
            "audience": self.audience.value,
            "overview": {
                "purpose": self.overview.purpose,
                "stack": list(self.overview.stack),
                "capabilities": list(self.overview.capabilities),
            },
            "features": [feature.to_dict() for feature in self.features],
            "decisions": [decision.to_dict() for decision in self.decisions],
            "constraints": [fact.to_dict() for fact in self.constraints],
            "constraint_evidence": [item.to_dict() for item in self.constraint_evidence],
            "unclassified": [fact.to_dict() for fact in self.unclassified],
            "unclassified_evidence": [item.to_dict() for item in self.unclassified_evidence],
            "current_state": {
                "completed": list(self.state.completed),
                "in_progress": list(self.state.in_progress),
                "incomplete": list(self.state.incomplete),
                "dependencies": list(self.state.dependencies),
                "files_created": self.state.files_created,
                "files_modified": self.state.files_modified,
            },
            "session_count": self.session_count,
            "file_count": self.file_count,
        }
        if include_timestamp:
            payload["generated_at"] = self.generated_at
        return payload

    def to_json(self, *, include_timestamp: bool = True) -> str:
        return json.dumps(self.to_dict(include_timestamp=include_timestamp), indent=2, ensure_ascii=False)

    def summary(self) -> str:
        fact_total = (
            sum(len(f.capabilities) + len(f.intents) + len(f.constraints) for f in self.features)
            + sum(len(d.facts) for d in self.decisions)
            + len(self.constraints)
            + len(self.unclassified)
        )
        return (
            f"{self.project_name} [{self.audience.value}]: {len(self.features)} features, "
            f"{len(self.decisions)} decision blocks, {fact_total} facts, "
            f"{self.file_count} files from {self.session_count} sessions"
        )


@dataclass(frozen=True)
class ConversionInput:
    structure: DocStructure
    evidence: EvidenceSet
    session_count: int = 0


class IRConverter(Stage[ConversionInput, DocumentationIR]):
    """Pure conversion from DocStructure + EvidenceSet; raises InvariantViolation on breach."""

    name = "ir"
    state = PipelineState.SERIALIZING

    def __init__(self, validators: Sequence[Validator] = DEFAULT_IR_VALIDATORS) -> None:
        self.validators = tuple(validators)
        self.logger = get_logger("ir")

    def run(self, payload: ConversionInput, context: StageContext) -> DocumentationIR:
        return self.convert(
            payload.structure,
            payload.evidence,
            project_name=context.project_name,
            audience=context.audience,
            session_count=payload.session_count,
        )

    def convert(
        self,
        structure: DocStructure,
        evidence: EvidenceSet,
        *,
        project_name: str | None = None,
        audience: DocAudience = DocAudience.TECHNICAL,
        session_count: int = 0,
        generated_at: str | None = None,
    ) -> DocumentationIR:
        include_text = audience is not DocAudience.OVERVIEW
        include_files = audience is not DocAudience.OVERVIEW

        def resolve(facts: Sequence[SemanticFact]) -> List[IREvidence]:
            refs: List[str] = []
            for fact in facts:
                for ref in fact.evidence:
                    if ref not in refs:
                        refs.append(ref)
            return [
                IREvidence.from_snippet(snippet, include_text=include_text)
                for snippet in evidence.resolve(refs)
            ]

        features = [
            IRFeature(
                title=section.title,
                capabilities=[IRFact.from_fact(f) for f in section.capabilities],
                intents=[IRFact.from_fact(f) for f in section.intents],
                constraints=[IRFact.from_fact(f) for f in section.constraints],
                files=list(section.files) if include_files else [],
                evidence=resolve(section.facts),
            )
            for section in structure.features
        ]
        decisions = [
            IRDecision(
                title=block.title,
                facts=[IRFact.from_fact(f) for f in block.facts],
                evidence=resolve(block.facts),
            )
            for block in structure.decisions
        ]
        state = structure.state
        ir = DocumentationIR(
            project_name=project_name or structure.overview.title,
            audience=audience,
            overview=IROverview(
                purpose=structure.overview.purpose,
                stack=list(structure.overview.stack),
                capabilities=list(structure.overview.capabilities),
            ),
            features=features,
            decisions=decisions,
            constraints=[IRFact.from_fact(f) for f in structure.constraints],
            constraint_evidence=resolve(structure.constraints),
            unclassified=[IRFact.from_fact(f) for f in structure.unclassified],
            unclassified_evidence=resolve(structure.unclassified),
            state=IRState(
                completed=list(state.completed),
                in_progress=list(state.in_progress),
                incomplete=list(state.incomplete),
                dependencies=list(state.dependencies),
                files_created=state.files_created,
                files_modified=state.files_modified,
            ),
            session_count=session_count,
            file_count=len(evidence.summaries),
            generated_at=generated_at or datetime.now(UTC).isoformat(timespec="seconds"),
        )
        self.validate(ir, evidence)
        self.logger.info("Converted structure to IR: %s", ir.summary())
        return ir

    def validate(self, ir: DocumentationIR, evidence: EvidenceSet) -> None:
        context = ValidationContext(
            payload=ir.to_dict(include_timestamp=False),
            content_digests=evidence.content_digests(),
            artifact_paths=[summary.path for summary in evidence.summaries],
        )
        issues = run_validators(self.validators, context)
        if issues:
            details = "; ".join(f"{issue.location}: {issue.detail}" for issue in issues[:5])
            raise InvariantViolation(
                f"IR violates {len(issues)} invariant check(s): {details}", issues
            )


__all__ = [
    "ConversionInput",
    "DocumentationIR",
    "IRConverter",
    "IRDecision",
    "IREvidence",
    "IRFact",
    "IRFeature",
    "IROverview",
    "IRState",
    "IR_SCHEMA_VERSION",
]
