"""Structure building: deterministic document skeleton with exactly-once fact ownership."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, Iterator, List, Optional, Tuple

from ..logging import get_logger
from ..models import ChangeType, RawIntentData, parse_timestamp
from .base import PipelineState, Stage, StageContext
from .evidence import EvidenceSet
from .semantic import (
    CAPABILITY_LABELS,
    FactCategory,
    SemanticFact,
    SemanticFacts,
    classify_capability,
    to_bullet,
)

SECTION_PRIORITY: Dict[str, int] = {
    "API": 10,
    "Authentication": 15,
    "Data Model": 20,
    "State Management": 25,
    "Routing": 30,
    "User Interface": 35,
    "Command Line Interface": 38,
    "Configuration": 40,
    "Core Functionality": 42,
    "Utilities": 45,
    "Styling": 50,
    "Testing": 55,
    "Documentation": 60,
}
UNKNOWN_PRIORITY = 100
DECISION_TOPIC_ORDER = ("Technology", "Approach")

_PURPOSE_MIN_CHARS = 20
_PURPOSE_MAX_CHARS = 500
_IN_PROGRESS_LIMIT = 3


@dataclass
class OverviewBlock:
    title: str
    purpose: str
    stack: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)


@dataclass
class FeatureSection:
    """Capability cluster that owns its facts and the files backing them."""

    title: str
    capabilities: List[SemanticFact] = field(default_factory=list)
    intents: List[SemanticFact] = field(default_factory=list)
    constraints: List[SemanticFact] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    evidence_refs: List[str] = field(default_factory=list)

    @property
    def priority(self) -> int:
        return SECTION_PRIORITY.get(self.title, UNKNOWN_PRIORITY)

    @property
    def facts(self) -> List[SemanticFact]:
        return self.capabilities + self.intents + self.constraints


@dataclass
class DecisionBlock:
    title: str
    facts: List[SemanticFact] = field(default_factory=list)


@dataclass
class StateBlock:
    """Snapshot of progress; references fact statements without owning facts."""

    completed: List[str] = field(default_factory=list)
    in_progress: List[str] = field(default_factory=list)
    incomplete: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    files_created: int = 0
    files_modified: int = 0


@dataclass
class DocStructure:
    overview: OverviewBlock
    features: List[FeatureSection] = field(default_factory=list)
    decisions: List[DecisionBlock] = field(default_factory=list)
    constraints: List[SemanticFact] = field(default_factory=list)
    unclassified: List[SemanticFact] = field(default_factory=list)
    state: StateBlock = field(default_factory=StateBlock)

    def placements(self) -> Iterator[Tuple[str, SemanticFact]]:
        """Yield ``(location, fact)`` for every owned fact."""
        for section in self.features:
            for fact in section.facts:
                yield f"feature:{section.title}", fact
        for block in self.decisions:
            for fact in block.facts:
                yield f"decision:{block.title}", fact
        for fact in self.constraints:
            yield "constraints", fact
        for fact in self.unclassified:
            yield "unclassified", fact

    def locate(self, fact_id: str) -> List[str]:
        return [location for location, fact in self.placements() if fact.id == fact_id]

    @property
    def fact_count(self) -> int:
        return sum(1 for _ in self.placements())


@dataclass(frozen=True)
class StructureInput:
    facts: SemanticFacts
    evidence: EvidenceSet
    intent: Optional[RawIntentData] = None


class StructureBuilder(Stage[StructureInput, DocStructure]):
    """Clusters facts into overview, feature sections, decisions and state."""

    name = "structure"
    state = PipelineState.STRUCTURING

    def __init__(self) -> None:
        self.logger = get_logger("structure")

    def run(self, payload: StructureInput, context: StageContext) -> DocStructure:
        return self.build(
            payload.facts,
            payload.evidence,
            intent=payload.intent,
            project_name=context.project_name,
        )

    def build(
        self,
        facts: SemanticFacts,
        evidence: EvidenceSet,
        *,
        intent: RawIntentData | None = None,
        project_name: str = "Unknown Project",
    ) -> DocStructure:
        # Claiming a fact pops it from the pool, so no fact can land twice.
        pool: Dict[str, SemanticFact] = {}
        for fact in facts.facts:
            pool.setdefault(fact.id, fact)

        sections = self._feature_sections(pool, evidence)
        decisions = self._decision_blocks(pool)
        constraints: List[SemanticFact] = []
        unclassified: List[SemanticFact] = []

        for fact in [f for f in pool.values() if f.category is FactCategory.CONSTRAINT]:
            owner = self._best_section(fact, sections)
            claimed = pool.pop(fact.id)
            if owner is None:
                constraints.append(claimed)
            else:
                owner.constraints.append(claimed)

        for fact in [f for f in pool.values() if f.category is FactCategory.INTENT]:
            owner = self._best_section(fact, sections)
            claimed = pool.pop(fact.id)
            if owner is None:
                unclassified.append(claimed)
            else:
                owner.intents.append(claimed)

        unclassified.extend(pool.values())
        pool.clear()

        overview = OverviewBlock(
            title=project_name,
            purpose=self._purpose(intent, evidence, project_name),
            stack=list(facts.stack),
            capabilities=[section.title for section in sections],
        )
        structure = DocStructure(
            overview=overview,
            features=sections,
            decisions=decisions,
            constraints=constraints,
            unclassified=unclassified,
            state=self._state(facts, evidence, sections),
        )
        self.logger.info(
            "Built %d feature sections, %d decision blocks, %d shared constraints, %d unclassified",
            len(sections),
            len(decisions),
            len(constraints),
            len(unclassified),
        )
        return structure

    def _feature_sections(
        self, pool: Dict[str, SemanticFact], evidence: EvidenceSet
    ) -> List[FeatureSection]:
        sections: Dict[str, FeatureSection] = {}
        for fact in list(pool.values()):
            if fact.category is not FactCategory.FEATURE_CAPABILITY:
                continue
            if fact.capability not in CAPABILITY_LABELS:
                continue
            section = sections.setdefault(fact.capability, FeatureSection(title=fact.capability))
            section.capabilities.append(pool.pop(fact.id))

        for section in sections.values():
            refs: List[str] = []
            files: set[str] = set()
            for fact in section.capabilities:
                for ref in fact.evidence:
                    if ref not in refs:
                        refs.append(ref)
                    snippet = evidence.get(ref)
                    if snippet is not None:
                        files.add(snippet.source_ref)
            section.evidence_refs = refs
            section.files = sorted(files)

        return sorted(sections.values(), key=lambda section: (section.priority, section.title))

    @staticmethod
    def _decision_blocks(pool: Dict[str, SemanticFact]) -> List[DecisionBlock]:
        blocks: Dict[str, DecisionBlock] = {}
        for fact in list(pool.values()):
            if fact.category is not FactCategory.DECISION:
                continue
            topic = fact.topic or "Approach"
            blocks.setdefault(topic, DecisionBlock(title=topic)).facts.append(pool.pop(fact.id))

        def order(block: DecisionBlock) -> Tuple[int, str]:
            if block.title in DECISION_TOPIC_ORDER:
                return DECISION_TOPIC_ORDER.index(block.title), block.title
            return len(DECISION_TOPIC_ORDER), block.title

        return sorted(blocks.values(), key=order)

    @staticmethod
    def _best_section(fact: SemanticFact, sections: List[FeatureSection]) -> Optional[FeatureSection]:
        best: Optional[FeatureSection] = None
        best_overlap = 0
        for section in sections:
            overlap = len(set(fact.evidence).intersection(section.evidence_refs))
            if overlap > best_overlap:
                best, best_overlap = section, overlap
        return best

    @staticmethod
    def _purpose(intent: RawIntentData | None, evidence: EvidenceSet, project_name: str) -> str:
        for candidate in _purpose_candidates(intent):
            # a session may have written the instruction file itself
            if evidence.reproduced_path(candidate) is None:
                return candidate
        sessions = intent.session_count if intent is not None else 0
        return f"{project_name} as reconstructed from {sessions} assistant session(s)."

    @staticmethod
    def _state(
        facts: SemanticFacts,
        evidence: EvidenceSet,
        sections: List[FeatureSection],
    ) -> StateBlock:
        intents = facts.of(FactCategory.INTENT)
        recent = sorted(
            enumerate(intents),
            key=lambda item: (parse_timestamp(item[1].timestamp), item[0]),
            reverse=True,
        )
        summaries = evidence.summaries
        has_tests = any(classify_capability(summary.path) == "Testing" for summary in summaries)
        has_docs = any(
            PurePosixPath(summary.path).suffix.lower() in (".md", ".mdx") for summary in summaries
        )
        incomplete: List[str] = []
        if not has_tests:
            incomplete.append("Test coverage")
        if not has_docs:
            incomplete.append("Documentation")
        return StateBlock(
            completed=[section.title for section in sections if len(section.capabilities) >= 2],
            in_progress=[fact.statement for _, fact in recent[:_IN_PROGRESS_LIMIT]],
            incomplete=incomplete,
            dependencies=list(facts.stack),
            files_created=sum(1 for s in summaries if s.change_type is ChangeType.CREATED),
            files_modified=sum(1 for s in summaries if s.change_type is ChangeType.MODIFIED),
        )


def _first_paragraph(text: str) -> str:
    in_code = False
    lines: List[str] = []
    for raw in text.splitlines():
        stripped = raw.strip()
        if stripped.startswith("```"):
            in_code = not in_code
            continue
        if in_code:
            continue
        if not stripped:
            if lines:
                break
            continue
        if stripped.startswith("#"):
            if lines:
                break
            continue
        lines.append(stripped)
    return " ".join(lines)


def _purpose_candidates(intent: RawIntentData | None) -> Iterator[str]:
    if intent is None:
        return
    if intent.instructions:
        paragraph = _first_paragraph(intent.instructions)
        if paragraph:
            yield to_bullet(paragraph, limit=_PURPOSE_MAX_CHARS)
    for message in intent.user_messages:
        text = message.text.strip()
        if _PURPOSE_MIN_CHARS <= len(text) <= _PURPOSE_MAX_CHARS:
            yield to_bullet(text, limit=_PURPOSE_MAX_CHARS)


__all__ = [
    "DecisionBlock",
    "DocStructure",
    "FeatureSection",
    "OverviewBlock",
    "SECTION_PRIORITY",
    "StateBlock",
    "StructureBuilder",
    "StructureInput",
]
