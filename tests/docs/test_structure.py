"""Tests for deterministic structure building."""

from __future__ import annotations

from collections import Counter

from sessiondoc.docs.evidence import EvidenceExtractor, EvidenceSet
from sessiondoc.docs.semantic import (
    Confidence,
    FactCategory,
    SemanticExtractor,
    SemanticFact,
    SemanticFacts,
    make_fact_id,
)
from sessiondoc.docs.structure import StructureBuilder
from sessiondoc.models import ChangeType, FileArtifact, RawIntentData, Signature, UserMessage


def _fact(
    category: FactCategory,
    statement: str,
    *refs: str,
    capability: str | None = None,
    topic: str | None = None,
    timestamp: str | None = None,
) -> SemanticFact:
    return SemanticFact(
        id=make_fact_id(category, statement),
        category=category,
        statement=statement,
        evidence=refs,
        confidence=Confidence.HIGH,
        capability=capability,
        topic=topic,
        timestamp=timestamp,
    )


def test_single_file_lands_in_core_functionality() -> None:
    artifact = FileArtifact(
        path="a.py",
        change_type=ChangeType.CREATED,
        latest_content="def f(): pass",
        public_symbols=(Signature(name="f", kind="function", text="def f(): pass", line=1),),
        sessions=("s1",),
    )
    evidence = EvidenceExtractor().extract([artifact])
    intent = RawIntentData(instructions="Build a CLI tool", session_count=1)
    facts = SemanticExtractor().extract(intent, evidence)

    structure = StructureBuilder().build(facts, evidence, intent=intent, project_name="demo")

    assert [section.title for section in structure.features] == ["Core Functionality"]
    assert structure.features[0].files == ["a.py"]
    assert structure.overview.purpose == "Build a CLI tool"
    assert structure.state.files_created == 1
    assert structure.unclassified == []


def test_each_fact_placed_exactly_once() -> None:
    artifacts = [
        FileArtifact(
            path="src/auth.py",
            change_type=ChangeType.CREATED,
            latest_content="import jwt\n\ndef login(user):\n    return jwt.encode(user)\n",
            public_symbols=(
                Signature(name="login", kind="function", text="def login(user)", line=3),
                Signature(name="logout", kind="function", text="def logout(user)", line=6),
            ),
            sessions=("s1",),
        ),
        FileArtifact(
            path="src/api/client.py",
            change_type=ChangeType.CREATED,
            latest_content="def fetch_orders():\n    return []\n",
            public_symbols=(Signature(name="fetch_orders", kind="function", text="def fetch_orders()", line=1),),
            sessions=("s2",),
        ),
    ]
    evidence = EvidenceExtractor().extract(artifacts)
    intent = RawIntentData(
        instructions="Login must never log the password.",
        user_messages=(
            UserMessage(session_id="s1", text="Add login and logout flows.", timestamp="2024-05-01T09:00:00Z"),
            UserMessage(session_id="s2", text="Make fetch orders page through results.", timestamp="2024-05-01T10:00:00Z"),
            UserMessage(session_id="s2", text="Use plain dicts instead of classes for orders.", timestamp="2024-05-01T10:05:00Z"),
        ),
        session_count=2,
    )
    facts = SemanticExtractor().extract(intent, evidence)

    structure = StructureBuilder().build(facts, evidence, intent=intent)

    placements = Counter(fact.id for _, fact in structure.placements())
    assert set(placements) == {fact.id for fact in facts.facts}
    assert all(count == 1 for count in placements.values())
    assert structure.fact_count == len(facts)
    auth = next(section for section in structure.features if section.title == "Authentication")
    assert [fact.statement for fact in auth.constraints] == ["Login must never log the password."]
    assert [fact.statement for fact in auth.intents] == ["Add login and logout flows."]
    assert "Authentication" in structure.state.completed


def test_unowned_facts_go_to_shared_blocks() -> None:
    capability = _fact(FactCategory.FEATURE_CAPABILITY, "Function `login` in auth.py", "ev-1", capability="Authentication")
    owned = _fact(FactCategory.CONSTRAINT, "Never log passwords", "ev-1")
    shared = _fact(FactCategory.CONSTRAINT, "Requires Python >=3.11", "ev-9")
    stray = _fact(FactCategory.INTENT, "Add a dark mode", "ev-9")
    unknown = _fact(FactCategory.FEATURE_CAPABILITY, "Function `x` in x.py", "ev-2", capability="Telemetry")
    approach = _fact(FactCategory.DECISION, "Prefer small modules", "ev-1")
    technology = _fact(FactCategory.DECISION, "Uses FastAPI", "ev-1", topic="Technology")
    facts = SemanticFacts(facts=[capability, owned, shared, stray, unknown, approach, technology])

    structure = StructureBuilder().build(facts, EvidenceSet(100))

    section = structure.features[0]
    assert section.title == "Authentication"
    assert section.constraints == [owned]
    assert structure.constraints == [shared]
    assert structure.unclassified == [stray, unknown]
    assert [block.title for block in structure.decisions] == ["Technology", "Approach"]
    assert structure.locate(owned.id) == ["feature:Authentication"]


def test_sections_ordered_by_priority() -> None:
    facts = SemanticFacts(
        facts=[
            _fact(FactCategory.FEATURE_CAPABILITY, "Function `test_a` in tests/test_a.py", "ev-1", capability="Testing"),
            _fact(FactCategory.FEATURE_CAPABILITY, "Function `get` in api.py", "ev-2", capability="API"),
            _fact(FactCategory.FEATURE_CAPABILITY, "Function `run` in main.py", "ev-3", capability="Core Functionality"),
        ]
    )

    structure = StructureBuilder().build(facts, EvidenceSet(100))

    assert [section.title for section in structure.features] == ["API", "Core Functionality", "Testing"]
    assert structure.overview.capabilities == ["API", "Core Functionality", "Testing"]


def test_purpose_sources() -> None:
    builder = StructureBuilder()
    empty = SemanticFacts()

    from_instructions = builder.build(
        empty,
        EvidenceSet(10),
        intent=RawIntentData(instructions="# Notes\n\nA tool that turns logs\ninto docs.\n\nSecond paragraph."),
    )
    from_message = builder.build(
        empty,
        EvidenceSet(10),
        intent=RawIntentData(
            instructions=None,
            user_messages=(
                UserMessage(session_id="s1", text="hi", timestamp=""),
                UserMessage(session_id="s1", text="Build a habit tracker for my phone", timestamp=""),
            ),
        ),
    )
    default = builder.build(empty, EvidenceSet(10), project_name="demo")

    assert from_instructions.overview.purpose == "A tool that turns logs into docs."
    assert from_message.overview.purpose == "Build a habit tracker for my phone"
    assert default.overview.purpose == "demo as reconstructed from 0 assistant session(s)."


def test_purpose_skips_text_copied_into_a_written_file() -> None:
    instructions = "Build a CLI tool that adds numbers"
    evidence = EvidenceExtractor().extract(
        [FileArtifact(path="CLAUDE.md", change_type=ChangeType.CREATED, latest_content=instructions, sessions=("s1",))]
    )
    builder = StructureBuilder()

    structure = builder.build(
        SemanticFacts(),
        evidence,
        intent=RawIntentData(
            instructions=instructions,
            user_messages=(UserMessage(session_id="s1", text="Build a habit tracker for my phone", timestamp=""),),
            session_count=1,
        ),
        project_name="demo",
    )
    only_copy = builder.build(
        SemanticFacts(),
        evidence,
        intent=RawIntentData(instructions=instructions, session_count=1),
        project_name="demo",
    )

    assert structure.overview.purpose == "Build a habit tracker for my phone"
    assert only_copy.overview.purpose == "demo as reconstructed from 1 assistant session(s)."


def test_state_lists_recent_intents_first() -> None:
    intents = [
        _fact(FactCategory.INTENT, f"Add feature {index}", "ev-1", timestamp=f"2024-05-01T09:0{index}:00Z")
        for index in range(5)
    ]

    structure = StructureBuilder().build(SemanticFacts(facts=intents, stack=["Python"]), EvidenceSet(10))

    assert structure.state.in_progress == ["Add feature 4", "Add feature 3", "Add feature 2"]
    assert structure.state.incomplete == ["Test coverage", "Documentation"]
    assert structure.state.dependencies == ["Python"]
