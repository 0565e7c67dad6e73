"""Tests for heuristic semantic extraction."""

from __future__ import annotations

import json

from sessiondoc.docs.classifier import SentenceClassifier
from sessiondoc.docs.evidence import EvidenceExtractor, EvidenceSet
from sessiondoc.docs.semantic import (
    DEFAULT_CAPABILITY,
    Confidence,
    FactCategory,
    SemanticExtractor,
    classify_capability,
    to_bullet,
)
from sessiondoc.errors import DiagnosticKind, DiagnosticLog
from sessiondoc.llm.runner import LLMError
from sessiondoc.models import ChangeType, EditDiff, FileArtifact, RawIntentData, Signature, UserMessage


def _artifact(path: str, content: str, *signatures: Signature, edits=(), sessions=("s1",)) -> FileArtifact:
    return FileArtifact(
        path=path,
        change_type=ChangeType.MODIFIED if edits else ChangeType.CREATED,
        latest_content=content,
        public_symbols=signatures,
        edits=tuple(edits),
        sessions=tuple(sessions),
    )


def _evidence(*artifacts: FileArtifact) -> EvidenceSet:
    paths = [artifact.path for artifact in artifacts]
    return EvidenceExtractor(budget=2000).extract(artifacts, SemanticExtractor.excerpt_requests(paths))


def _auth_evidence() -> EvidenceSet:
    return _evidence(
        _artifact(
            "src/auth.py",
            "def login(user):\n    return user\n",
            Signature(name="login", kind="function", text="def login(user)", line=1),
        )
    )


def test_capability_fact_per_public_symbol() -> None:
    evidence = _evidence(
        _artifact("a.py", "def f(): pass", Signature(name="f", kind="function", text="def f(): pass", line=1))
    )

    facts = SemanticExtractor().extract(RawIntentData(instructions=None), evidence)

    capabilities = facts.of(FactCategory.FEATURE_CAPABILITY)
    assert len(capabilities) == 1
    fact = capabilities[0]
    assert fact.statement == "Function `f` in a.py"
    assert fact.capability == DEFAULT_CAPABILITY
    assert fact.confidence is Confidence.HIGH
    assert [evidence.get(ref).text for ref in fact.evidence] == ["function f"]
    assert facts.stack == ["Python"]


def test_instruction_without_overlap_is_rejected() -> None:
    evidence = _evidence(
        _artifact("a.py", "def f(): pass", Signature(name="f", kind="function", text="def f(): pass", line=1))
    )
    diagnostics = DiagnosticLog()

    facts = SemanticExtractor().extract(
        RawIntentData(instructions="Build a CLI tool"), evidence, diagnostics=diagnostics
    )

    assert facts.of(FactCategory.INTENT) == []
    rejected = diagnostics.of_kind(DiagnosticKind.FACT_REJECTED)
    assert [entry.subject for entry in rejected] == ["Build a CLI tool"]


def test_message_matched_by_symbol_overlap() -> None:
    evidence = _auth_evidence()
    intent = RawIntentData(
        instructions=None,
        user_messages=(UserMessage(session_id="s1", text="Please add login support to the auth module.", timestamp="t1"),),
        session_count=1,
    )

    facts = SemanticExtractor().extract(intent, evidence)

    intents = facts.of(FactCategory.INTENT)
    assert len(intents) == 1
    assert intents[0].statement == "Please add login support to the auth module."
    assert intents[0].confidence is Confidence.MEDIUM
    assert intents[0].session_id == "s1"
    login_ref = evidence.for_source("src/auth.py")[0].id
    assert intents[0].evidence == (login_ref,)


def test_statement_copying_a_written_file_is_rejected() -> None:
    sentence = "Please add login support to the auth module."
    evidence = _evidence(
        _artifact(
            "src/auth.py",
            "def login(user):\n    return user\n",
            Signature(name="login", kind="function", text="def login(user)", line=1),
        ),
        _artifact("NOTES.md", sentence),
    )
    intent = RawIntentData(
        instructions=None,
        user_messages=(UserMessage(session_id="s1", text=sentence, timestamp="t1"),),
        session_count=1,
    )
    diagnostics = DiagnosticLog()

    facts = SemanticExtractor().extract(intent, evidence, diagnostics=diagnostics)

    assert facts.of(FactCategory.INTENT) == []
    rejected = diagnostics.of_kind(DiagnosticKind.FACT_REJECTED)
    assert [entry.subject for entry in rejected] == [sentence]
    assert "NOTES.md" in rejected[0].message


def test_message_falls_back_to_session_evidence() -> None:
    evidence = _auth_evidence()
    intent = RawIntentData(
        instructions=None,
        user_messages=(UserMessage(session_id="s1", text="Make the page look nicer overall.", timestamp="t1"),),
        session_count=1,
    )

    facts = SemanticExtractor().extract(intent, evidence)

    intents = facts.of(FactCategory.INTENT)
    assert len(intents) == 1
    assert intents[0].confidence is Confidence.LOW


def test_constraint_and_decision_cues() -> None:
    evidence = _auth_evidence()
    intent = RawIntentData(
        instructions="Login must never store the password in plain text.\nUse bcrypt instead of md5 for login hashes.",
    )

    facts = SemanticExtractor().extract(intent, evidence)

    assert [fact.statement for fact in facts.of(FactCategory.CONSTRAINT)] == [
        "Login must never store the password in plain text."
    ]
    decisions = facts.of(FactCategory.DECISION)
    assert [fact.statement for fact in decisions] == ["Use bcrypt instead of md5 for login hashes."]
    assert decisions[0].topic == "Approach"


def test_duplicate_statements_merge_evidence() -> None:
    evidence = _auth_evidence()
    message = "Add login support for the admin screen."
    intent = RawIntentData(
        instructions=None,
        user_messages=(
            UserMessage(session_id="s1", text=message, timestamp="t1"),
            UserMessage(session_id="s2", text=message, timestamp="t2"),
        ),
    )

    facts = SemanticExtractor().extract(intent, evidence)

    assert len(facts.of(FactCategory.INTENT)) == 1


def test_frameworks_and_manifest_requirements() -> None:
    manifest = json.dumps(
        {"name": "demo", "engines": {"node": ">=18"}, "dependencies": {"zustand": "^4.5.0"}}
    )
    evidence = _evidence(
        _artifact("package.json", manifest),
        _artifact(
            "src/App.tsx",
            'import React from "react";\nexport function App() { return null; }\n',
            Signature(name="App", kind="component", text="export function App()", line=2),
        ),
    )

    facts = SemanticExtractor().extract(RawIntentData(instructions=None), evidence)

    decisions = {fact.statement: fact for fact in facts.of(FactCategory.DECISION)}
    assert set(decisions) == {"Uses React", "Uses Zustand"}
    assert decisions["Uses React"].topic == "Technology"
    assert [fact.statement for fact in facts.of(FactCategory.CONSTRAINT)] == ["Requires node >=18"]
    assert facts.stack == ["TypeScript", "React", "Zustand"]
    app = facts.of(FactCategory.FEATURE_CAPABILITY)[0]
    assert app.capability == "User Interface"


def test_diff_only_artifact_yields_change_fact() -> None:
    evidence = _evidence(
        _artifact(
            "styles/theme.css",
            "body { color: red; }\n",
            edits=[EditDiff(old_text="body { color: blue; }", new_text="body { color: red; }", timestamp="")],
        )
    )

    facts = SemanticExtractor().extract(RawIntentData(instructions=None), evidence)

    capabilities = facts.of(FactCategory.FEATURE_CAPABILITY)
    assert [fact.statement for fact in capabilities] == ["Changes to styles/theme.css"]
    assert capabilities[0].capability == "Styling"
    assert capabilities[0].confidence is Confidence.MEDIUM


def test_symbols_per_file_are_capped() -> None:
    signatures = [
        Signature(name=f"handler_{index}", kind="function", text=f"def handler_{index}()", line=index)
        for index in range(5)
    ]
    evidence = _evidence(_artifact("src/handlers.py", "# handlers\n", *signatures))

    facts = SemanticExtractor(max_symbols_per_file=2).extract(RawIntentData(instructions=None), evidence)

    assert len(facts.of(FactCategory.FEATURE_CAPABILITY)) == 2


def test_ambiguous_sentences_go_to_classifier(fake_llm) -> None:
    runner = fake_llm('[{"index": 0, "category": "decision"}]')
    evidence = _auth_evidence()
    intent = RawIntentData(
        instructions=None,
        user_messages=(UserMessage(session_id="s1", text="The dashboard shows weekly totals.", timestamp="t1"),),
    )

    facts = SemanticExtractor(classifier=SentenceClassifier(runner)).extract(intent, evidence)

    assert [fact.statement for fact in facts.of(FactCategory.DECISION)] == ["The dashboard shows weekly totals."]
    assert len(runner.requests) == 1


def test_classifier_failure_becomes_warning(fake_llm) -> None:
    def boom(request):
        raise LLMError("service down")

    evidence = _auth_evidence()
    intent = RawIntentData(
        instructions=None,
        user_messages=(UserMessage(session_id="s1", text="The dashboard shows weekly totals.", timestamp="t1"),),
    )
    diagnostics = DiagnosticLog()

    facts = SemanticExtractor(classifier=SentenceClassifier(fake_llm(boom))).extract(
        intent, evidence, diagnostics=diagnostics
    )

    assert facts.of(FactCategory.DECISION) == []
    warnings = diagnostics.of_kind(DiagnosticKind.EXTRACTION_WARNING)
    assert len(warnings) == 1
    assert "service down" in warnings[0].message


def test_excerpt_requests_only_cover_manifests() -> None:
    requests = SemanticExtractor.excerpt_requests(["src/app.ts", "package.json", "crates/core/Cargo.toml"])

    assert [request.path for request in requests] == ["crates/core/Cargo.toml", "package.json"]
    assert all(request.justification for request in requests)


def test_classify_capability_vocabulary() -> None:
    assert classify_capability("tests/test_auth.py", "test_login") == "Testing"
    assert classify_capability("src/cli.py", "main") == "Command Line Interface"
    assert classify_capability("src-tauri/src/lib.rs", "greet", "command") == "API"
    assert classify_capability("src/stores/useSession.ts", "useSession") == "State Management"
    assert classify_capability("src/math.py", "add") == DEFAULT_CAPABILITY


def test_to_bullet_collapses_and_bounds() -> None:
    assert to_bullet("- first line\n  second line") == "first line second line"
    long = to_bullet("word " * 100)
    assert len(long) <= 160
    assert long.endswith("...")
