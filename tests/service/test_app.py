"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from sessiondoc.docs.pipeline import DocumentationPipeline
from sessiondoc.prompting.builder import IR_MARKER
from sessiondoc.service import create_app


@pytest.fixture
def factory_calls() -> list:
    return []


@pytest.fixture
def client(pipeline_config, factory_calls) -> TestClient:
    def factory(project_path: Path | None) -> DocumentationPipeline:
        factory_calls.append(project_path)
        return DocumentationPipeline(pipeline_config)

    return TestClient(create_app(factory))


def _payload(builder, sessions, **extra) -> dict:
    payload = {
        "project_id": builder.project_id,
        "session_ids": sessions,
        "project_path": str(builder.project_root),
        "project_name": "demo",
        "use_ai": False,
    }
    payload.update(extra)
    return payload


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_generate_returns_document(client: TestClient, session_builder, factory_calls) -> None:
    session_builder.instructions("Build a CLI tool")
    session_builder.write("s1", "a.py", "def f(): pass")
    sessions = session_builder.save()

    response = client.post("/generate", json=_payload(session_builder, sessions))

    assert response.status_code == 200
    body = response.json()
    assert body["project_name"] == "demo"
    assert body["state"] == "done"
    assert body["status"] == "fallback_used"
    assert body["failure"] == "ai_disabled"
    assert "### Core Functionality" in body["markdown"]
    assert body["ir_path"].endswith("demo.ir.json")
    assert {"kind": "fact_rejected", "stage": "semantic", "subject": "Build a CLI tool"}.items() <= body[
        "diagnostics"
    ][0].items()
    assert factory_calls == [session_builder.project_root]


def test_prompt_returns_ir_and_prompt(client: TestClient, session_builder) -> None:
    session_builder.write("s1", "a.py", "def f(): pass")
    sessions = session_builder.save()

    response = client.post("/prompt", json=_payload(session_builder, sessions, audience="agent"))

    assert response.status_code == 200
    body = response.json()
    assert IR_MARKER in body["prompt"]
    assert body["system_prompt"]
    assert body["ir"]["audience"] == "agent"
    assert body["ir"]["features"][0]["title"] == "Core Functionality"


def test_pipeline_errors_map_to_422_with_stage(client: TestClient, session_builder) -> None:
    session_builder.save()

    response = client.post("/generate", json=_payload(session_builder, ["ghost"]))

    assert response.status_code == 422
    body = response.json()
    assert body["stage"] == "collecting"
    assert "ghost" in body["detail"]


def test_unknown_audience_is_rejected(client: TestClient, session_builder) -> None:
    session_builder.write("s1", "a.py", "def f(): pass")
    sessions = session_builder.save()

    response = client.post("/generate", json=_payload(session_builder, sessions, audience="martians"))

    assert response.status_code == 400
    assert "martians" in response.json()["detail"]


def test_generate_requires_sessions(client: TestClient, session_builder) -> None:
    response = client.post("/generate", json=_payload(session_builder, []))

    assert response.status_code == 422
