from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List

import pytest

from sessiondoc.config import SessionDocConfig
from sessiondoc.llm.runner import LLMRequest, LLMRunner
from tests._fixtures.session_builder import SessionBuilder


@pytest.fixture(autouse=True)
def _isolate_package_logger():
    """Undo logger state left behind by commands that call configure_logging."""
    logger = logging.getLogger("sessiondoc")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    for handler in list(logger.handlers):
        if handler not in saved[0]:
            logger.removeHandler(handler)
            handler.close()
    for handler in saved[0]:
        if handler not in logger.handlers:
            logger.addHandler(handler)
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.fixture
def session_builder(tmp_path: Path) -> SessionBuilder:
    """Provide a transcript builder rooted at the pytest tmp_path."""
    return SessionBuilder(tmp_path)


@pytest.fixture
def pipeline_config(session_builder: SessionBuilder, tmp_path: Path) -> SessionDocConfig:
    config = SessionDocConfig(root=session_builder.project_root)
    config.sessions.claude_dir = session_builder.claude_dir
    config.sessions.codex_dir = session_builder.codex_dir
    config.pipeline.debug_dir = tmp_path / "debug"
    return config


@pytest.fixture
def fake_llm() -> Callable[..., LLMRunner]:
    """Build an LLMRunner whose transport returns canned text and records prompts."""

    def factory(response: str | Callable[[LLMRequest], str]) -> LLMRunner:
        prompts: List[LLMRequest] = []

        def transport(request: LLMRequest) -> str:
            prompts.append(request)
            if callable(response):
                return response(request)
            return response

        runner = LLMRunner(model="test-model", base_url=None, api_key=None, runner=transport)
        runner.requests = prompts  # type: ignore[attr-defined]
        return runner

    return factory
