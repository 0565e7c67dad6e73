"""FastAPI application entrypoint for sessiondoc service mode."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..config import load_config
from ..docs.pipeline import DocumentationPipeline, PipelineRequest, PipelineResult, PreparedRun
from ..errors import PipelineError

PipelineFactory = Callable[[Optional[Path]], DocumentationPipeline]


class GenerateRequest(BaseModel):
    project_id: str
    session_ids: List[str] = Field(min_length=1)
    project_path: Optional[str] = None
    project_name: Optional[str] = None
    audience: Optional[str] = None
    custom_prompt: Optional[str] = None
    use_ai: bool = True

    def to_pipeline_request(self) -> PipelineRequest:
        return PipelineRequest(
            project_id=self.project_id,
            session_ids=tuple(self.session_ids),
            project_path=Path(self.project_path) if self.project_path else None,
            project_name=self.project_name,
            audience=self.audience,
            custom_prompt=self.custom_prompt,
            use_ai=self.use_ai,
        )


class DiagnosticModel(BaseModel):
    kind: str
    stage: str
    message: str
    subject: Optional[str] = None


class GenerateResponse(BaseModel):
    project_name: str
    markdown: str
    used_fallback: bool
    status: str
    state: str
    ir_path: Optional[str] = None
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)
    session_count: int = 0
    file_count: int = 0
    failure: Optional[str] = None


class PromptResponse(BaseModel):
    project_name: str
    system_prompt: str
    prompt: str
    ir_path: Optional[str] = None
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)
    ir: Dict[str, Any]


class HealthResponse(BaseModel):
    status: str


def _default_pipeline(project_path: Optional[Path]) -> DocumentationPipeline:
    return DocumentationPipeline(load_config(project_path or Path.cwd()))


def create_app(pipeline_factory: PipelineFactory = _default_pipeline) -> FastAPI:
    """Create the FastAPI application exposing the documentation pipeline."""

    app = FastAPI(title="sessiondoc Service", version="1.0.0")

    async def get_factory() -> PipelineFactory:
        return pipeline_factory

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(
        payload: GenerateRequest,
        factory: PipelineFactory = Depends(get_factory),
    ) -> GenerateResponse:
        request = payload.to_pipeline_request()

        def _run() -> PipelineResult:
            # Each request gets its own pipeline so runs share no state.
            return factory(request.project_path).run(request)

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, _run)
        return GenerateResponse(**result.to_dict())

    @app.post("/prompt", response_model=PromptResponse)
    async def prompt(
        payload: GenerateRequest,
        factory: PipelineFactory = Depends(get_factory),
    ) -> PromptResponse:
        request = payload.to_pipeline_request()

        def _prepare() -> PreparedRun:
            return factory(request.project_path).prepare(request)

        loop = asyncio.get_running_loop()
        prepared = await loop.run_in_executor(None, _prepare)
        return PromptResponse(**prepared.to_dict())

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(_: Any, exc: PipelineError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": str(exc.cause), "stage": exc.stage},
        )

    @app.exception_handler(FileNotFoundError)
    async def file_not_found_handler(_: Any, exc: FileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(RuntimeError)
    async def runtime_error_handler(_: Any, exc: RuntimeError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Any, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    app = create_app()
    uvicorn.run(app, host=host, port=port)


__all__ = ["GenerateRequest", "GenerateResponse", "PromptResponse", "create_app", "run_service"]
