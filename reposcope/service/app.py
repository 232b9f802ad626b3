"""FastAPI application exposing the analysis phases to a host workflow."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..errors import ConfigurationError, PreconditionError
from ..models import RepoCoordinates
from ..orchestrator import Orchestrator, StepResult


class CoordinatesRequest(BaseModel):
    repository: str = Field(min_length=1)
    path: str = ""

    def coordinates(self) -> RepoCoordinates:
        return RepoCoordinates(self.repository, self.path.strip("/"))


class InitRequest(CoordinatesRequest):
    actions: Optional[List[Dict[str, Any]]] = None
    current_index: int = 0
    reset: bool = False


class ProcessRequest(CoordinatesRequest):
    unit_index: int = Field(ge=0)


class SummaryRequest(CoordinatesRequest):
    pass


class DispatchRequest(BaseModel):
    actions: List[Dict[str, Any]]
    position: int = Field(ge=0)


class StepResponse(BaseModel):
    command: str
    output: Optional[Dict[str, Any]] = None
    actions: Optional[List[Dict[str, Any]]] = None
    usage: Dict[str, int]
    cost: float
    error: Optional[str] = None


class CleanupResponse(BaseModel):
    removed: bool


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def _to_response(result: StepResult) -> StepResponse:
    return StepResponse(**result.to_dict())


async def _run_blocking(operation: Callable[[], StepResult]) -> StepResult:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover - fallback path when not in async context
        return operation()
    return await loop.run_in_executor(None, operation)


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing reposcope operations."""
    app = FastAPI(title="Reposcope Service", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/init", response_model=StepResponse)
    async def init_analysis(
        payload: InitRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> StepResponse:
        result = await _run_blocking(
            lambda: orchestrator.run_init(
                payload.coordinates(),
                actions=payload.actions,
                current_index=payload.current_index,
                reset=payload.reset,
            )
        )
        return _to_response(result)

    @app.post("/process", response_model=StepResponse)
    async def process_unit(
        payload: ProcessRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> StepResponse:
        result = await _run_blocking(
            lambda: orchestrator.run_process(payload.coordinates(), payload.unit_index)
        )
        return _to_response(result)

    @app.post("/summary", response_model=StepResponse)
    async def summarize_analysis(
        payload: SummaryRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> StepResponse:
        result = await _run_blocking(lambda: orchestrator.run_summary(payload.coordinates()))
        return _to_response(result)

    @app.post("/dispatch", response_model=StepResponse)
    async def dispatch_action(
        payload: DispatchRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> StepResponse:
        result = await _run_blocking(
            lambda: orchestrator.dispatch(payload.actions, payload.position)
        )
        return _to_response(result)

    @app.delete("/analyses", response_model=CleanupResponse)
    async def delete_analysis(
        repository: str,
        path: str = "",
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> CleanupResponse:
        removed = orchestrator.cleanup(RepoCoordinates(repository, path.strip("/")))
        return CleanupResponse(removed=removed)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(_: Any, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(PreconditionError)
    async def precondition_error_handler(_: Any, exc: PreconditionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    import uvicorn

    app = create_app()
    uvicorn.run(app, host=host, port=port)


__all__ = ["create_app", "run_service"]
