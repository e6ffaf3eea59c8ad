"""FastAPI application that serves the emitted dependency graph."""

from __future__ import annotations

from typing import Any, List

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import OrgDepsConfig
from ..errors import PersistenceError
from ..output import load_graph
from ..stores import CheckpointStore


class HealthResponse(BaseModel):
    status: str


class NodeModel(BaseModel):
    id: str
    depth: int
    count: int


class LinkModel(BaseModel):
    source: str
    target: str
    count: int


class GraphResponse(BaseModel):
    nodes: List[NodeModel]
    links: List[LinkModel]


class ProgressResponse(BaseModel):
    scanned: int
    repositories: List[str]


def create_app(config: OrgDepsConfig) -> FastAPI:
    """Create the FastAPI application exposing the latest graph and scan progress."""
    app = FastAPI(title="orgdeps", version="1.0.0")

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/graph", response_model=GraphResponse)
    async def graph() -> GraphResponse:
        loaded = load_graph(config.output_path)
        if loaded is None:
            raise HTTPException(status_code=404, detail="No dependency graph has been written yet")
        return GraphResponse.model_validate(loaded.to_dict())

    @app.get("/progress", response_model=ProgressResponse)
    async def progress() -> ProgressResponse:
        store = CheckpointStore(config.checkpoint_path)
        repositories = sorted(store.load())
        return ProgressResponse(scanned=len(repositories), repositories=repositories)

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(_: Any, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def run_service(
    config: OrgDepsConfig, host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    import uvicorn

    uvicorn.run(create_app(config), host=host, port=port)
