"""FastAPI app factory.

Endpoints are intentionally thin wrappers over `AgentRuntime`.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from adf_runtime import __version__
from adf_runtime.config import RuntimeSettings
from adf_runtime.definitions import load_definition
from adf_runtime.runtime import AgentRuntime
from adf_runtime.server.config import ServerSettings
from adf_runtime.server.models import (
    ResourceReadRequest,
    RunRequest,
    ToolCallRequest,
    WorkflowRun,
)
from adf_runtime.server.run_store import RunStore
from adf_runtime.server.runner import start_workflow_run

logger = logging.getLogger(__name__)


def _load_runtime(settings: ServerSettings) -> AgentRuntime:
    if settings.definition_path is None:
        raise RuntimeError("ADF_DEFINITION is required when no runtime is given")
    path = settings.definition_path
    return AgentRuntime(load_definition(path), RuntimeSettings(), base_dir=path.parent)


def create_app(
    runtime: AgentRuntime | None = None, settings: ServerSettings | None = None
) -> FastAPI:
    settings = settings or ServerSettings()
    runtime = runtime or _load_runtime(settings)
    run_store = RunStore()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        # Unblock runs still waiting on fallback elicitations.
        runtime.close()

    app = FastAPI(
        title=f"ADF Runtime: {runtime.agent.name}",
        version=__version__,
        description=runtime.agent.description,
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose settings and runtime for request handlers that want to read them.
    app.state.settings = settings
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "agent": runtime.agent.name,
            "version": __version__,
            "sampling": runtime.sampling is not None,
        }

    # Host protocol verbs

    @app.get("/api/tools")
    def list_tools() -> dict[str, Any]:
        return {"tools": runtime.list_tools()}

    @app.post("/api/tools/call")
    def call_tool(req: ToolCallRequest) -> dict[str, Any]:
        try:
            return runtime.call_tool(req.name, req.arguments)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Tool execution failed: {e}") from e

    @app.get("/api/resources")
    def list_resources() -> dict[str, Any]:
        return {"resources": runtime.list_resources()}

    @app.post("/api/resources/read")
    def read_resource(req: ResourceReadRequest) -> dict[str, Any]:
        try:
            return runtime.read_resource(req.uri)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.get("/api/prompts")
    def list_prompts() -> dict[str, Any]:
        return {"prompts": runtime.list_prompts()}

    @app.get("/api/prompts/{name}")
    def get_prompt(name: str) -> dict[str, Any]:
        try:
            return runtime.get_prompt(name)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    # Workflow runs

    @app.get("/api/workflows")
    def list_workflows() -> dict[str, Any]:
        reports = runtime.validate()
        return {
            "workflows": [
                {
                    "name": name,
                    "valid": report.valid,
                    "unreachable": report.unreachable,
                    "errors": [d.message for d in report.errors],
                }
                for name, report in reports.items()
            ]
        }

    @app.post("/api/workflows/{name}/runs", response_model=WorkflowRun, status_code=202)
    def start_run(name: str, req: RunRequest) -> WorkflowRun:
        if name not in runtime.agent.workflows:
            raise HTTPException(status_code=404, detail=f"Workflow '{name}' not found")
        run_id = start_workflow_run(
            runtime=runtime, workflow=name, variables=req.variables, run_store=run_store
        )
        record = run_store.get(run_id)
        if record is None:
            raise HTTPException(status_code=500, detail="Run creation failed")
        return record

    @app.get("/api/runs", response_model=list[WorkflowRun])
    def list_runs() -> list[WorkflowRun]:
        return run_store.list()

    @app.get("/api/runs/{run_id}", response_model=WorkflowRun)
    def get_run(run_id: str) -> WorkflowRun:
        record = run_store.get(run_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Run not found")
        return record

    return app
