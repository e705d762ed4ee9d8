"""Background runner for workflow runs started over HTTP."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Any

from adf_runtime.errors import WorkflowFailure
from adf_runtime.runtime import AgentRuntime
from adf_runtime.schema import WorkflowContext
from adf_runtime.server.run_store import RunStore

logger = logging.getLogger(__name__)


def start_workflow_run(
    *,
    runtime: AgentRuntime,
    workflow: str,
    variables: dict[str, Any],
    run_store: RunStore,
) -> str:
    run_id = uuid.uuid4().hex
    run_store.create(run_id=run_id, workflow=workflow)

    thread = threading.Thread(
        target=_run_workflow,
        name=f"workflow-run-{workflow}-{run_id}",
        daemon=True,
        kwargs={
            "run_id": run_id,
            "runtime": runtime,
            "workflow": workflow,
            "variables": variables,
            "run_store": run_store,
        },
    )
    thread.start()
    return run_id


def _context_fields(context: WorkflowContext) -> dict[str, Any]:
    # Variables may hold values pydantic cannot serialize; fall back to str().
    dumped = json.loads(json.dumps(context.model_dump(), default=str))
    return {
        "current_state": dumped["current_state"],
        "variables": dumped["variables"],
        "history": dumped["history"],
    }


def _run_workflow(
    *,
    run_id: str,
    runtime: AgentRuntime,
    workflow: str,
    variables: dict[str, Any],
    run_store: RunStore,
) -> None:
    run_store.update(run_id, status="running")

    try:
        context = runtime.run_workflow(
            workflow,
            variables,
            on_response=lambda _state, text: run_store.append_response(run_id, text),
        )
        run_store.update(run_id, status="succeeded", **_context_fields(context))

    except WorkflowFailure as e:
        logger.error(
            "Workflow run failed",
            extra={"run_id": run_id, "workflow": workflow, "state": e.state_id, "error": str(e)},
        )
        partial = _context_fields(e.context) if e.context is not None else {}
        run_store.update(
            run_id, status="failed", error=str(e), failed_state=e.state_id, **partial
        )
    except Exception as e:
        logger.exception("Workflow run crashed", extra={"run_id": run_id, "workflow": workflow})
        run_store.update(run_id, status="failed", error=str(e))
