"""In-memory tracking of workflow runs started over HTTP.

Runs are not persisted across restarts.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime

from adf_runtime.server.models import WorkflowRun


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class RunStore:
    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self._runs: dict[str, WorkflowRun] = {}

    def list(self) -> list[WorkflowRun]:
        with self._lock:
            return sorted(self._runs.values(), key=lambda r: r.created_at)

    def get(self, run_id: str) -> WorkflowRun | None:
        with self._lock:
            return self._runs.get(run_id)

    def create(self, *, run_id: str, workflow: str) -> WorkflowRun:
        with self._lock:
            now = _utc_now()
            record = WorkflowRun(
                run_id=run_id,
                workflow=workflow,
                status="queued",
                created_at=now,
                updated_at=now,
            )
            self._runs[run_id] = record
            return record

    def update(self, run_id: str, **updates: object) -> WorkflowRun:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise KeyError(run_id)
            merged = run.model_copy(update={"updated_at": _utc_now(), **updates})
            self._runs[run_id] = merged
            return merged

    def append_response(self, run_id: str, text: str) -> None:
        with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                raise KeyError(run_id)
            self._runs[run_id] = run.model_copy(
                update={"updated_at": _utc_now(), "responses": [*run.responses, text]}
            )
