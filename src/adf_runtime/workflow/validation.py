"""Semantic validation of a workflow, run once before any execution.

Structural validation (field types, required fields) happens when the
`Workflow` model is parsed. This module checks what the parser cannot: that
every referenced state exists, and which states are reachable from `initial`.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Literal

from adf_runtime.schema import Workflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Diagnostic:
    severity: Literal["error", "warning"]
    message: str
    state: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationReport:
    valid: bool
    diagnostics: list[Diagnostic] = field(default_factory=list)
    unreachable: list[str] = field(default_factory=list)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "error"]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "warning"]


def validate_workflow(workflow: Workflow) -> ValidationReport:
    """Check reference integrity and reachability.

    Fails when the initial state or any transition/onTrue/onFalse/branches/body
    target is missing. Unreachable states are reported as warnings only.
    """

    diagnostics: list[Diagnostic] = []

    if workflow.initial not in workflow.states:
        diagnostics.append(
            Diagnostic("error", f"Initial state '{workflow.initial}' not found", workflow.initial)
        )

    for state_id, state in workflow.states.items():
        for target in state.references():
            if target not in workflow.states:
                diagnostics.append(
                    Diagnostic(
                        "error",
                        f"State '{state_id}' references missing state '{target}'",
                        state_id,
                    )
                )

    reachable: set[str] = set()
    if workflow.initial in workflow.states:
        queue = deque([workflow.initial])
        reachable.add(workflow.initial)
        while queue:
            current = workflow.states[queue.popleft()]
            for target in current.references():
                if target in workflow.states and target not in reachable:
                    reachable.add(target)
                    queue.append(target)

    unreachable = [s for s in workflow.states if s not in reachable]
    for state_id in unreachable:
        diagnostics.append(Diagnostic("warning", f"State '{state_id}' is unreachable", state_id))

    valid = not any(d.severity == "error" for d in diagnostics)
    for d in diagnostics:
        log = logger.error if d.severity == "error" else logger.warning
        log(d.message, extra={"state": d.state})

    return ValidationReport(valid=valid, diagnostics=diagnostics, unreachable=unreachable)
