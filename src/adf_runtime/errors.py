"""Failure taxonomy for workflow execution and its collaborators.

`WorkflowFailure` subclasses are what `WorkflowExecutor.step` and
`WorkflowExecutor.execute` raise. Each carries the id of the state at which it
occurred and, once a run aborts, the partial context accumulated so far.

The remaining exceptions are raised by collaborators (sampling, handlers, the
elicitation registry) and are wrapped into `EffectFailed` by the executor.
"""

from __future__ import annotations

from concurrent.futures import Future, wait
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from adf_runtime.schema import WorkflowContext
    from adf_runtime.workflow.validation import ValidationReport


class WorkflowFailure(Exception):
    """Base class for every failure surfaced by the executor."""

    retryable: bool = False

    def __init__(self, message: str, *, state_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state_id = state_id
        self.context: WorkflowContext | None = None

    def __str__(self) -> str:
        if self.state_id:
            return f"[{self.state_id}] {self.message}"
        return self.message


class ValidationFailed(WorkflowFailure):
    """The workflow failed semantic validation; the step loop was never entered."""

    def __init__(self, report: ValidationReport) -> None:
        errors = [d.message for d in report.errors]
        super().__init__("Workflow validation failed: " + "; ".join(errors))
        self.report = report


class MissingState(WorkflowFailure):
    def __init__(self, state_id: str) -> None:
        super().__init__(f"State '{state_id}' not found in workflow", state_id=state_id)


class EffectFailed(WorkflowFailure):
    """An elicitation, sampling or tool collaborator raised."""

    def __init__(self, *, state_id: str, cause: BaseException) -> None:
        super().__init__(f"{type(cause).__name__}: {cause}", state_id=state_id)
        self.cause = cause
        self.retryable = bool(getattr(cause, "retryable", True))


class WorkflowTimeout(WorkflowFailure):
    """A guarded call missed its deadline.

    `abandoned` is the future of the call that was left running, when the
    deadline was enforced from another thread. A retry must not start until it
    has settled.
    """

    retryable = True

    def __init__(
        self,
        *,
        operation: str,
        timeout_seconds: float,
        state_id: str | None = None,
        abandoned: Future[Any] | None = None,
    ) -> None:
        super().__init__(
            f"{operation} timed out after {timeout_seconds:g}s", state_id=state_id
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        self.abandoned = abandoned

    def settle(self, timeout_seconds: float | None) -> bool:
        """Wait for the abandoned call to finish. True once nothing is left running."""

        if self.abandoned is None:
            return True
        done, _ = wait([self.abandoned], timeout=timeout_seconds)
        return bool(done)


class ElicitationRejected(WorkflowFailure):
    """No valid response could be obtained within the channel's constraints."""

    def __init__(self, reason: str, *, retryable: bool = False) -> None:
        super().__init__(f"Elicitation rejected: {reason}")
        self.reason = reason
        self.retryable = retryable


class SamplingError(Exception):
    retryable = True

    def __init__(self, message: str, *, prompt: str = "", model: str | None = None) -> None:
        super().__init__(message)
        self.prompt = prompt
        self.model = model


class SamplingConfigError(SamplingError):
    """Sampling parameters are out of range; raised before any provider call."""

    retryable = False


class SamplingStreamError(SamplingError):
    """A stream failed part-way; `fragments` holds what was already delivered."""

    def __init__(self, message: str, *, fragments: list[str], prompt: str = "") -> None:
        super().__init__(message, prompt=prompt)
        self.fragments = fragments


class HandlerNotFound(LookupError):
    retryable = False

    def __init__(self, name: str, path: str) -> None:
        super().__init__(f"Handler '{name}' not found under {path}")
        self.name = name
        self.path = path


class UnknownElicitation(LookupError):
    def __init__(self, elicitation_id: str) -> None:
        super().__init__(f"Elicitation {elicitation_id} not found")
        self.elicitation_id = elicitation_id


class ChannelClosedError(ConnectionError):
    """The native elicitation channel closed before answering."""
