"""Step-driving workflow executor.

`step` advances a run by exactly one state and returns a new context; the
input context is never mutated. `execute` validates the workflow once, then
calls `step` under the retry policy until the run is terminal, stuck, or out
of steps.

A run stops when:
- the executed state was a `response` with no transitions (terminal)
- the step resolved no transition (stuck)
- `len(history)` reached `max_steps`
"""

from __future__ import annotations

import copy
import functools
import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Protocol, assert_never

from adf_runtime.elicitation.service import ElicitationService
from adf_runtime.errors import (
    EffectFailed,
    ElicitationRejected,
    HandlerNotFound,
    MissingState,
    SamplingConfigError,
    ValidationFailed,
    WorkflowFailure,
)
from adf_runtime.retry import RetryPolicy, call_with_timeout
from adf_runtime.sampling import SamplingService
from adf_runtime.schema import (
    ConditionalState,
    ElicitationState,
    HistoryEntry,
    LoopState,
    ParallelState,
    ResponseState,
    SamplingState,
    State,
    StateKind,
    ToolState,
    Workflow,
    WorkflowContext,
)
from adf_runtime.templating import render, render_value
from adf_runtime.workflow.conditions import describe, evaluate_condition, resolve_transition
from adf_runtime.workflow.validation import ValidationReport, validate_workflow

logger = logging.getLogger(__name__)

ResponseCallback = Callable[[str, str], None]


class ToolInvoker(Protocol):
    def invoke(self, name: str, arguments: Mapping[str, Any] | None = None) -> Any: ...


@dataclass(frozen=True, slots=True)
class StateOutcome:
    """What executing one state produced, before it is applied to a context."""

    result: Any
    next_state: str | None = None
    decided: bool = False  # next_state was dictated by the state kind, not by transitions
    updates: dict[str, Any] = field(default_factory=dict)
    responses: list[tuple[str, str]] = field(default_factory=list)


def _snapshot(variables: Mapping[str, Any]) -> dict[str, Any]:
    return copy.deepcopy(dict(variables))


class WorkflowExecutor:
    """Drive a `Workflow` with the given collaborators.

    Collaborators are optional; a state whose collaborator is missing fails with
    a non-retryable error when it is reached.
    """

    def __init__(
        self,
        *,
        elicitation: ElicitationService | None = None,
        sampling: SamplingService | None = None,
        handlers: ToolInvoker | None = None,
        retry_policy: RetryPolicy | None = None,
        step_timeout_seconds: float | None = 30.0,
        on_response: ResponseCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.elicitation = elicitation
        self.sampling = sampling
        self.handlers = handlers
        self.retry_policy = retry_policy or RetryPolicy()
        self.step_timeout_seconds = step_timeout_seconds
        self.on_response = on_response
        self._sleep = sleep

    def validate_workflow(self, workflow: Workflow) -> ValidationReport:
        return validate_workflow(workflow)

    # Run loop

    def execute(
        self, workflow: Workflow, initial_variables: Mapping[str, Any] | None = None
    ) -> WorkflowContext:
        """Run `workflow` from its initial state.

        Raises:
            ValidationFailed: Before any state runs, if references are broken.
            WorkflowFailure: When a step exhausts its retries; `state_id` names
                the failing state and `context` holds the partial history.
        """

        report = self.validate_workflow(workflow)
        if not report.valid:
            raise ValidationFailed(report)

        context = WorkflowContext(
            current_state=workflow.initial, variables=dict(initial_variables or {})
        )
        logger.info(
            "Starting workflow", extra={"initial": workflow.initial, "max_steps": workflow.max_steps}
        )

        while len(context.history) < workflow.max_steps:
            current = context.current_state
            state = workflow.states[current]
            try:
                context, next_state = self.retry_policy.run(
                    functools.partial(self._advance, workflow, context),
                    operation=f"step {current}",
                    sleep=self._sleep,
                )
            except WorkflowFailure as e:
                logger.error(
                    "Workflow aborted",
                    extra={"state": e.state_id or current, "error": e.message},
                )
                raise

            if state.kind is StateKind.RESPONSE and not state.has_transitions:
                logger.info("Reached terminal state", extra={"state": current})
                break
            if next_state is None:
                logger.info("No transition available", extra={"state": current})
                break
        else:
            logger.warning(
                "Workflow stopped at step limit",
                extra={"state": context.current_state, "max_steps": workflow.max_steps},
            )

        logger.info(
            "Workflow finished",
            extra={"state": context.current_state, "steps": len(context.history)},
        )
        return context

    def step(self, workflow: Workflow, context: WorkflowContext) -> WorkflowContext:
        """Execute the current state once and return the advanced context.

        Raises:
            MissingState: If `context.current_state` is not in the workflow.
            WorkflowFailure: If the state failed; `context` on the error holds
                the history including this state's entry.
        """

        advanced, _ = self._advance(workflow, context)
        return advanced

    def _advance(
        self, workflow: Workflow, context: WorkflowContext
    ) -> tuple[WorkflowContext, str | None]:
        current = context.current_state
        state = workflow.states.get(current)
        if state is None:
            raise MissingState(current)

        history = [
            *context.history,
            HistoryEntry(state=current, variables=_snapshot(context.variables)),
        ]
        logger.info("Executing state", extra={"state": current, "type": state.kind.value})

        try:
            outcome = self._run_with_deadline(workflow, current, state, context.variables)
        except WorkflowFailure as e:
            if e.state_id is None:
                e.state_id = current
            e.context = WorkflowContext(
                current_state=current,
                variables=_snapshot(context.variables),
                history=history,
            )
            raise

        for state_id, text in outcome.responses:
            if self.on_response is not None:
                self.on_response(state_id, text)

        next_state = outcome.next_state
        if not outcome.decided:
            next_state = resolve_transition(state.transitions, outcome.result)

        if next_state is not None and next_state != current:
            logger.info("Transitioning", extra={"from_state": current, "to_state": next_state})

        advanced = WorkflowContext(
            current_state=next_state or current,
            variables={**context.variables, **outcome.updates},
            history=history,
        )
        return advanced, next_state

    def _run_with_deadline(
        self, workflow: Workflow, state_id: str, state: State, variables: Mapping[str, Any]
    ) -> StateOutcome:
        run = functools.partial(self._execute_state, workflow, state_id, state, variables)
        # Waiting on the user is bounded by the elicitation timeout instead.
        if self._waits_on_user(workflow, state, set()):
            return run()
        return call_with_timeout(run, self.step_timeout_seconds, operation=f"state {state_id}")

    def _waits_on_user(self, workflow: Workflow, state: State, seen: set[str]) -> bool:
        match state:
            case ElicitationState():
                return True
            case ParallelState(branches=branches):
                nested = branches
            case LoopState(body=body):
                nested = [body]
            case _:
                return False
        for state_id in nested:
            if state_id in seen or state_id not in workflow.states:
                continue
            seen.add(state_id)
            if self._waits_on_user(workflow, workflow.states[state_id], seen):
                return True
        return False

    # State dispatch

    def _execute_state(
        self, workflow: Workflow, state_id: str, state: State, variables: Mapping[str, Any]
    ) -> StateOutcome:
        try:
            match state:
                case ResponseState():
                    text = render(state.template, variables)
                    return StateOutcome(result=text, responses=[(state_id, text)])
                case ElicitationState():
                    return self._elicit(state_id, state, variables)
                case SamplingState():
                    return self._sample(state_id, state, variables)
                case ToolState():
                    return self._call_tool(state_id, state, variables)
                case ConditionalState():
                    outcome = evaluate_condition(state.condition, variables)
                    target = state.on_true if outcome else state.on_false
                    return StateOutcome(result=outcome, next_state=target, decided=True)
                case ParallelState():
                    return self._run_parallel(workflow, state, variables)
                case LoopState():
                    return self._run_loop(workflow, state_id, state, variables)
                case _:
                    assert_never(state)
        except WorkflowFailure as e:
            if e.state_id is None:
                e.state_id = state_id
            raise
        except Exception as e:
            logger.error(
                "State failed", extra={"state": state_id, "type": state.kind.value, "error": str(e)}
            )
            raise EffectFailed(state_id=state_id, cause=e) from e

    def _elicit(
        self, state_id: str, state: ElicitationState, variables: Mapping[str, Any]
    ) -> StateOutcome:
        if self.elicitation is None:
            raise ElicitationRejected("no elicitation service configured")
        answer = self.elicitation.request_elicitation(state.elicitation, dict(variables))
        return StateOutcome(result=answer.value, updates={f"{state_id}_response": answer.value})

    def _sample(
        self, state_id: str, state: SamplingState, variables: Mapping[str, Any]
    ) -> StateOutcome:
        if self.sampling is None:
            raise SamplingConfigError("no language-model provider configured")
        completion = self.sampling.create_completion(state.effective_spec(), variables)
        return StateOutcome(
            result=completion.content,
            updates={f"{state_id}_completion": completion.content},
        )

    def _call_tool(
        self, state_id: str, state: ToolState, variables: Mapping[str, Any]
    ) -> StateOutcome:
        if self.handlers is None:
            raise HandlerNotFound(state.handler or state.tool, "<no handlers configured>")
        params = render_value(state.parameters, variables)
        result = self.handlers.invoke(state.handler or state.tool, params)
        logger.info("Tool returned", extra={"state": state_id, "result": describe(result)})
        return StateOutcome(result=result, updates={f"{state_id}_result": result})

    def _run_parallel(
        self, workflow: Workflow, state: ParallelState, variables: Mapping[str, Any]
    ) -> StateOutcome:
        """Run every branch against its own copy of `variables` and join.

        All branches settle before anything is merged; siblings of a failed
        branch are not cancelled. The first failure in declaration order is
        raised after the join.
        """

        branches = [(branch_id, self._lookup(workflow, branch_id)) for branch_id in state.branches]
        with ThreadPoolExecutor(
            max_workers=len(branches), thread_name_prefix="adf-branch"
        ) as pool:
            futures = [
                pool.submit(self._execute_state, workflow, branch_id, branch, _snapshot(variables))
                for branch_id, branch in branches
            ]
            wait(futures)

        for (branch_id, _), future in zip(branches, futures, strict=True):
            error = future.exception()
            if error is not None:
                logger.error(
                    "Parallel branch failed", extra={"branch": branch_id, "error": str(error)}
                )
                raise error

        results: list[Any] = []
        updates: dict[str, Any] = {}
        responses: list[tuple[str, str]] = []
        for (branch_id, _), future in zip(branches, futures, strict=True):
            outcome: StateOutcome = future.result()
            results.append(outcome.result)
            updates[f"{branch_id}_result"] = outcome.result
            responses.extend(outcome.responses)
        return StateOutcome(result=results, updates=updates, responses=responses)

    def _run_loop(
        self, workflow: Workflow, state_id: str, state: LoopState, variables: Mapping[str, Any]
    ) -> StateOutcome:
        body = self._lookup(workflow, state.body)
        working = dict(variables)
        updates: dict[str, Any] = {}
        responses: list[tuple[str, str]] = []
        results: list[Any] = []

        iteration = 0
        while iteration < state.max_iterations:
            if not evaluate_condition(state.condition, {**working, "iteration": iteration}):
                break
            outcome = self._execute_state(workflow, state.body, body, working)
            working.update(outcome.updates)
            updates.update(outcome.updates)
            responses.extend(outcome.responses)
            results.append(outcome.result)
            iteration += 1

        logger.info("Loop finished", extra={"state": state_id, "iterations": iteration})
        updates[f"{state_id}_results"] = results
        return StateOutcome(result=results, updates=updates, responses=responses)

    @staticmethod
    def _lookup(workflow: Workflow, state_id: str) -> State:
        state = workflow.states.get(state_id)
        if state is None:
            raise MissingState(state_id)
        return state
