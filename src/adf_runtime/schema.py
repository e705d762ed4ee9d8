"""Workflow, state and run-context models.

States are a closed variant discriminated on `type`. Each variant carries only
the fields relevant to its kind and `State.kind` names the variant as a
`StateKind`. The executor dispatches on the variant classes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StateKind(str, Enum):
    RESPONSE = "response"
    ELICITATION = "elicitation"
    SAMPLING = "sampling"
    TOOL = "tool"
    CONDITIONAL = "conditional"
    PARALLEL = "parallel"
    LOOP = "loop"


ElicitationType = Literal["text", "number", "confirm", "select"]


class ElicitationSpec(BaseModel):
    """What to ask the user and how to validate the answer."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: ElicitationType
    prompt: str
    options: list[str] | None = None
    minimum: float | None = Field(default=None, alias="min")
    maximum: float | None = Field(default=None, alias="max")
    pattern: str | None = None
    required: bool = True


class SamplingSpec(BaseModel):
    """What to ask the language model.

    Ranges are deliberately unconstrained here; `SamplingService.validate_sampling`
    reports out-of-range values before any provider call.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    prompt: str
    system: str | None = None
    context: list[str] = Field(default_factory=list)
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None


class _StateBase(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    transitions: dict[str, str] | None = None

    @property
    def kind(self) -> StateKind:
        return StateKind(getattr(self, "type"))

    @property
    def has_transitions(self) -> bool:
        return bool(self.transitions)

    def references(self) -> list[str]:
        """Every state id this state can hand control (or work) to."""

        return list((self.transitions or {}).values())


class ResponseState(_StateBase):
    type: Literal["response"]
    template: str = ""


class ElicitationState(_StateBase):
    type: Literal["elicitation"]
    elicitation: ElicitationSpec


class SamplingState(_StateBase):
    type: Literal["sampling"]
    sampling: SamplingSpec | None = None
    prompt: str | None = None
    context: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_prompt(self) -> SamplingState:
        if self.sampling is None and not self.prompt:
            raise ValueError("sampling state requires either 'sampling' or 'prompt'")
        return self

    def effective_spec(self) -> SamplingSpec:
        if self.sampling is not None:
            return self.sampling
        return SamplingSpec(prompt=self.prompt or "", context=self.context)


class ToolState(_StateBase):
    type: Literal["tool"]
    tool: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    handler: str | None = None


class ConditionalState(_StateBase):
    type: Literal["conditional"]
    condition: str
    on_true: str | None = Field(default=None, alias="onTrue")
    on_false: str | None = Field(default=None, alias="onFalse")

    def references(self) -> list[str]:
        refs = super().references()
        refs.extend(t for t in (self.on_true, self.on_false) if t)
        return refs


class ParallelState(_StateBase):
    type: Literal["parallel"]
    branches: list[str] = Field(min_length=1)

    def references(self) -> list[str]:
        return super().references() + list(self.branches)


class LoopState(_StateBase):
    type: Literal["loop"]
    condition: str
    body: str
    max_iterations: int = Field(default=100, alias="maxIterations", ge=1)

    def references(self) -> list[str]:
        return super().references() + [self.body]


State = Annotated[
    ResponseState
    | ElicitationState
    | SamplingState
    | ToolState
    | ConditionalState
    | ParallelState
    | LoopState,
    Field(discriminator="type"),
]


class Workflow(BaseModel):
    """A directed graph of states with one initial state. Immutable once loaded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    initial: str
    states: dict[str, State]
    max_steps: int = Field(default=1000, alias="maxSteps", ge=1)


class HistoryEntry(BaseModel):
    state: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    variables: dict[str, Any] = Field(default_factory=dict)


class WorkflowContext(BaseModel):
    """Per-run state, owned by the executor for the duration of a run."""

    current_state: str
    variables: dict[str, Any] = Field(default_factory=dict)
    history: list[HistoryEntry] = Field(default_factory=list)
