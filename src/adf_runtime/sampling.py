"""Sampling service: language-model completions for sampling states."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from adf_runtime.errors import (
    SamplingConfigError,
    SamplingError,
    SamplingStreamError,
    WorkflowTimeout,
)
from adf_runtime.llm.provider import LLMProvider
from adf_runtime.retry import RetryPolicy, call_with_timeout
from adf_runtime.schema import SamplingSpec
from adf_runtime.templating import render
from adf_runtime.workflow.conditions import describe

logger = logging.getLogger(__name__)

MAX_TOKENS_LIMIT = 100_000


@dataclass(frozen=True, slots=True)
class CompletionResult:
    content: str
    model: str
    tokens: int
    metadata: dict[str, Any] = field(default_factory=dict)


def sampling_problems(spec: SamplingSpec) -> list[str]:
    """Every out-of-range parameter in `spec`, as human-readable text."""

    problems: list[str] = []
    if spec.temperature is not None and not 0 <= spec.temperature <= 2:
        problems.append(f"Invalid temperature: {spec.temperature}")
    if spec.max_tokens is not None and not 1 <= spec.max_tokens <= MAX_TOKENS_LIMIT:
        problems.append(f"Invalid max_tokens: {spec.max_tokens}")
    if spec.top_p is not None and not 0 <= spec.top_p <= 1:
        problems.append(f"Invalid top_p: {spec.top_p}")
    return problems


class SamplingService:
    """Build provider messages from a `SamplingSpec` and run the completion.

    `create_completion` goes through the retry policy with a deadline on every
    attempt. `stream_completion` is not retried: fragments already handed to
    the caller cannot be taken back.
    """

    def __init__(
        self,
        provider: LLMProvider,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout_seconds: float | None = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep

    def build_messages(
        self, spec: SamplingSpec, variables: Mapping[str, Any] | None = None
    ) -> list[dict[str, str]]:
        variables = variables or {}
        messages: list[dict[str, str]] = []

        if spec.system:
            messages.append({"role": "system", "content": render(spec.system, variables)})

        for key in spec.context:
            value = variables.get(key)
            if value is None:
                continue
            encoded = json.dumps(value, ensure_ascii=False, default=str)
            messages.append({"role": "assistant", "content": f"Context for {key}: {encoded}"})

        messages.append({"role": "user", "content": render(spec.prompt, variables)})
        return messages

    def validate_sampling(self, spec: SamplingSpec) -> bool:
        problems = sampling_problems(spec)
        for problem in problems:
            logger.warning(problem, extra={"prompt": describe(spec.prompt)})
        return not problems

    def _options(self, spec: SamplingSpec) -> dict[str, Any]:
        options: dict[str, Any] = {
            "max_tokens": spec.max_tokens,
            "temperature": spec.temperature,
        }
        if spec.model:
            options["model"] = spec.model
        if spec.top_p is not None:
            options["top_p"] = spec.top_p
        return options

    def create_completion(
        self, spec: SamplingSpec, variables: Mapping[str, Any] | None = None
    ) -> CompletionResult:
        """Run one chat completion.

        Raises:
            SamplingConfigError: If a parameter is out of range (no provider call is made).
            SamplingError: If the provider kept failing.
            WorkflowTimeout: If the last attempt ran past the deadline.
        """

        if not self.validate_sampling(spec):
            raise SamplingConfigError(
                "Invalid sampling configuration: " + "; ".join(sampling_problems(spec)),
                prompt=spec.prompt,
                model=spec.model,
            )

        messages = self.build_messages(spec, variables)
        model = spec.model or self.provider.model_name
        logger.info("Creating completion", extra={"model": model, "messages": len(messages)})

        def _attempt() -> str:
            try:
                return call_with_timeout(
                    lambda: self.provider.chat(messages, **self._options(spec)),
                    self.timeout_seconds,
                    operation="sampling completion",
                )
            except (SamplingError, WorkflowTimeout):
                raise
            except Exception as e:
                raise SamplingError(str(e), prompt=spec.prompt, model=model) from e

        content = self.retry_policy.run(_attempt, operation="sampling completion", sleep=self._sleep)

        logger.info("Completion created", extra={"model": model, "content": describe(content)})
        return CompletionResult(
            content=content,
            model=model,
            tokens=self.provider.count_tokens(content),
            metadata={
                "messages": len(messages),
                "temperature": spec.temperature,
                "max_tokens": spec.max_tokens,
            },
        )

    def stream_completion(
        self, spec: SamplingSpec, variables: Mapping[str, Any] | None = None
    ) -> Iterator[str]:
        """Yield completion fragments as the provider produces them.

        Closing the generator early closes the provider stream.

        Raises:
            SamplingConfigError: If a parameter is out of range.
            SamplingStreamError: If the provider fails part-way; carries the
                fragments already yielded.
        """

        if not self.validate_sampling(spec):
            raise SamplingConfigError(
                "Invalid sampling configuration: " + "; ".join(sampling_problems(spec)),
                prompt=spec.prompt,
                model=spec.model,
            )

        messages = self.build_messages(spec, variables)
        delivered: list[str] = []
        stream = self.provider.stream_chat(messages, **self._options(spec))
        try:
            for fragment in stream:
                delivered.append(fragment)
                yield fragment
        except Exception as e:
            logger.error(
                "Streaming failed",
                extra={"fragments": len(delivered), "error": str(e)},
            )
            raise SamplingStreamError(
                f"Streaming failed: {e}", fragments=list(delivered), prompt=spec.prompt
            ) from e
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()
