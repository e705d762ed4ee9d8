"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from adf_runtime.config import LLMConfig, RuntimeSettings
from adf_runtime.llm.provider import LLMProvider
from adf_runtime.retry import RetryPolicy
from adf_runtime.schema import Workflow


class FakeProvider(LLMProvider):
    """Scripted provider: returns `replies` in order and records every call."""

    def __init__(
        self,
        replies: list[str | Exception] | None = None,
        fragments: list[str | Exception] | None = None,
    ) -> None:
        self.replies = list(replies or ["fake completion"])
        self.fragments = list(fragments or [])
        self.calls: list[dict[str, Any]] = []
        self.stream_closed = False

    @property
    def model_name(self) -> str:
        return "fake-model"

    def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        self.calls.append(
            {"messages": messages, "max_tokens": max_tokens, "temperature": temperature, **kwargs}
        )
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def stream_chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> Iterator[str]:
        self.calls.append({"messages": messages, "stream": True, **kwargs})
        try:
            for fragment in self.fragments:
                if isinstance(fragment, Exception):
                    raise fragment
                yield fragment
        finally:
            self.stream_closed = True

    def count_tokens(self, text: str) -> int:
        return len(text.split())


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Three attempts with no waiting."""
    return RetryPolicy(max_attempts=3, initial_delay=0.0, factor=2.0, max_delay=0.0)


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(
        provider="openai",
        openai_api_key="test-key",
        openai_model="gpt-4",
    )


@pytest.fixture
def runtime_settings(tmp_path: Path) -> RuntimeSettings:
    """Settings with short deadlines, no backoff and no language model."""
    return RuntimeSettings(
        _env_file=None,
        handlers_path=tmp_path / "handlers",
        timeout_seconds=5.0,
        max_retries=2,
        retry_initial_delay_seconds=0.0,
        retry_max_delay_seconds=0.0,
        elicitation_timeout_seconds=5.0,
        llm=LLMConfig(_env_file=None, openai_api_key=None),
    )


def make_workflow(initial: str, states: dict[str, Any], **extra: Any) -> Workflow:
    return Workflow.model_validate({"initial": initial, "states": states, **extra})
