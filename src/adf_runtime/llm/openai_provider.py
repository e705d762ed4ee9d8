"""OpenAI-compatible provider implementation."""

import logging
from collections.abc import Iterator
from typing import Any

from openai import OpenAI

from adf_runtime.config import LLMConfig
from adf_runtime.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation.

    `base_url` lets the same client talk to any OpenAI-compatible endpoint.
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the OpenAI provider.

        Args:
            config: LLM configuration.

        Raises:
            ValueError: If API key is not provided.
        """
        if not config.openai_api_key:
            raise ValueError("OpenAI API key is required")

        self.config = config
        self.client = OpenAI(api_key=config.openai_api_key, base_url=config.openai_base_url)
        self.model = config.openai_model
        self.temperature = config.openai_temperature

        logger.info(f"OpenAI provider initialized with model: {self.model}")

    @property
    def model_name(self) -> str:
        return self.model

    def _request(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None,
        temperature: float | None,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        model = kwargs.pop("model", None) or self.model
        return {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature if temperature is not None else self.temperature,
            **kwargs,
        }

    def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        """Generate chat completion using the OpenAI API.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional OpenAI-specific parameters.

        Returns:
            Generated chat response.
        """
        logger.debug(f"Generating chat completion with {len(messages)} messages")

        response = self.client.chat.completions.create(
            **self._request(messages, max_tokens, temperature, kwargs)  # type: ignore[arg-type]
        )

        content = response.choices[0].message.content or ""
        logger.debug(f"Generated {len(content)} characters")

        return content

    def stream_chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> Iterator[str]:
        logger.debug(f"Streaming chat completion with {len(messages)} messages")

        stream = self.client.chat.completions.create(
            stream=True,
            **self._request(messages, max_tokens, temperature, kwargs),  # type: ignore[arg-type]
        )
        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                fragment = chunk.choices[0].delta.content
                if fragment:
                    yield fragment
        finally:
            stream.close()

    def count_tokens(self, text: str) -> int:
        """Count tokens using a simple approximation.

        Note:
            This is a rough approximation (about 4 characters per token).
        """
        return len(text) // 4
