"""Local LLaMA provider implementation."""

import logging
from collections.abc import Iterator
from typing import Any

from adf_runtime.config import LLMConfig
from adf_runtime.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 512
DEFAULT_TEMPERATURE = 0.7


class LLaMAProvider(LLMProvider):
    """Serve one local GGUF model through llama-cpp-python.

    Install the extra with `pip install adf-runtime[llama]`. The `model`
    keyword accepted by `chat`/`stream_chat` is ignored: a local provider
    serves exactly one model.
    """

    def __init__(self, config: LLMConfig) -> None:
        """Load the model named by `config.llama_model_path`.

        Raises:
            ValueError: If no model path is configured.
            ImportError: If llama-cpp-python is not installed.
        """
        if not config.llama_model_path:
            raise ValueError("LLaMA model path is required")

        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise ImportError(
                "llama-cpp-python is required for the LLaMA provider. "
                "Install it with: pip install adf-runtime[llama]"
            ) from e

        self.config = config
        self.model_path = config.llama_model_path

        logger.info(f"Loading LLaMA model from: {self.model_path}")
        self.llm = Llama(
            model_path=str(self.model_path),
            n_ctx=config.llama_n_ctx,
            n_threads=config.llama_n_threads,
            verbose=False,
        )
        logger.info(f"LLaMA model ready: {self.model_name}")

    @property
    def model_name(self) -> str:
        return self.model_path.name

    @staticmethod
    def _completion_args(
        messages: list[dict[str, str]],
        max_tokens: int | None,
        temperature: float | None,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        kwargs.pop("model", None)
        return {
            "messages": messages,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            **kwargs,
        }

    def chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> str:
        logger.debug(f"Local chat completion over {len(messages)} messages")
        result = self.llm.create_chat_completion(
            **self._completion_args(messages, max_tokens, temperature, kwargs)
        )
        return result["choices"][0]["message"]["content"] or ""

    def stream_chat(
        self,
        messages: list[dict[str, str]],
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> Iterator[str]:
        chunks = self.llm.create_chat_completion(
            stream=True, **self._completion_args(messages, max_tokens, temperature, kwargs)
        )
        for chunk in chunks:
            fragment = chunk["choices"][0]["delta"].get("content")
            if fragment:
                yield fragment

    def count_tokens(self, text: str) -> int:
        return len(self.llm.tokenize(text.encode("utf-8")))
