"""Provider construction from `LLMConfig`."""

import logging

from adf_runtime.config import LLMConfig
from adf_runtime.llm.llama_provider import LLaMAProvider
from adf_runtime.llm.openai_provider import OpenAIProvider
from adf_runtime.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class LLMFactory:
    """Builds the provider named by `LLMConfig.provider`."""

    @staticmethod
    def create(config: LLMConfig) -> LLMProvider:
        """Return a ready provider.

        Raises:
            ValueError: If the provider is unknown or its required settings are missing.
        """
        logger.info(f"Creating LLM provider: {config.provider}")

        match config.provider:
            case "openai":
                return OpenAIProvider(config)
            case "llama":
                return LLaMAProvider(config)
            case _:
                raise ValueError(f"Unsupported LLM provider: {config.provider}")
