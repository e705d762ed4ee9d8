"""Language-model providers used by the sampling service."""

from adf_runtime.llm.factory import LLMFactory
from adf_runtime.llm.provider import LLMProvider

__all__ = [
    "LLMFactory",
    "LLMProvider",
]
