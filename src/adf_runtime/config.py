"""Runtime configuration.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Pydantic-settings supports overriding the env file in tests via
`RuntimeSettings(_env_file=path_to_env)`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from adf_runtime.retry import RetryPolicy


class LLMConfig(BaseSettings):
    """Configuration for language-model providers."""

    provider: Literal["openai", "llama"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI settings
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4",
        description="Default model when a sampling request does not name one",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Default sampling temperature",
    )
    openai_base_url: str | None = Field(
        default=None,
        description="Base URL of an OpenAI-compatible endpoint (None = api.openai.com)",
    )

    # LLaMA settings
    llama_model_path: Path | None = Field(
        default=None,
        description="Path to LLaMA model file",
    )
    llama_n_ctx: int = Field(
        default=4096,
        gt=0,
        description="Context window size for LLaMA",
    )
    llama_n_threads: int | None = Field(
        default=None,
        description="Number of threads for LLaMA (None = auto)",
    )

    model_config = SettingsConfigDict(
        env_prefix="ADF_LLM_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def configured(self) -> bool:
        """Whether enough settings are present to build a provider."""

        if self.provider == "openai":
            return bool(self.openai_api_key)
        return self.llama_model_path is not None


class RuntimeSettings(BaseSettings):
    """Settings for the workflow runtime.

    Environment variables:
    - LOG_LEVEL                          (optional)
    - ADF_LOG_FORMAT                     json | text
    - ADF_HANDLERS_PATH                  directory holding tool/resource handlers
    - ADF_TIMEOUT_SECONDS                per-step deadline
    - ADF_MAX_RETRIES                    attempts per step (including the first)
    - ADF_RETRY_INITIAL_DELAY_SECONDS
    - ADF_RETRY_BACKOFF_FACTOR
    - ADF_RETRY_MAX_DELAY_SECONDS
    - ADF_ELICITATION_TIMEOUT_SECONDS    how long a pending elicitation waits
    - ADF_ELICITATION_MODE               auto | native | fallback
    """

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        validation_alias="ADF_LOG_FORMAT",
        description="Log line format",
    )

    handlers_path: Path = Field(
        default=Path("handlers"),
        validation_alias="ADF_HANDLERS_PATH",
        description="Directory where tool and resource handler modules live",
    )

    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        validation_alias="ADF_TIMEOUT_SECONDS",
        description="Deadline for one workflow step",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=20,
        validation_alias="ADF_MAX_RETRIES",
        description="Attempts per step, including the first",
    )
    retry_initial_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        validation_alias="ADF_RETRY_INITIAL_DELAY_SECONDS",
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        validation_alias="ADF_RETRY_BACKOFF_FACTOR",
    )
    retry_max_delay_seconds: float = Field(
        default=10.0,
        ge=0,
        validation_alias="ADF_RETRY_MAX_DELAY_SECONDS",
    )

    elicitation_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias="ADF_ELICITATION_TIMEOUT_SECONDS",
        description="How long a pending elicitation waits for an answer",
    )
    elicitation_mode: Literal["auto", "native", "fallback"] = Field(
        default="auto",
        validation_alias="ADF_ELICITATION_MODE",
        description="Pin the elicitation delivery path, or probe per request",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            initial_delay=self.retry_initial_delay_seconds,
            factor=self.retry_backoff_factor,
            max_delay=self.retry_max_delay_seconds,
        )
