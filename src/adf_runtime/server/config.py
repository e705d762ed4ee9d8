"""Configuration for the HTTP server."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerSettings(BaseSettings):
    """Settings for serving one agent definition over HTTP."""

    definition_path: Path | None = Field(
        default=None,
        validation_alias="ADF_DEFINITION",
        description="Agent definition file to load when no runtime is passed to create_app",
    )

    host: str = Field(default="127.0.0.1", validation_alias="ADF_HOST")
    port: int = Field(default=8000, ge=1, le=65535, validation_alias="ADF_PORT")

    # Dev-friendly CORS. Override via ADF_CORS_ORIGINS=...
    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="ADF_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
