"""Pydantic models for the HTTP server."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ToolCallRequest(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ResourceReadRequest(BaseModel):
    uri: str


class RunRequest(BaseModel):
    variables: dict[str, Any] = Field(default_factory=dict)


RunStatus = Literal["queued", "running", "succeeded", "failed"]


class WorkflowRun(BaseModel):
    run_id: str
    workflow: str
    status: RunStatus

    created_at: datetime
    updated_at: datetime

    current_state: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    history: list[dict[str, Any]] = Field(default_factory=list)
    responses: list[str] = Field(default_factory=list)

    error: str | None = None
    failed_state: str | None = None
