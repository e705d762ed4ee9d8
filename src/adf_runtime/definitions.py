"""Agent definition documents.

A definition file (YAML or JSON) declares one agent: its tools, resources,
workflows and where its handler modules live.

    version: "1.0"
    agent:
      name: greeter
      description: Says hello
      workflows:
        main:
          initial: greet
          states:
            greet: {type: response, template: "Hello {name}"}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from adf_runtime.schema import Workflow

logger = logging.getLogger(__name__)


class DefinitionError(ValueError):
    """The document could not be read or does not describe a valid agent."""

    def __init__(self, message: str, issues: list[str] | None = None) -> None:
        self.issues = issues or []
        detail = "".join(f"\n  - {issue}" for issue in self.issues)
        super().__init__(message + detail)


class Parameter(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["string", "number", "boolean", "object", "array"]
    description: str | None = None
    required: bool = False
    default: Any = None
    enum: list[Any] | None = None


class ToolDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: str
    parameters: dict[str, Parameter] = Field(default_factory=dict)
    handler: str

    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                name: param.model_dump(exclude={"required"}, exclude_none=True)
                for name, param in self.parameters.items()
            },
            "required": [name for name, param in self.parameters.items() if param.required],
        }


class ResourceDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uri: str
    description: str
    handler: str | None = None


class Capabilities(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sampling: bool | None = None
    elicitation: bool | None = None
    tools: bool | None = None
    resources: bool | None = None


class HandlersConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    path: str
    runtime: Literal["python"] = "python"


class AgentDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: str
    capabilities: Capabilities = Field(default_factory=Capabilities)
    tools: list[ToolDefinition] = Field(default_factory=list)
    resources: list[ResourceDefinition] = Field(default_factory=list)
    workflows: dict[str, Workflow]
    handlers: HandlersConfig | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    def tool(self, name: str) -> ToolDefinition | None:
        return next((t for t in self.tools if t.name == name), None)

    def resource(self, uri: str) -> ResourceDefinition | None:
        return next((r for r in self.resources if r.uri == uri), None)


class DefinitionDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: str
    agent: AgentDefinition


def _issues(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    ]


def parse_definition(content: str, fmt: Literal["yaml", "json"] = "yaml") -> DefinitionDocument:
    """Parse and validate definition text.

    Raises:
        DefinitionError: On syntax errors or schema violations.
    """

    try:
        data = yaml.safe_load(content) if fmt == "yaml" else json.loads(content)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise DefinitionError(f"Could not parse definition: {e}") from e

    try:
        return DefinitionDocument.model_validate(data)
    except ValidationError as e:
        raise DefinitionError("Definition validation failed:", _issues(e)) from e


def load_definition(path: Path) -> DefinitionDocument:
    """Load a `.yaml`, `.yml` or `.json` definition file."""

    suffix = path.suffix.lower()
    if suffix in {".yaml", ".yml"}:
        fmt: Literal["yaml", "json"] = "yaml"
    elif suffix == ".json":
        fmt = "json"
    else:
        raise DefinitionError(f"Unsupported file format: {suffix}. Use .yaml, .yml, or .json")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DefinitionError(f"Could not read {path}: {e}") from e

    document = parse_definition(content, fmt)
    logger.info(
        "Loaded agent definition",
        extra={
            "path": str(path),
            "agent": document.agent.name,
            "workflows": sorted(document.agent.workflows),
        },
    )
    return document
