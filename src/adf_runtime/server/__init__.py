"""HTTP adapter for one `AgentRuntime`.

Routes mirror the host verbs (tools, resources, prompts) and add background
workflow runs. Runtime behaviour stays in `adf_runtime.*`; routing, CORS and
run tracking live here.
"""

from __future__ import annotations

__all__ = ["create_app"]

from adf_runtime.server.app import create_app
