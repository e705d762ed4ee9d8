"""`{key}` token substitution shared by responses, prompts and tool parameters."""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from typing import Any

_TOKEN = re.compile(r"\{([^{}\s]+)\}")


def stringify(value: Any) -> str:
    """Render a variable the way definition files spell values.

    Booleans are `true`/`false`, `None` is `null`, integral floats drop the
    trailing `.0` and containers are compact JSON.
    """

    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return str(value)


def render(template: str, variables: Mapping[str, Any] | None) -> str:
    """Substitute `{key}` tokens; tokens without a variable stay verbatim."""

    if not variables:
        return template

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in variables:
            return stringify(variables[key])
        return match.group(0)

    return _TOKEN.sub(_sub, template)


def render_value(value: Any, variables: Mapping[str, Any] | None) -> Any:
    """Render every string nested inside `value`; other leaves pass through."""

    if isinstance(value, str):
        return render(value, variables)
    if isinstance(value, dict):
        return {k: render_value(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [render_value(v, variables) for v in value]
    return value
