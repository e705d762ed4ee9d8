"""Pure prompt formatting, validation and transformation for elicitation specs.

`validate_response` and `transform_response` are total over each other: every
raw value accepted by the former has a defined, non-raising output from the
latter.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from adf_runtime.schema import ElicitationSpec
from adf_runtime.templating import render, stringify

CONFIRM_VALUES = frozenset({"yes", "no", "y", "n", "true", "false"})
CONFIRM_TRUE = frozenset({"yes", "y", "true"})


@dataclass(frozen=True, slots=True)
class Verdict:
    valid: bool
    reason: str | None = None


_VALID = Verdict(valid=True)


def _fmt(value: float) -> str:
    return stringify(value)


def _is_empty(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _parse_number(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if not isinstance(raw, (int, float, str)):
        return None
    try:
        number = float(raw.strip() if isinstance(raw, str) else raw)
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _select_index(raw: Any, options: list[str]) -> int | None:
    """0-based index for a 1-based numeric answer, if it names an option."""

    number = _parse_number(raw)
    if number is None or not number.is_integer():
        return None
    index = int(number) - 1
    if 0 <= index < len(options):
        return index
    return None


def format_prompt(spec: ElicitationSpec, context: Mapping[str, Any] | None = None) -> str:
    """Render the prompt and append type-specific guidance."""

    prompt = render(spec.prompt, context)

    match spec.type:
        case "select":
            if spec.options:
                lines = [f"{i}. {opt}" for i, opt in enumerate(spec.options, start=1)]
                prompt += "\nOptions:\n" + "\n".join(lines)
        case "confirm":
            prompt += " (yes/no)"
        case "number":
            bounds = []
            if spec.minimum is not None:
                bounds.append(f"min: {_fmt(spec.minimum)}")
            if spec.maximum is not None:
                bounds.append(f"max: {_fmt(spec.maximum)}")
            if bounds:
                prompt += f" ({', '.join(bounds)})"
        case "text":
            if spec.pattern:
                prompt += f" (format: /{spec.pattern}/)"

    return prompt


def validate_response(raw: Any, spec: ElicitationSpec) -> Verdict:
    """Judge a raw answer against its `ElicitationSpec`. Pure: no I/O, no state."""

    if _is_empty(raw) and not spec.required:
        return _VALID

    match spec.type:
        case "text":
            if not isinstance(raw, str):
                return Verdict(False, "Response must be a string")
            if spec.pattern:
                try:
                    matched = re.fullmatch(spec.pattern, raw) is not None
                except re.error:
                    return Verdict(False, f"Invalid pattern: {spec.pattern}")
                if not matched:
                    return Verdict(False, f"Response does not match pattern: {spec.pattern}")
            return _VALID

        case "number":
            number = _parse_number(raw)
            if number is None:
                return Verdict(False, "Response must be a number")
            if spec.minimum is not None and number < spec.minimum:
                return Verdict(False, f"Response must be >= {_fmt(spec.minimum)}")
            if spec.maximum is not None and number > spec.maximum:
                return Verdict(False, f"Response must be <= {_fmt(spec.maximum)}")
            return _VALID

        case "confirm":
            if stringify(raw).strip().lower() not in CONFIRM_VALUES:
                return Verdict(False, "Response must be yes/no")
            return _VALID

        case "select":
            options = spec.options or []
            if stringify(raw) in options or _select_index(raw, options) is not None:
                return _VALID
            return Verdict(False, f"Response must be one of: {', '.join(options)}")


def transform_response(raw: Any, spec: ElicitationSpec) -> Any:
    """Convert an accepted raw answer to its typed value."""

    if _is_empty(raw) and not spec.required:
        return None

    match spec.type:
        case "number":
            number = _parse_number(raw)
            if number is None:
                return raw
            return int(number) if number.is_integer() else number
        case "confirm":
            return stringify(raw).strip().lower() in CONFIRM_TRUE
        case "select":
            options = spec.options or []
            text = stringify(raw)
            if text in options:
                return text
            index = _select_index(raw, options)
            return options[index] if index is not None else raw
        case "text":
            return raw


def instructions(spec: ElicitationSpec) -> str:
    """Short human-readable instructions embedded in fallback payloads."""

    lines = [f"Please provide a {spec.type} response."]
    match spec.type:
        case "select":
            lines.append(f"Choose one of the following options: {', '.join(spec.options or [])}")
        case "confirm":
            lines.append('Respond with "yes" or "no"')
        case "number":
            if spec.minimum is not None:
                lines.append(f"Minimum value: {_fmt(spec.minimum)}")
            if spec.maximum is not None:
                lines.append(f"Maximum value: {_fmt(spec.maximum)}")
        case "text":
            if spec.pattern:
                lines.append(f"Must match pattern: {spec.pattern}")
    if spec.required:
        lines.append("This response is required.")
    return "\n".join(lines)


def validation_rules(spec: ElicitationSpec) -> list[str]:
    rules: list[str] = []
    match spec.type:
        case "select":
            rules.append(f"Must be one of: {', '.join(spec.options or [])}")
            rules.append("Or the 1-based number of an option")
        case "confirm":
            rules.append("Must be yes/no or equivalent (y/n, true/false)")
        case "number":
            rules.append("Must be a valid number")
            if spec.minimum is not None:
                rules.append(f"Must be >= {_fmt(spec.minimum)}")
            if spec.maximum is not None:
                rules.append(f"Must be <= {_fmt(spec.maximum)}")
        case "text":
            rules.append("Must be a text string")
            if spec.pattern:
                rules.append(f"Must match pattern: /{spec.pattern}/")
    if not spec.required:
        rules.append("May be left empty")
    return rules
