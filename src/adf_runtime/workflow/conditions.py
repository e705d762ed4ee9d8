from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from adf_runtime.templating import stringify

logger = logging.getLogger(__name__)

# Two-character operators first so ">=" is never read as ">" followed by "=...".
_COMPARISON = re.compile(r"^\s*(\w+)\s*(==|!=|>=|<=|>|<)\s*(.+?)\s*$")
_NUMBER = re.compile(r"^-?\d+(\.\d+)?([eE][-+]?\d+)?$")


def parse_literal(text: str) -> Any:
    """Parse the right-hand side of a comparison.

    Quoted text is a string, `true`/`false`/`null` map to their Python values,
    numbers become int/float, anything else is taken as a bare string.
    """

    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        return text[1:-1]
    lowered = text.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    if _NUMBER.match(text):
        number = float(text)
        return int(number) if number.is_integer() and "." not in text else number
    return text


def _coerce(left: Any, right: Any) -> tuple[Any, Any]:
    # Numeric strings compare as numbers against numeric literals (e.g. elicited text).
    if isinstance(right, (int, float)) and not isinstance(right, bool) and isinstance(left, str):
        if _NUMBER.match(left.strip()):
            return float(left), right
    return left, right


def evaluate_condition(condition: str, variables: Mapping[str, Any]) -> bool:
    """Evaluate a workflow condition.

    Supported forms:
      - `name`: truthiness of `variables[name]`
      - `name <op> literal` with op one of == != > < >= <=

    Any other form evaluates to False.
    """

    key = condition.strip()
    if key in variables:
        return bool(variables[key])

    match = _COMPARISON.match(condition)
    if match is None:
        logger.debug("Unsupported condition, evaluating to false", extra={"condition": condition})
        return False

    name, op, raw_literal = match.groups()
    left, right = _coerce(variables.get(name), parse_literal(raw_literal))

    if op == "==":
        return bool(left == right)
    if op == "!=":
        return bool(left != right)
    try:
        if op == ">":
            return bool(left > right)
        if op == "<":
            return bool(left < right)
        if op == ">=":
            return bool(left >= right)
        return bool(left <= right)
    except TypeError:
        return False


def matches_pattern(value: Any, pattern: str) -> bool:
    """Test a transition key against a state's result.

    `/re/` is a regular-expression search, a key containing `*` is a wildcard
    anchored at both ends, and anything else is an exact string match.
    """

    text = stringify(value)
    if len(pattern) >= 2 and pattern.startswith("/") and pattern.endswith("/"):
        try:
            return re.search(pattern[1:-1], text) is not None
        except re.error:
            logger.warning("Invalid transition regex", extra={"pattern": pattern})
            return False
    if "*" in pattern:
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        return re.fullmatch(regex, text, flags=re.DOTALL) is not None
    return text == pattern


def resolve_transition(transitions: Mapping[str, str] | None, result: Any) -> str | None:
    """Pick the next state id for `result`, or None when nothing matches.

    Priority: `default`, then the exact stringified result, then the remaining
    keys tested as patterns in declaration order.
    """

    if not transitions:
        return None
    if "default" in transitions:
        return transitions["default"]

    key = stringify(result)
    if key in transitions:
        return transitions[key]

    for pattern, target in transitions.items():
        if matches_pattern(result, pattern):
            return target
    return None


def describe(value: Any) -> str:
    """Short printable form of a result for log records."""

    text = stringify(value)
    if len(text) > 120:
        return text[:117] + "..."
    return text
