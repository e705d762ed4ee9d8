"""Example tool handler: canned weather lookups."""

from __future__ import annotations

from typing import Any

_WEATHER = {
    "London": "11C, drizzle",
    "Paris": "14C, clear",
    "Tokyo": "18C, cloudy",
}


def handler(args: dict[str, Any]) -> str:
    return _WEATHER.get(str(args.get("city")), "unknown")
