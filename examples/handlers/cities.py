"""Example resource handler."""

from __future__ import annotations

from typing import Any


def handler(uri: str) -> dict[str, Any]:
    return {"uri": uri, "cities": ["London", "Paris", "Tokyo"]}
