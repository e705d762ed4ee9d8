from __future__ import annotations

from pathlib import Path

import pytest

from adf_runtime.definitions import ToolDefinition
from adf_runtime.errors import HandlerNotFound
from adf_runtime.handlers import HandlerLoader


@pytest.fixture
def handlers_dir(tmp_path: Path) -> Path:
    base = tmp_path / "handlers"
    base.mkdir()
    (base / "echo.py").write_text(
        "calls = []\n"
        "\n"
        "def handler(params):\n"
        "    calls.append(params)\n"
        "    return {'echo': params, 'count': len(calls)}\n",
        encoding="utf-8",
    )
    (base / "legacy.py").write_text(
        "def default(uri):\n    return {'uri': uri}\n", encoding="utf-8"
    )
    (base / "empty.py").write_text("VALUE = 1\n", encoding="utf-8")
    return base


def test_file_handler_is_invoked_with_parameters(handlers_dir: Path) -> None:
    loader = HandlerLoader(handlers_dir)

    assert loader.invoke("echo", {"city": "Paris"}) == {"echo": {"city": "Paris"}, "count": 1}


def test_tool_name_resolves_to_declared_handler(handlers_dir: Path) -> None:
    tool = ToolDefinition(name="repeat", description="Echo input", handler="echo")
    loader = HandlerLoader(handlers_dir, [tool])

    assert loader.resolve_reference("repeat") == "echo"
    assert loader.invoke("repeat", {"x": 1})["echo"] == {"x": 1}


def test_loaded_handlers_are_cached(handlers_dir: Path) -> None:
    loader = HandlerLoader(handlers_dir)

    loader.invoke("echo")
    second = loader.invoke("echo")

    assert second["count"] == 2
    assert loader.load("echo") is loader.load("echo")

    loader.clear_cache()
    assert loader.invoke("echo")["count"] == 1


def test_default_callable_is_accepted(handlers_dir: Path) -> None:
    loader = HandlerLoader(handlers_dir)

    assert loader.read_resource("legacy", "data://x") == {"uri": "data://x"}


def test_module_attribute_reference() -> None:
    loader = HandlerLoader(Path("unused"))

    assert loader.invoke("json:dumps", {"a": 1}) == '{"a": 1}'


@pytest.mark.parametrize("reference", ["missing", "empty", "json:no_such_function", "nope.mod:fn"])
def test_unresolvable_references_raise(handlers_dir: Path, reference: str) -> None:
    loader = HandlerLoader(handlers_dir)

    with pytest.raises(HandlerNotFound) as exc_info:
        loader.load(reference)

    assert exc_info.value.retryable is False
