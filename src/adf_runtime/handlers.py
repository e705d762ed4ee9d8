"""Tool and resource handler loading.

A handler reference is either a file path relative to the handlers directory
(`weather` or `tools/weather.py`) or a dotted module path with an attribute
(`mypkg.tools:lookup`). File handlers expose a callable named `handler`.

Tool handlers are called with the parameters dict; resource handlers with the
requested URI.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from types import ModuleType
from typing import Any

from adf_runtime.definitions import ToolDefinition
from adf_runtime.errors import HandlerNotFound

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

HANDLER_ATTRIBUTES = ("handler", "default")


class HandlerLoader:
    """Resolve handler references to callables, caching each one."""

    def __init__(self, base_path: Path, tools: Iterable[ToolDefinition] = ()) -> None:
        self.base_path = Path(base_path)
        self._tools = {tool.name: tool.handler for tool in tools}
        self._cache: dict[str, Handler] = {}
        self._lock = threading.Lock()

    def resolve_reference(self, name: str) -> str:
        """Map a tool name to its declared handler; anything else is already a reference."""

        return self._tools.get(name, name)

    def load(self, reference: str) -> Handler:
        """Import the handler behind `reference`.

        Raises:
            HandlerNotFound: If the module or its callable cannot be found.
        """

        with self._lock:
            cached = self._cache.get(reference)
            if cached is not None:
                return cached

            if ":" in reference:
                handler = self._load_attribute(reference)
            else:
                handler = self._load_file(reference)

            self._cache[reference] = handler

        logger.debug("Handler loaded", extra={"handler": reference})
        return handler

    def _load_attribute(self, reference: str) -> Handler:
        module_name, _, attribute = reference.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise HandlerNotFound(reference, module_name) from e
        handler = getattr(module, attribute, None)
        if not callable(handler):
            raise HandlerNotFound(reference, module_name)
        return handler

    def _module_path(self, reference: str) -> Path:
        path = Path(reference)
        if not path.is_absolute():
            path = self.base_path / path
        if path.suffix != ".py":
            path = path.with_name(path.name + ".py")
        return path

    def _load_file(self, reference: str) -> Handler:
        path = self._module_path(reference)
        if not path.is_file():
            raise HandlerNotFound(reference, str(self.base_path))

        spec = importlib.util.spec_from_file_location(f"adf_handlers.{path.stem}", path)
        if spec is None or spec.loader is None:
            raise HandlerNotFound(reference, str(path))
        module: ModuleType = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        for attribute in HANDLER_ATTRIBUTES:
            handler = getattr(module, attribute, None)
            if callable(handler):
                return handler
        raise HandlerNotFound(reference, str(path))

    def invoke(self, name: str, arguments: Mapping[str, Any] | None = None) -> Any:
        """Call the tool handler for `name` (a tool name or a handler reference)."""

        reference = self.resolve_reference(name)
        handler = self.load(reference)
        logger.info("Invoking tool handler", extra={"tool": name, "handler": reference})
        return handler(dict(arguments or {}))

    def read_resource(self, reference: str, uri: str) -> Any:
        handler = self.load(reference)
        logger.info("Reading resource", extra={"uri": uri, "handler": reference})
        return handler(uri)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
