"""Tool executor interface and a registry of local callables."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from conductor.errors import ToolNotFoundError
from conductor.providers.models import Tool

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolExecutor(Protocol):
    """Runs a named tool with decoded arguments.

    ``execute`` may be sync or async. It returns the result as a string (other
    values are JSON-encoded by the tool loop) and raises on failure.
    """

    def execute(
        self, name: str, arguments: dict[str, Any]
    ) -> str | Awaitable[str] | Any:
        """Run tool *name*; raise on failure."""
        ...


class ToolRegistry:
    """Dispatch tool calls to registered Python callables.

    Example:
        registry = ToolRegistry()

        @registry.tool("get_weather", "Current weather", {
            "type": "object",
            "properties": {"location": {"type": "string"}},
            "required": ["location"],
        })
        async def get_weather(location: str) -> str:
            return "18°C, sunny"

        request = ProviderRequest.from_prompt("Weather?", tools=registry.tools())
    """

    def __init__(self, *, timeout_s: float | None = None) -> None:
        """Create an empty registry.

        Args:
            timeout_s: Per-call limit in seconds; None disables it. A sync tool
                that times out keeps running on its worker thread.
        """
        self._timeout_s = timeout_s
        self._entries: dict[str, tuple[Tool, Callable[..., Any]]] = {}

    def register(self, tool: Tool, fn: Callable[..., Any]) -> None:
        """Register *fn* under ``tool.name``; re-registering replaces it."""
        if tool.name in self._entries:
            logger.debug("Replacing registered tool %s", tool.name)
        self._entries[tool.name] = (tool, fn)

    def tool(
        self,
        name: str | None = None,
        description: str = "",
        parameters: Mapping[str, Any] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of ``register``; name and description default to the function's."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            declaration = Tool(
                name=name or fn.__name__,
                description=description or inspect.getdoc(fn) or "",
                parameters=dict(parameters)
                if parameters is not None
                else {"type": "object", "properties": {}},
            )
            self.register(declaration, fn)
            return fn

        return decorator

    def tools(self) -> tuple[Tool, ...]:
        """Declarations in registration order."""
        return tuple(tool for tool, _ in self._entries.values())

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def execute(self, name: str, arguments: dict[str, Any]) -> Any:
        entry = self._entries.get(name)
        if entry is None:
            raise ToolNotFoundError(
                f"Unknown tool: {name!r}",
                hint=f"Registered tools: {', '.join(self._entries) or 'none'}",
            )
        _, fn = entry
        call = _invoke(fn, arguments)
        if self._timeout_s is not None:
            return await asyncio.wait_for(call, timeout=self._timeout_s)
        return await call


async def _invoke(fn: Callable[..., Any], arguments: dict[str, Any]) -> Any:
    """Await coroutine functions; run plain callables on a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(**arguments)
    result = await asyncio.to_thread(fn, **arguments)
    if inspect.isawaitable(result):
        return await result
    return result
