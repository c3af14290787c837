"""Scripted provider for testing without API calls."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

from conductor.errors import ProviderNotConfiguredError
from conductor.providers.base import append_tool_outputs
from conductor.providers.models import ProviderRequest, ProviderResponse

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from conductor.config import ProviderSettings


class ScriptedProvider:
    """Return queued responses in order and record every request.

    Once the script runs out, the provider echoes the last user message.
    ``calls`` holds ``(method, request)`` pairs where method is ``"chat"`` or
    ``"generate_text_with_tool_results"``; the latter records the request
    after tool messages were appended.
    """

    def __init__(
        self,
        responses: Iterable[ProviderResponse] = (),
        *,
        name: str = "mock",
        configured: bool = True,
    ) -> None:
        self.name = name
        self._queue: deque[ProviderResponse] = deque(responses)
        self._configured = configured
        self.calls: list[tuple[str, ProviderRequest]] = []

    @property
    def is_configured(self) -> bool:
        return self._configured

    def configure(
        self, settings: ProviderSettings | Mapping[str, Any] | None = None
    ) -> None:
        _ = settings
        self._configured = True

    def queue(self, *responses: ProviderResponse) -> None:
        """Append responses to the script."""
        self._queue.extend(responses)

    @property
    def requests(self) -> list[ProviderRequest]:
        return [request for _, request in self.calls]

    async def chat(self, request: ProviderRequest) -> ProviderResponse:
        return self._next("chat", request)

    async def generate_text_with_tool_results(
        self, request: ProviderRequest
    ) -> ProviderResponse:
        messages = append_tool_outputs(request)
        return self._next(
            "generate_text_with_tool_results",
            request.replace(messages=messages, tool_outputs=None),
        )

    async def aclose(self) -> None:
        """Nothing to release."""

    def _next(self, method: str, request: ProviderRequest) -> ProviderResponse:
        if not self._configured:
            raise ProviderNotConfiguredError(f"{self.name} provider not configured")
        self.calls.append((method, request))
        if self._queue:
            return self._queue.popleft()
        last_user = next(
            (m.content for m in reversed(request.messages) if m.role == "user"), ""
        )
        return ProviderResponse(
            content=f"echo: {last_user[:100]}",
            usage={"input_tokens": 10, "total_tokens": 20},
        )
