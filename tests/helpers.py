"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: one fake client that answers on every
SDK call path the adapters use, plus builders for vendor response shapes.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

from conductor.providers.models import ToolCall


class ScriptedCall:
    """Async callable returning queued results; exceptions in the queue are raised."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *results: Any) -> None:
        self.results.extend(results)

    async def __call__(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if not self.results:
            raise AssertionError("ScriptedCall ran out of results")
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def last(self) -> dict[str, Any]:
        return self.calls[-1]


class FakeClient:
    """Vendor client double: OpenAI, Anthropic and google-genai call paths share one script."""

    def __init__(self) -> None:
        self.create = ScriptedCall()
        self.responses = SimpleNamespace(create=self.create)
        self.messages = SimpleNamespace(create=self.create)
        self.aio = SimpleNamespace(models=SimpleNamespace(generate_content=self.create))
        self.init_kwargs: dict[str, Any] | None = None
        self.closed = False

    def factory(self, **kwargs: Any) -> FakeClient:
        self.init_kwargs = kwargs
        return self

    async def close(self) -> None:
        self.closed = True


class StatusError(Exception):
    """Vendor SDK error carrying an HTTP status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


# =============================================================================
# Vendor response builders
# =============================================================================


def openai_text(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="message",
        content=[SimpleNamespace(type="output_text", text=text)],
    )


def openai_call(call_id: str | None, name: str, arguments: str) -> SimpleNamespace:
    return SimpleNamespace(
        type="function_call", call_id=call_id, name=name, arguments=arguments
    )


def openai_response(*items: Any, status: str = "completed") -> SimpleNamespace:
    return SimpleNamespace(
        id="resp_1",
        model="gpt-test",
        status=status,
        output=list(items),
        usage=SimpleNamespace(input_tokens=3, output_tokens=4, total_tokens=7),
    )


def anthropic_text(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def anthropic_tool_use(call_id: str | None, name: str, args: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=call_id, name=name, input=args)


def anthropic_message(*blocks: Any, stop_reason: str = "end_turn") -> SimpleNamespace:
    return SimpleNamespace(
        id="msg_1",
        model="claude-test",
        content=list(blocks),
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=5, output_tokens=6),
    )


def gemini_text(text: str, *, thought: bool = False) -> SimpleNamespace:
    return SimpleNamespace(text=text, thought=thought, function_call=None)


def gemini_call(name: str, args: dict[str, Any], call_id: str | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        text=None,
        thought=None,
        function_call=SimpleNamespace(id=call_id, name=name, args=args),
    )


def gemini_response(*parts: Any, finish_reason: str = "STOP") -> SimpleNamespace:
    candidate = SimpleNamespace(
        content=SimpleNamespace(role="model", parts=list(parts)),
        finish_reason=SimpleNamespace(name=finish_reason),
    )
    return SimpleNamespace(
        candidates=[candidate],
        response_id="gem_1",
        model_version="gemini-test",
        usage_metadata=SimpleNamespace(
            prompt_token_count=1, candidates_token_count=2, total_token_count=3
        ),
    )


def tool_call(call_id: str, name: str, arguments: str = "{}") -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments)
