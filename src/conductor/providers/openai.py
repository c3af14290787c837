"""OpenAI provider implementation (Responses API), plus the xAI Grok variant."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, cast

from conductor.config import GrokSettings, OpenAISettings
from conductor.errors import ConfigurationError
from conductor.providers._utils import make_tool_call, to_strict_schema
from conductor.providers.base import BaseProvider, effective_tool_choice, split_system
from conductor.providers.models import NamedToolChoice, ProviderResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from conductor.config import ProviderSettings
    from conductor.providers.models import Message, ProviderRequest, Tool


class OpenAIProvider(BaseProvider):
    """OpenAI Responses API provider."""

    name: ClassVar[str] = "openai"
    default_model: ClassVar[str] = "gpt-4.1-mini"
    settings_class: ClassVar[type[ProviderSettings]] = OpenAISettings

    def _default_client_factory(self) -> Callable[..., Any]:
        try:
            from openai import AsyncOpenAI
        except ImportError as e:
            raise ConfigurationError(
                "openai package not installed",
                hint="pip install openai",
            ) from e
        return AsyncOpenAI

    def _client_kwargs(
        self, settings: ProviderSettings, api_key: str | None
    ) -> dict[str, Any]:
        settings = cast("OpenAISettings", settings)
        kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if settings.base_url:
            kwargs["base_url"] = settings.base_url
        if settings.organization:
            kwargs["organization"] = settings.organization
        if settings.timeout_s is not None:
            kwargs["timeout"] = settings.timeout_s
        return kwargs

    def _build_call(
        self, request: ProviderRequest, settings: ProviderSettings
    ) -> dict[str, Any]:
        settings = cast("OpenAISettings", settings)
        instructions, conversation = split_system(request)

        create_kwargs: dict[str, Any] = {
            "model": self._model_for(request, settings),
            "input": _to_input_items(conversation),
        }
        if instructions:
            create_kwargs["instructions"] = instructions

        temperature = (
            request.temperature
            if request.temperature is not None
            else settings.temperature
        )
        if temperature is not None:
            create_kwargs["temperature"] = temperature
        if request.top_p is not None:
            create_kwargs["top_p"] = request.top_p
        max_tokens = request.max_tokens or settings.max_tokens
        if max_tokens is not None:
            create_kwargs["max_output_tokens"] = max_tokens

        if request.tools:
            create_kwargs["tools"] = [
                _tool_definition(t, strict=settings.strict_tools) for t in request.tools
            ]
        choice = effective_tool_choice(request, self.name)
        if isinstance(choice, NamedToolChoice):
            create_kwargs["tool_choice"] = {"type": "function", "name": choice.name}
        elif choice is not None:
            create_kwargs["tool_choice"] = choice
        return create_kwargs

    async def _send(self, client: Any, call: dict[str, Any]) -> Any:
        return await client.responses.create(**call)

    def _parse_response(self, raw: Any) -> ProviderResponse:
        text_parts: list[str] = []
        tool_calls = []
        for item in getattr(raw, "output", None) or []:
            item_type = getattr(item, "type", None)
            if item_type == "message":
                for part in getattr(item, "content", None) or []:
                    if getattr(part, "type", None) == "output_text":
                        text_parts.append(getattr(part, "text", "") or "")
            elif item_type == "function_call":
                tool_calls.append(
                    make_tool_call(
                        getattr(item, "call_id", None),
                        getattr(item, "name", None),
                        getattr(item, "arguments", None),
                    )
                )

        usage_raw = getattr(raw, "usage", None)
        usage: dict[str, int] = {}
        if usage_raw is not None:
            usage = {
                "input_tokens": int(getattr(usage_raw, "input_tokens", 0) or 0),
                "output_tokens": int(getattr(usage_raw, "output_tokens", 0) or 0),
                "total_tokens": int(getattr(usage_raw, "total_tokens", 0) or 0),
            }

        response_id = getattr(raw, "id", None)
        model = getattr(raw, "model", None)
        return ProviderResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            usage=usage,
            finish_reason=_extract_finish_reason(raw),
            response_id=response_id if isinstance(response_id, str) else None,
            model=model if isinstance(model, str) else None,
        )


class GrokProvider(OpenAIProvider):
    """xAI Grok through its OpenAI-compatible endpoint."""

    name: ClassVar[str] = "grok"
    default_model: ClassVar[str] = "grok-3"
    settings_class: ClassVar[type[ProviderSettings]] = GrokSettings


def _to_input_items(messages: list[Message]) -> list[dict[str, Any]]:
    """Translate canonical turns into Responses API input items."""
    items: list[dict[str, Any]] = []
    for message in messages:
        # Tool result message -> function_call_output
        if message.role == "tool":
            items.append(
                {
                    "type": "function_call_output",
                    "call_id": message.tool_call_id,
                    "output": message.content,
                }
            )
            continue

        if message.content:
            text_type = "output_text" if message.role == "assistant" else "input_text"
            items.append(
                {
                    "role": message.role,
                    "content": [{"type": text_type, "text": message.content}],
                }
            )

        # Assistant message with tool_calls -> function_call items
        if message.role == "assistant" and message.tool_calls:
            for tc in message.tool_calls:
                items.append(
                    {
                        "type": "function_call",
                        "call_id": tc.id,
                        "name": tc.name,
                        "arguments": tc.arguments,
                    }
                )
    return items


def _tool_definition(tool: Tool, *, strict: bool) -> dict[str, Any]:
    params = to_strict_schema(tool.parameters) if strict else tool.parameters
    tool_def: dict[str, Any] = {
        "type": "function",
        "name": tool.name,
        "parameters": params,
        "strict": strict,
    }
    if tool.description:
        tool_def["description"] = tool.description
    return tool_def


def _extract_finish_reason(response: Any) -> str | None:
    """Extract the finish reason, preferring incomplete_details.reason.

    ``response.status`` is "completed" or "incomplete"; when incomplete the
    specific reason ("max_output_tokens", "content_filter") is more useful.
    """
    status = getattr(response, "status", None)
    if not isinstance(status, str):
        return None

    normalized_status = status.lower()
    if normalized_status == "incomplete":
        details = getattr(response, "incomplete_details", None)
        reason = getattr(details, "reason", None) if details is not None else None
        if isinstance(reason, str) and reason:
            return reason.lower()

    return normalized_status
