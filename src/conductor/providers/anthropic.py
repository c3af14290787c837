"""Anthropic Messages API provider."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, cast

from conductor.config import AnthropicSettings
from conductor.errors import ConfigurationError
from conductor.providers._utils import decode_arguments, make_tool_call
from conductor.providers.base import BaseProvider, effective_tool_choice, split_system
from conductor.providers.models import NamedToolChoice, ProviderResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from conductor.config import ProviderSettings
    from conductor.providers.models import (
        Message,
        ProviderRequest,
        Tool,
        ToolCall,
        ToolChoice,
    )

# Messages API requires max_tokens on every call.
_ANTHROPIC_MAX_TOKENS = 8192
_EPHEMERAL_CACHE = {"type": "ephemeral"}


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider."""

    name: ClassVar[str] = "anthropic"
    default_model: ClassVar[str] = "claude-sonnet-4-5"
    settings_class: ClassVar[type[ProviderSettings]] = AnthropicSettings

    def _default_client_factory(self) -> Callable[..., Any]:
        try:
            from anthropic import AsyncAnthropic
        except ImportError as e:
            raise ConfigurationError(
                "anthropic package not installed",
                hint="pip install anthropic",
            ) from e
        return AsyncAnthropic

    def _client_kwargs(
        self, settings: ProviderSettings, api_key: str | None
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"api_key": api_key, "max_retries": 0}
        if settings.timeout_s is not None:
            kwargs["timeout"] = settings.timeout_s
        return kwargs

    def _build_call(
        self, request: ProviderRequest, settings: ProviderSettings
    ) -> dict[str, Any]:
        settings = cast("AnthropicSettings", settings)
        system, conversation = split_system(request)

        create_kwargs: dict[str, Any] = {
            "model": self._model_for(request, settings),
            "messages": _build_messages(conversation),
            "max_tokens": request.max_tokens
            or settings.max_tokens
            or _ANTHROPIC_MAX_TOKENS,
        }
        if system:
            if settings.prompt_caching:
                create_kwargs["system"] = [
                    {"type": "text", "text": system, "cache_control": _EPHEMERAL_CACHE}
                ]
            else:
                create_kwargs["system"] = system

        temperature = (
            request.temperature
            if request.temperature is not None
            else settings.temperature
        )
        if temperature is not None:
            create_kwargs["temperature"] = temperature
        if request.top_p is not None:
            create_kwargs["top_p"] = request.top_p

        if request.tools:
            anthropic_tools = [_tool_definition(t) for t in request.tools]
            if settings.prompt_caching:
                anthropic_tools[-1]["cache_control"] = _EPHEMERAL_CACHE
            create_kwargs["tools"] = anthropic_tools

        mapped = _map_tool_choice(effective_tool_choice(request, self.name))
        if mapped is not None:
            create_kwargs["tool_choice"] = mapped
        return create_kwargs

    async def _send(self, client: Any, call: dict[str, Any]) -> Any:
        return await client.messages.create(**call)

    def _parse_response(self, raw: Any) -> ProviderResponse:
        """Parse an Anthropic Message into ProviderResponse."""
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []

        for block in getattr(raw, "content", None) or []:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(getattr(block, "text", "") or "")
            elif block_type == "tool_use":
                tool_calls.append(
                    make_tool_call(
                        getattr(block, "id", None),
                        getattr(block, "name", None),
                        getattr(block, "input", None),
                    )
                )

        usage: dict[str, int] = {}
        usage_raw = getattr(raw, "usage", None)
        if usage_raw is not None:
            input_tokens = int(getattr(usage_raw, "input_tokens", 0) or 0)
            output_tokens = int(getattr(usage_raw, "output_tokens", 0) or 0)
            usage = {
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }

        response_id = getattr(raw, "id", None)
        model = getattr(raw, "model", None)
        return ProviderResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            usage=usage,
            finish_reason=_normalize_stop_reason(getattr(raw, "stop_reason", None)),
            response_id=response_id if isinstance(response_id, str) else None,
            model=model if isinstance(model, str) else None,
        )


def _tool_definition(tool: Tool) -> dict[str, Any]:
    tool_def: dict[str, Any] = {
        "name": tool.name,
        "input_schema": tool.parameters,
    }
    if tool.description:
        tool_def["description"] = tool.description
    return tool_def


def _map_tool_choice(tool_choice: ToolChoice | None) -> dict[str, str] | None:
    """Map tool_choice to Anthropic format."""
    if tool_choice is None:
        return None
    if isinstance(tool_choice, NamedToolChoice):
        return {"type": "tool", "name": tool_choice.name}
    if tool_choice == "required":
        return {"type": "any"}
    return {"type": tool_choice}


def _build_messages(conversation: list[Message]) -> list[dict[str, Any]]:
    """Translate canonical turns into Anthropic message dicts.

    Tool results travel as ``tool_result`` blocks inside a user message, and
    consecutive same-role messages are merged via ``_append_message``.
    """
    messages: list[dict[str, Any]] = []
    for item in conversation:
        if item.role == "tool":
            _append_message(
                messages,
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": item.tool_call_id,
                            "content": item.content or "",
                        }
                    ],
                },
            )
        elif item.role == "assistant":
            content_blocks: list[dict[str, Any]] = []
            if item.content:
                content_blocks.append({"type": "text", "text": item.content})
            for tc in item.tool_calls or ():
                content_blocks.append(
                    {
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": decode_arguments(tc.arguments),
                    }
                )
            if content_blocks:
                _append_message(
                    messages, {"role": "assistant", "content": content_blocks}
                )
        elif item.role == "user" and item.content:
            _append_message(messages, {"role": "user", "content": item.content})
    return messages


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Anthropic requires strict user/assistant alternation; parallel tool
    results, or a tool result followed by a user prompt, share one user turn.
    """
    if messages and messages[-1]["role"] == msg["role"]:
        prev = messages[-1]
        prev_content = prev["content"]
        new_content = msg["content"]
        if isinstance(prev_content, str):
            prev_content = [{"type": "text", "text": prev_content}]
        if isinstance(new_content, str):
            new_content = [{"type": "text", "text": new_content}]
        prev["content"] = prev_content + new_content
    else:
        messages.append(msg)


def _normalize_stop_reason(stop_reason: Any) -> str | None:
    """Map Anthropic stop_reason to a normalized lowercase string."""
    if stop_reason is None:
        return None
    reason = str(stop_reason).lower()

    mapping: dict[str, str] = {
        "end_turn": "stop",
        "stop_sequence": "stop",
        "max_tokens": "max_tokens",
        "tool_use": "tool_calls",
    }
    return mapping.get(reason, reason)
