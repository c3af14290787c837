"""Google Gemini provider (Developer API or Vertex AI) via google-genai."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, ClassVar, cast

from conductor.config import GoogleSettings
from conductor.errors import APIError, ConfigurationError
from conductor.providers._utils import decode_arguments, make_tool_call
from conductor.providers.base import BaseProvider, effective_tool_choice, split_system
from conductor.providers.models import NamedToolChoice, ProviderResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from conductor.config import ProviderSettings
    from conductor.providers.models import Message, ProviderRequest, ToolCall, ToolChoice

_MODE_BY_CHOICE = {"auto": "AUTO", "none": "NONE", "required": "ANY"}


class GoogleProvider(BaseProvider):
    """Google Gemini API provider."""

    name: ClassVar[str] = "google"
    default_model: ClassVar[str] = "gemini-2.5-flash"
    settings_class: ClassVar[type[ProviderSettings]] = GoogleSettings

    def _default_client_factory(self) -> Callable[..., Any]:
        try:
            from google import genai
        except ImportError as e:
            raise ConfigurationError(
                "google-genai package not installed",
                hint="pip install google-genai",
            ) from e
        return genai.Client

    def _create_client(self, settings: ProviderSettings) -> Any:
        settings = cast("GoogleSettings", settings)
        # Vertex AI authenticates with application default credentials.
        api_key = None if settings.vertex_ai else self._resolve_api_key(settings)
        factory = self._client_factory or self._default_client_factory()
        return factory(**self._client_kwargs(settings, api_key))

    def _client_kwargs(
        self, settings: ProviderSettings, api_key: str | None
    ) -> dict[str, Any]:
        settings = cast("GoogleSettings", settings)
        if settings.vertex_ai:
            kwargs: dict[str, Any] = {
                "vertexai": True,
                "project": settings.project,
                "location": settings.location,
            }
        else:
            kwargs = {"api_key": api_key}
        if settings.timeout_s is not None:
            kwargs["http_options"] = {"timeout": int(settings.timeout_s * 1000)}
        return kwargs

    def _build_call(
        self, request: ProviderRequest, settings: ProviderSettings
    ) -> dict[str, Any]:
        from google.genai import types

        system, conversation = split_system(request)

        config_kwargs: dict[str, Any] = {}
        if system:
            config_kwargs["system_instruction"] = system
        temperature = (
            request.temperature
            if request.temperature is not None
            else settings.temperature
        )
        if temperature is not None:
            config_kwargs["temperature"] = temperature
        if request.top_p is not None:
            config_kwargs["top_p"] = request.top_p
        max_tokens = request.max_tokens or settings.max_tokens
        if max_tokens is not None:
            config_kwargs["max_output_tokens"] = max_tokens

        if request.tools:
            config_kwargs["tools"] = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=t.name,
                            description=t.description,
                            parameters_json_schema=t.parameters,
                        )
                        for t in request.tools
                    ]
                )
            ]
            # The loop executes tools itself.
            config_kwargs["automatic_function_calling"] = (
                types.AutomaticFunctionCallingConfig(disable=True)
            )

        tool_config = _map_tool_choice(effective_tool_choice(request, self.name))
        if tool_config is not None:
            config_kwargs["tool_config"] = tool_config

        return {
            "model": self._model_for(request, settings),
            "contents": _build_contents(conversation),
            "config": types.GenerateContentConfig(**config_kwargs),
        }

    async def _send(self, client: Any, call: dict[str, Any]) -> Any:
        response = await client.aio.models.generate_content(**call)
        if not response:
            raise APIError(
                "Google returned an empty response.", provider=self.name, phase="chat"
            )
        return response

    def _parse_response(self, raw: Any) -> ProviderResponse:
        """Read the first candidate's parts in emission order."""
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        finish_reason: str | None = None

        candidates = getattr(raw, "candidates", None) or []
        if candidates:
            candidate = candidates[0]
            finish_reason = _normalize_finish_reason(
                getattr(candidate, "finish_reason", None)
            )
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                fc = getattr(part, "function_call", None)
                if fc is not None:
                    tool_calls.append(
                        make_tool_call(
                            getattr(fc, "id", None),
                            getattr(fc, "name", None),
                            getattr(fc, "args", None),
                        )
                    )
                    continue
                text = getattr(part, "text", None)
                if isinstance(text, str) and text and not getattr(part, "thought", False):
                    text_parts.append(text)

        usage: dict[str, int] = {}
        um = getattr(raw, "usage_metadata", None)
        if um is not None:
            usage = {
                "input_tokens": int(getattr(um, "prompt_token_count", 0) or 0),
                "output_tokens": int(getattr(um, "candidates_token_count", 0) or 0),
                "total_tokens": int(getattr(um, "total_token_count", 0) or 0),
            }

        response_id = getattr(raw, "response_id", None)
        model = getattr(raw, "model_version", None)
        return ProviderResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            usage=usage,
            finish_reason=finish_reason,
            response_id=response_id if isinstance(response_id, str) else None,
            model=model if isinstance(model, str) else None,
        )


def _map_tool_choice(tool_choice: ToolChoice | None) -> dict[str, Any] | None:
    if tool_choice is None:
        return None
    if isinstance(tool_choice, NamedToolChoice):
        # Force specific function
        return {
            "function_calling_config": {
                "mode": "ANY",
                "allowed_function_names": [tool_choice.name],
            }
        }
    return {"function_calling_config": {"mode": _MODE_BY_CHOICE[tool_choice]}}


def _function_response_payload(content: str) -> dict[str, Any]:
    """Gemini wants an object; wrap anything that is not a JSON object."""
    if not content:
        return {}
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return {"result": content}
    return parsed if isinstance(parsed, dict) else {"result": content}


def _build_contents(conversation: list[Message]) -> list[Any]:
    """Translate canonical turns into ``types.Content`` values.

    Consecutive same-role turns are merged so parallel function responses
    share one Content, as Gemini's turn order requires.
    """
    from google.genai import types

    contents: list[Any] = []
    call_id_to_name: dict[str, str] = {}

    def append(role: str, parts: list[Any]) -> None:
        if not parts:
            return
        if contents and contents[-1].role == role:
            contents[-1].parts.extend(parts)
        else:
            contents.append(types.Content(role=role, parts=parts))

    for item in conversation:
        if item.role == "tool":
            name = item.name or call_id_to_name.get(item.tool_call_id or "", "unknown_tool")
            append(
                "user",
                [
                    types.Part.from_function_response(
                        name=name,
                        response=_function_response_payload(item.content),
                    )
                ],
            )
        elif item.role == "assistant":
            ast_parts: list[Any] = []
            if item.content:
                ast_parts.append(types.Part.from_text(text=item.content))
            for tc in item.tool_calls or ():
                call_id_to_name[tc.id] = tc.name
                ast_parts.append(
                    types.Part.from_function_call(
                        name=tc.name, args=decode_arguments(tc.arguments)
                    )
                )
            append("model", ast_parts)
        elif item.role == "user" and item.content:
            append("user", [types.Part.from_text(text=item.content)])
    return contents


def _normalize_finish_reason(reason: Any) -> str | None:
    if reason is None:
        return None
    name = getattr(reason, "name", None)
    value = name if isinstance(name, str) else str(reason)
    return value.lower()
