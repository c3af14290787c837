"""Shared utilities for provider implementations."""

from __future__ import annotations

from copy import deepcopy
import json
from typing import TYPE_CHECKING, Any
import uuid

from conductor.errors import ConfigurationError
from conductor.providers.models import ToolCall

if TYPE_CHECKING:
    from collections.abc import Iterable


def new_call_id() -> str:
    """Synthesize a tool call id for vendors that omit one."""
    return f"call_{uuid.uuid4().hex[:12]}"


def make_tool_call(call_id: Any, name: Any, arguments: Any) -> ToolCall:
    """Build a canonical ToolCall from loosely typed vendor fields.

    ``arguments`` may already be a JSON string or a decoded mapping.
    """
    if isinstance(arguments, str):
        args = arguments if arguments.strip() else "{}"
    else:
        args = json.dumps(arguments if arguments is not None else {})
    return ToolCall(
        id=call_id if isinstance(call_id, str) and call_id else new_call_id(),
        name=str(name or ""),
        arguments=args,
    )


def dedupe_call_ids(calls: Iterable[ToolCall]) -> list[ToolCall]:
    """Keep emission order; re-id any call whose id was already seen."""
    seen: set[str] = set()
    result: list[ToolCall] = []
    for call in calls:
        if call.id in seen:
            call = ToolCall(id=new_call_id(), name=call.name, arguments=call.arguments)
        seen.add(call.id)
        result.append(call)
    return result


def decode_arguments(arguments: str) -> dict[str, Any]:
    """Best-effort decode for replaying prior calls to vendors that want objects."""
    try:
        value = json.loads(arguments)
    except (json.JSONDecodeError, TypeError):
        return {}
    return value if isinstance(value, dict) else {}


def to_strict_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Normalize a JSON schema for strict tool-schema requirements.

    Ensures that for all 'object' types:
    1. additionalProperties is False
    2. All defined properties are listed in 'required'
    """
    normalized = deepcopy(schema)

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]
        if not isinstance(node, dict):
            return node

        updated: dict[str, Any] = {}
        for key, value in node.items():
            updated[key] = walk(value)

        if updated.get("type") == "object" or "properties" in updated:
            properties = updated.get("properties", {})
            if isinstance(properties, dict):
                updated["additionalProperties"] = False
                updated["required"] = list(properties.keys())

        return updated

    result = walk(normalized)
    if not isinstance(result, dict):
        raise ConfigurationError("Invalid tool schema: expected object schema")
    return result
