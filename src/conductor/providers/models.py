"""Canonical conversation model shared by every adapter and the tool loop.

Nothing in here knows about a specific vendor. Adapters translate to and from
these types and drop any vendor field they cannot map.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import json
from typing import Any, Literal

Role = Literal["user", "assistant", "system", "tool"]
_ROLES: frozenset[str] = frozenset({"user", "assistant", "system", "tool"})


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    #: JSON-encoded argument object.
    arguments: str = "{}"

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode ``arguments``; raises ValueError when it is not a JSON object."""
        value = json.loads(self.arguments) if self.arguments.strip() else {}
        if not isinstance(value, dict):
            raise ValueError(
                f"Tool arguments must be a JSON object, got {type(value).__name__}"
            )
        return value


@dataclass(frozen=True)
class ToolOutput:
    """Result of executing one ToolCall, correlated by ``call_id``."""

    call_id: str
    output: str
    name: str | None = None


@dataclass(frozen=True)
class Message:
    """A single conversational turn."""

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] | None = None
    tool_call_id: str | None = None
    #: Tool name for ``tool`` messages; some vendors key results by name.
    name: str | None = None

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("Tool messages require a tool_call_id")
        if self.tool_calls is not None and not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: list[ToolCall] | None = None
    ) -> Message:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def tool_result(cls, output: ToolOutput, name: str | None = None) -> Message:
        return cls(
            role="tool",
            content=output.output,
            tool_call_id=output.call_id,
            name=name or output.name,
        )


@dataclass(frozen=True)
class Tool:
    """A function the model may call."""

    name: str
    description: str = ""
    #: JSON-schema object describing the arguments.
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Tool name must be non-empty")

    def required_parameters(self) -> frozenset[str]:
        required = self.parameters.get("required") or []
        return frozenset(str(r) for r in required)


@dataclass(frozen=True)
class NamedToolChoice:
    """Force the model to call one specific tool."""

    name: str


ToolChoice = Literal["auto", "none", "required"] | NamedToolChoice


@dataclass(frozen=True)
class ProviderRequest:
    """A vendor-neutral generation request."""

    messages: tuple[Message, ...] = ()
    tools: tuple[Tool, ...] | None = None
    tool_choice: ToolChoice | None = None
    #: Falls back to the configured model, then the adapter default.
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    system_instruction: str | None = None
    #: Only meaningful for ``generate_text_with_tool_results``.
    tool_outputs: tuple[ToolOutput, ...] | None = None

    def __post_init__(self) -> None:
        for attr in ("messages", "tools", "tool_outputs"):
            value = getattr(self, attr)
            if value is not None and not isinstance(value, tuple):
                object.__setattr__(self, attr, tuple(value))
        if self.tools:
            names = [t.name for t in self.tools]
            dupes = sorted({n for n in names if names.count(n) > 1})
            if dupes:
                raise ValueError(f"Duplicate tool names in request: {dupes}")
        if isinstance(self.tool_choice, str) and self.tool_choice not in (
            "auto",
            "none",
            "required",
        ):
            raise ValueError(f"Unknown tool_choice: {self.tool_choice!r}")

    @classmethod
    def from_prompt(cls, prompt: str, **kwargs: Any) -> ProviderRequest:
        """Represent a single-turn prompt as a one-message conversation."""
        return cls(messages=(Message.user(prompt),), **kwargs)

    def replace(self, **changes: Any) -> ProviderRequest:
        return replace(self, **changes)

    def tool_names(self) -> frozenset[str]:
        return frozenset(t.name for t in self.tools or ())


@dataclass(frozen=True)
class ProviderError:
    """Why a provider invocation failed."""

    message: str
    code: str | int | None = None
    hint: str | None = None
    retryable: bool | None = None


@dataclass
class ProviderResponse:
    """A standardized response from a provider invocation."""

    success: bool = True
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    error: ProviderError | None = None
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str | None = None
    response_id: str | None = None
    model: str | None = None
    #: Set by the tool loop when it stops at its iteration bound without raising.
    max_iterations_reached: bool = False

    @classmethod
    def failure(
        cls,
        message: str,
        *,
        code: str | int | None = None,
        hint: str | None = None,
        retryable: bool | None = None,
    ) -> ProviderResponse:
        return cls(
            success=False,
            error=ProviderError(
                message=message, code=code, hint=hint, retryable=retryable
            ),
        )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)
