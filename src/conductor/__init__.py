"""Conductor: one tool-calling loop across OpenAI, Anthropic and Google models.

Public API:
    - create_provider(): Build (and configure) a vendor adapter
    - run_tool_loop(): Drive a provider until it stops calling tools
    - ToolRegistry: Expose Python callables as tools
    - ProviderRequest / Message / Tool: The canonical conversation model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from conductor.config import settings_for
from conductor.errors import (
    APIError,
    ConductorError,
    ConfigurationError,
    ContextError,
    ContractViolationError,
    MaxIterationsExceededError,
    MissingCredentialError,
    ProviderNotConfiguredError,
    RateLimitError,
    ToolNotFoundError,
)
from conductor.orchestration import ToolLoopOrchestrator, run_tool_loop
from conductor.providers import PROVIDERS
from conductor.providers.models import (
    Message,
    NamedToolChoice,
    ProviderRequest,
    ProviderResponse,
    Tool,
    ToolCall,
    ToolOutput,
)
from conductor.retry import RetryPolicy
from conductor.tools import ToolExecutor, ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from conductor.credentials import CredentialResolver
    from conductor.providers.base import BaseProvider

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("conductor-agent")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("conductor").addHandler(logging.NullHandler())


def create_provider(
    name: str,
    settings: Mapping[str, Any] | None = None,
    *,
    credentials: CredentialResolver | None = None,
    client_factory: Callable[..., Any] | None = None,
    configure: bool = True,
) -> BaseProvider:
    """Build the adapter for *name* and, by default, configure it.

    Args:
        name: One of ``openai``, ``grok``, ``anthropic``, ``google``.
        settings: Provider settings as a mapping; unknown keys are rejected.
        credentials: Secret lookup; defaults to env vars then the OS keychain.
        client_factory: Vendor client constructor override (mostly for tests).
        configure: Set False to get an unconfigured adapter.

    Example:
        provider = create_provider("anthropic", {"model": "claude-sonnet-4-5"})
        response = await run_tool_loop(provider, request, registry)
    """
    validated = settings_for(name, settings)
    provider = PROVIDERS[name](credentials, client_factory=client_factory)
    if configure:
        provider.configure(validated)
    return provider


__all__ = [
    "APIError",
    "ConductorError",
    "ConfigurationError",
    "ContextError",
    "ContractViolationError",
    "MaxIterationsExceededError",
    "Message",
    "MissingCredentialError",
    "NamedToolChoice",
    "ProviderNotConfiguredError",
    "ProviderRequest",
    "ProviderResponse",
    "RateLimitError",
    "RetryPolicy",
    "Tool",
    "ToolCall",
    "ToolExecutor",
    "ToolLoopOrchestrator",
    "ToolNotFoundError",
    "ToolOutput",
    "ToolRegistry",
    "create_provider",
    "run_tool_loop",
]
