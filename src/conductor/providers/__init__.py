"""Provider implementations."""

from .anthropic import AnthropicProvider
from .base import BaseProvider, Provider
from .google import GoogleProvider
from .mock import ScriptedProvider
from .openai import GrokProvider, OpenAIProvider

PROVIDERS: dict[str, type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "grok": GrokProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}

__all__ = [
    "PROVIDERS",
    "AnthropicProvider",
    "BaseProvider",
    "GoogleProvider",
    "GrokProvider",
    "OpenAIProvider",
    "Provider",
    "ScriptedProvider",
]
