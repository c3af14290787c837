"""Provider settings: closed, validated configuration per vendor.

Each provider gets a small pydantic model with named optional fields. Unknown
keys are rejected rather than passed through, and secrets never live here:
credentials are resolved separately by a ``CredentialResolver``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from conductor.errors import ConfigurationError
from conductor.retry import RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping

ProviderName = Literal["openai", "grok", "anthropic", "google"]


class ProviderSettings(BaseModel):
    """Settings shared by every provider."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: str
    #: Logical credential account; lets one provider hold several keys.
    account: str = Field(default="default", min_length=1)
    model: str | None = Field(default=None, min_length=1)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    timeout_s: float | None = Field(default=None, gt=0)
    max_retries: int = Field(default=1, ge=0, le=10)

    def retry_policy(self) -> RetryPolicy:
        """Build the bounded retry policy for vendor calls."""
        return RetryPolicy(max_attempts=self.max_retries + 1)


class OpenAISettings(ProviderSettings):
    """OpenAI Responses API settings."""

    provider: Literal["openai"] = "openai"
    base_url: str | None = None
    organization: str | None = None
    #: Send tool schemas in strict mode (all properties required, no extras).
    strict_tools: bool = False


class GrokSettings(OpenAISettings):
    """xAI Grok settings (OpenAI-compatible endpoint)."""

    provider: Literal["grok"] = "grok"  # type: ignore[assignment]
    base_url: str | None = "https://api.x.ai/v1"


class AnthropicSettings(ProviderSettings):
    """Anthropic Messages API settings."""

    provider: Literal["anthropic"] = "anthropic"
    #: Attach ephemeral cache-control hints to the system prompt and tools.
    prompt_caching: bool = False


class GoogleSettings(ProviderSettings):
    """Google Gemini Developer API / Vertex AI settings."""

    provider: Literal["google"] = "google"
    vertex_ai: bool = False
    project: str | None = None
    location: str | None = None

    @model_validator(mode="after")
    def _require_vertex_target(self) -> GoogleSettings:
        if self.vertex_ai and not (self.project and self.location):
            raise ValueError("Vertex AI requires both project and location")
        return self


_SETTINGS_BY_PROVIDER: dict[str, type[ProviderSettings]] = {
    "openai": OpenAISettings,
    "grok": GrokSettings,
    "anthropic": AnthropicSettings,
    "google": GoogleSettings,
}


def coerce_settings(
    cls: type[ProviderSettings],
    settings: ProviderSettings | Mapping[str, Any] | None,
) -> ProviderSettings:
    """Validate *settings* into an instance of *cls*.

    Accepts an instance (returned as-is), a mapping, or None (defaults).
    Raises ConfigurationError on unknown keys or invalid values.
    """
    if isinstance(settings, cls):
        return settings
    if isinstance(settings, ProviderSettings):
        raise ConfigurationError(
            f"Expected {cls.__name__}, got {type(settings).__name__}",
            hint="Pass settings built for the provider you are configuring.",
        )
    data = dict(settings) if settings is not None else {}
    try:
        return cls.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) or "<root>" for err in e.errors()
        )
        raise ConfigurationError(
            f"Invalid {cls.__name__}: {fields}",
            hint=str(e),
        ) from e


def settings_for(
    provider: str, values: Mapping[str, Any] | None = None
) -> ProviderSettings:
    """Return validated settings for a named provider."""
    cls = _SETTINGS_BY_PROVIDER.get(provider)
    if cls is None:
        supported = ", ".join(sorted(_SETTINGS_BY_PROVIDER))
        raise ConfigurationError(
            f"Unknown provider: {provider!r}",
            hint=f"Supported providers: {supported}",
        )
    data = dict(values or {})
    data.setdefault("provider", provider)
    return coerce_settings(cls, data)
