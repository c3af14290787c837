"""Provider settings boundary tests."""

from __future__ import annotations

import pytest

from conductor.config import (
    AnthropicSettings,
    GoogleSettings,
    GrokSettings,
    OpenAISettings,
    coerce_settings,
    settings_for,
)
from conductor.errors import ConfigurationError

pytestmark = pytest.mark.unit


def test_settings_for_picks_provider_model() -> None:
    assert isinstance(settings_for("openai"), OpenAISettings)
    assert isinstance(settings_for("grok"), GrokSettings)
    assert isinstance(settings_for("anthropic"), AnthropicSettings)
    assert isinstance(settings_for("google", {"model": "gemini-2.5-pro"}), GoogleSettings)


def test_unknown_provider_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Unknown provider") as exc_info:
        settings_for("cohere")
    assert exc_info.value.hint is not None
    assert "openai" in exc_info.value.hint


def test_unknown_keys_rejected() -> None:
    with pytest.raises(ConfigurationError, match="top_k"):
        settings_for("anthropic", {"top_k": 5})


@pytest.mark.parametrize(
    "values",
    [
        {"temperature": 3.0},
        {"max_tokens": 0},
        {"timeout_s": -1},
        {"max_retries": 11},
        {"account": ""},
    ],
)
def test_invalid_values_rejected(values: dict[str, object]) -> None:
    with pytest.raises(ConfigurationError):
        settings_for("openai", values)


def test_grok_defaults_base_url() -> None:
    settings = settings_for("grok")
    assert settings.provider == "grok"
    assert isinstance(settings, GrokSettings)
    assert settings.base_url == "https://api.x.ai/v1"


def test_vertex_requires_project_and_location() -> None:
    with pytest.raises(ConfigurationError):
        settings_for("google", {"vertex_ai": True, "location": "us-central1"})
    ok = settings_for("google", {"vertex_ai": True, "project": "p", "location": "l"})
    assert isinstance(ok, GoogleSettings)
    assert ok.vertex_ai is True


def test_coerce_rejects_settings_for_another_provider() -> None:
    with pytest.raises(ConfigurationError, match="Expected AnthropicSettings"):
        coerce_settings(AnthropicSettings, OpenAISettings())


def test_coerce_passes_instances_through() -> None:
    settings = AnthropicSettings(prompt_caching=True)
    assert coerce_settings(AnthropicSettings, settings) is settings
    assert coerce_settings(AnthropicSettings, None) == AnthropicSettings()


def test_retry_policy_from_max_retries() -> None:
    assert settings_for("openai", {"max_retries": 0}).retry_policy().max_attempts == 1
    assert settings_for("openai", {"max_retries": 3}).retry_policy().max_attempts == 4


def test_settings_are_frozen() -> None:
    settings = OpenAISettings()
    with pytest.raises(Exception):  # noqa: B017, PT011
        settings.model = "other"  # type: ignore[misc]
