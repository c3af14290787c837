"""Real API integration tests.

These tests make real vendor calls and are intentionally compact:
- ENABLE_API_TESTS=1 is required to run any API tests
- OPENAI_API_KEY / ANTHROPIC_API_KEY / GEMINI_API_KEY are required per provider

Each provider gets one plain chat and one tool round-trip.
"""

from __future__ import annotations

import os

import pytest

from conductor import ProviderRequest, ToolRegistry, create_provider, run_tool_loop
from conductor.credentials import EnvCredentialResolver, env_var_names

pytestmark = [pytest.mark.api, pytest.mark.slow]

_PROVIDERS = ["openai", "anthropic", "google"]


def _require_key(provider: str) -> None:
    if not any(os.getenv(name) for name in env_var_names(provider)):
        pytest.skip(f"{env_var_names(provider)[0]} not set")


@pytest.fixture(params=_PROVIDERS)
def provider_name(request) -> str:
    _require_key(request.param)
    return request.param


@pytest.mark.asyncio
async def test_plain_chat(provider_name: str) -> None:
    provider = create_provider(
        provider_name, {"max_tokens": 64}, credentials=EnvCredentialResolver()
    )
    try:
        response = await provider.chat(
            ProviderRequest.from_prompt("Reply with the single word: pong")
        )
    finally:
        await provider.aclose()

    assert response.success, response.error
    assert "pong" in response.content.lower()
    assert response.usage


@pytest.mark.asyncio
async def test_tool_round_trip(provider_name: str) -> None:
    registry = ToolRegistry()
    seen: list[str] = []

    @registry.tool(
        "get_weather",
        "Get the current weather for a city.",
        {
            "type": "object",
            "properties": {"city": {"type": "string"}},
            "required": ["city"],
        },
    )
    def get_weather(city: str) -> dict[str, object]:
        seen.append(city)
        return {"city": city, "temperature_c": 18, "conditions": "sunny"}

    provider = create_provider(
        provider_name, {"max_tokens": 256}, credentials=EnvCredentialResolver()
    )
    try:
        response = await run_tool_loop(
            provider,
            ProviderRequest.from_prompt(
                "Use the get_weather tool for Paris, then report the temperature.",
                tools=registry.tools(),
            ),
            registry,
            max_iterations=4,
        )
    finally:
        await provider.aclose()

    assert response.success, response.error
    assert seen
    assert "18" in response.content
