from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import pytest

from conductor.errors import (
    APIError,
    ConductorError,
    ConfigurationError,
    ContractViolationError,
    MaxIterationsExceededError,
    MissingCredentialError,
    ProviderNotConfiguredError,
    RateLimitError,
)
from conductor.providers._errors import (
    extract_retry_after_s,
    extract_status_code,
    failure_response,
    wrap_provider_error,
)
from tests.helpers import StatusError

pytestmark = pytest.mark.unit


def test_api_error_structured_metadata() -> None:
    err = APIError(
        "boom",
        hint="do this",
        retryable=True,
        status_code=429,
        retry_after_s=2.0,
        provider="openai",
        phase="chat",
    )

    assert str(err) == "boom"
    assert err.hint == "do this"
    assert err.retryable is True
    assert err.status_code == 429
    assert err.retry_after_s == 2.0
    assert (err.provider, err.phase) == ("openai", "chat")


def test_subclass_hierarchy() -> None:
    """Configuration failures share one base; everything is a ConductorError."""
    missing = MissingCredentialError("openai", "work")

    assert isinstance(missing, ConfigurationError)
    assert isinstance(ProviderNotConfiguredError("x"), ConfigurationError)
    assert isinstance(RateLimitError("slow down"), APIError)
    for err in (missing, ContractViolationError("x"), MaxIterationsExceededError(3)):
        assert isinstance(err, ConductorError)
    assert "'openai'" in str(missing)
    assert "'work'" in str(missing)


def test_rate_limit_status_maps_to_rate_limit_error() -> None:
    err = wrap_provider_error(
        StatusError("Too many requests", 429),
        provider="anthropic",
        phase="chat",
        allow_network_errors=True,
    )

    assert isinstance(err, RateLimitError)
    assert err.retryable is True
    assert err.status_code == 429
    assert "status=429" in str(err)


def test_client_error_is_not_retryable() -> None:
    err = wrap_provider_error(
        StatusError("bad field", 400), provider="openai", phase="chat", allow_network_errors=True
    )

    assert err.retryable is False
    assert err.hint is None


def test_auth_failure_names_env_var() -> None:
    err = wrap_provider_error(
        StatusError("unauthorized", 401), provider="google", phase="chat", allow_network_errors=True
    )

    assert err.hint is not None
    assert "GEMINI_API_KEY" in err.hint


def test_network_errors_retryable_only_when_allowed() -> None:
    exc = httpx.ConnectError("connection refused")

    allowed = wrap_provider_error(exc, provider="openai", phase="chat", allow_network_errors=True)
    blocked = wrap_provider_error(exc, provider="openai", phase="chat", allow_network_errors=False)

    assert allowed.retryable is True
    assert blocked.retryable is False


def test_already_wrapped_error_only_gains_context() -> None:
    original = APIError("x", retryable=True)

    wrapped = wrap_provider_error(
        original, provider="grok", phase="chat", allow_network_errors=False
    )

    assert wrapped is original
    assert (wrapped.provider, wrapped.phase) == ("grok", "chat")


def test_cancellation_is_reraised() -> None:
    with pytest.raises(asyncio.CancelledError):
        wrap_provider_error(
            asyncio.CancelledError(), provider="openai", phase="chat", allow_network_errors=True
        )


def test_retry_after_header_and_status_from_response() -> None:
    exc = Exception("rate limited")
    exc.response = SimpleNamespace(  # type: ignore[attr-defined]
        status_code=503, headers={"Retry-After": "2.5"}
    )

    assert extract_status_code(exc) == 503
    assert extract_retry_after_s(exc) == 2.5


def test_google_retry_info_details() -> None:
    exc = Exception("quota")
    exc.details = {  # type: ignore[attr-defined]
        "error": {
            "details": [
                {"@type": "type.googleapis.com/google.rpc.RetryInfo", "retryDelay": "8s"}
            ]
        }
    }

    assert extract_retry_after_s(exc) == 8.0


def test_failure_response_uses_vendor_text() -> None:
    cause = StatusError("model not found", 404)
    err = wrap_provider_error(cause, provider="openai", phase="chat", allow_network_errors=True)
    err.__cause__ = cause

    response = failure_response(err)

    assert response.success is False
    assert response.error is not None
    assert response.error.message == "model not found"
    assert response.error.code == 404
    assert response.error.retryable is False


def test_failure_response_code_falls_back_to_exception_type() -> None:
    cause = RuntimeError("kaboom")
    err = wrap_provider_error(cause, provider="openai", phase="chat", allow_network_errors=True)
    err.__cause__ = cause

    response = failure_response(err)

    assert response.error is not None
    assert response.error.code == "RuntimeError"


def test_httpx_status_error_is_classified() -> None:
    request = httpx.Request("POST", "https://api.example.test/v1/chat")
    response = httpx.Response(429, headers={"retry-after": "3"}, request=request)
    exc = httpx.HTTPStatusError("Too Many Requests", request=request, response=response)

    err = wrap_provider_error(exc, provider="openai", phase="chat", allow_network_errors=False)

    assert isinstance(err, RateLimitError)
    assert err.retry_after_s == 3.0
    assert err.retryable is True


def test_unparseable_retry_after_is_ignored() -> None:
    exc = StatusError("bad gateway", 502)
    exc.response = SimpleNamespace(  # type: ignore[attr-defined]
        headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}
    )

    assert extract_retry_after_s(exc) is None
    assert extract_status_code(exc) == 502
