"""Vendor exception -> APIError -> failed ProviderResponse.

SDK exceptions differ per vendor, so everything here duck-types along the
exception chain: the HTTP status comes from ``status_code``/``status``/``code``
or ``response.status_code``; a server-requested delay comes from a
``retry_after`` attribute, a ``Retry-After`` header, or the ``RetryInfo``
detail google-genai exposes on ``ClientError.details``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from conductor._http import RETRYABLE_STATUS_CODES
from conductor.credentials import env_var_names
from conductor.errors import APIError, RateLimitError, _walk_exception_chain
from conductor.providers.models import ProviderResponse


def _seconds(value: Any) -> float | None:
    """Parse a non-negative delay: a number, ``"2.5"`` or a duration like ``"8s"``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        try:
            seconds = float(value.strip().removesuffix("s"))
        except ValueError:
            return None
    else:
        return None
    return seconds if seconds >= 0 else None


def _status_of(exc: BaseException) -> int | None:
    response = getattr(exc, "response", None)
    candidates = [getattr(exc, attr, None) for attr in ("status_code", "status", "code")]
    candidates.append(getattr(response, "status_code", None))
    for value in candidates:
        if isinstance(value, int) and not isinstance(value, bool) and 100 <= value <= 599:
            return value
    return None


def _google_retry_delay(details: Any) -> float | None:
    # {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}
    error = details.get("error") if isinstance(details, dict) else None
    entries = error.get("details") if isinstance(error, dict) else None
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict) and "RetryInfo" in str(entry.get("@type", "")):
            return _seconds(entry.get("retryDelay"))
    return None


def _retry_after_of(exc: BaseException) -> float | None:
    seconds = _seconds(getattr(exc, "retry_after", None))
    if seconds is not None:
        return seconds
    headers = getattr(getattr(exc, "response", None), "headers", None)
    if isinstance(headers, (dict, httpx.Headers)):
        seconds = _seconds(headers.get("Retry-After"))
        if seconds is not None:
            return seconds
    return _google_retry_delay(getattr(exc, "details", None))


def extract_status_code(exc: BaseException) -> int | None:
    """First HTTP status found on *exc* or its causes."""
    for e in _walk_exception_chain(exc):
        status = _status_of(e)
        if status is not None:
            return status
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """First server-requested retry delay found on *exc* or its causes."""
    for e in _walk_exception_chain(exc):
        seconds = _retry_after_of(e)
        if seconds is not None:
            return seconds
    return None


def _is_transport_error(exc: BaseException) -> bool:
    return any(isinstance(e, httpx.RequestError) for e in _walk_exception_chain(exc))


def _auth_hint(provider: str, status_code: int | None, cause: str) -> str | None:
    lowered = cause.lower()
    key_rejected = status_code == 400 and ("api key" in lowered or "api_key" in lowered)
    if status_code in {401, 403} or key_rejected:
        env_var = env_var_names(provider)[0]
        return f"Check credentials/permissions (try setting {env_var} or storing a key)."
    return None


def wrap_provider_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    allow_network_errors: bool,
) -> APIError:
    """Classify a vendor SDK exception as an APIError with retry metadata.

    Cancellation is re-raised. An existing APIError only gains missing context.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    if isinstance(exc, APIError):
        exc.provider = exc.provider or provider
        exc.phase = exc.phase or phase
        return exc

    status = extract_status_code(exc)
    retry_after = extract_retry_after_s(exc)
    retryable = (
        retry_after is not None
        or status in RETRYABLE_STATUS_CODES
        or (allow_network_errors and _is_transport_error(exc))
    )

    summary = f"{provider} {phase} failed"
    if status is not None:
        summary += f" (status={status})"
    cause = str(exc)
    err_cls = RateLimitError if status == 429 else APIError
    return err_cls(
        f"{summary}: {cause}" if cause else summary,
        hint=_auth_hint(provider, status, cause),
        retryable=retryable,
        status_code=status,
        retry_after_s=retry_after,
        provider=provider,
        phase=phase,
    )


def failure_response(err: APIError) -> ProviderResponse:
    """Turn a wrapped vendor error into a failed ProviderResponse.

    The message is the vendor's own text (the wrapped cause when present).
    """
    cause = err.__cause__
    raw = str(cause) if cause is not None and str(cause) else str(err)
    code: str | int | None = err.status_code
    if code is None and cause is not None:
        code = type(cause).__name__
    return ProviderResponse.failure(
        raw, code=code, hint=err.hint, retryable=err.retryable
    )
