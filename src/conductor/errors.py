"""Exception hierarchy for Conductor.

Only configuration errors and caller contract violations propagate out of the
adapters and the tool loop. Vendor and tool failures are reported as data.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ConductorError(Exception):
    """Base exception for all Conductor errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ConductorError):
    """Settings validation or credential resolution failed."""


class MissingCredentialError(ConfigurationError):
    """No credential is available for a provider/account pair."""

    def __init__(
        self, provider: str, account: str, *, hint: str | None = None
    ) -> None:
        super().__init__(
            f"No credential found for provider {provider!r} (account {account!r})",
            hint=hint,
        )
        self.provider = provider
        self.account = account


class ProviderNotConfiguredError(ConfigurationError):
    """A chat-family call was made before a successful ``configure()``."""


class ContractViolationError(ConductorError):
    """The caller broke the adapter or engine contract (a bug, not a runtime state)."""


class MaxIterationsExceededError(ConductorError):
    """The tool loop hit its iteration bound without a final answer."""

    def __init__(self, iterations: int, *, hint: str | None = None) -> None:
        super().__init__(
            f"Reached maximum iterations ({iterations}) in tool loop",
            hint=hint,
        )
        self.iterations = iterations


class ToolNotFoundError(ConductorError):
    """The model asked for a tool the executor does not know."""


class ContextError(ConductorError):
    """File context could not be loaded."""


class APIError(ConductorError):
    """Vendor API call failed.

    Carries retry metadata so the bounded retry loop can decide without
    substring matching. Adapters convert it into a failed ``ProviderResponse``
    before it reaches the caller.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
