"""Bounded async retry for vendor calls.

Only failures the vendor marks as transient are retried. Attempts and total
elapsed time are both capped, and a server-requested delay (Retry-After) is
never undercut.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

import httpx

from conductor._http import RETRYABLE_STATUS_CODES
from conductor.errors import APIError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a vendor call is retried.

    ``max_attempts`` counts the first call. Delays grow from
    ``initial_delay_s`` by ``backoff_multiplier`` up to ``max_delay_s``; with
    ``jitter`` each sleep is drawn uniformly below that ceiling.
    """

    max_attempts: int = 2
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True
    max_elapsed_s: float | None = 15.0

    def __post_init__(self) -> None:
        checks = (
            ("max_attempts >= 1", self.max_attempts >= 1),
            ("initial_delay_s >= 0", self.initial_delay_s >= 0),
            ("backoff_multiplier > 0", self.backoff_multiplier > 0),
            ("max_delay_s >= 0", self.max_delay_s >= 0),
            (
                "max_elapsed_s >= 0 or None",
                self.max_elapsed_s is None or self.max_elapsed_s >= 0,
            ),
        )
        failed = [rule for rule, ok in checks if not ok]
        if failed:
            raise ValueError(f"Invalid RetryPolicy: {', '.join(failed)}")


def should_retry_call(exc: BaseException) -> bool:
    """Decide whether a failed vendor call is worth another attempt.

    APIErrors are retried when flagged retryable or when they carry a
    retryable HTTP status. Other exceptions are retried only when a timeout
    or an httpx transport error sits somewhere on their chain. Cancellation
    never is.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, APIError):
        return exc.retryable is True or exc.status_code in RETRYABLE_STATUS_CODES
    return any(
        isinstance(e, (TimeoutError, httpx.RequestError))
        for e in _walk_exception_chain(exc)
    )


def _backoff_delay(policy: RetryPolicy, *, retry_index: int) -> float:
    """Sleep before retry number *retry_index* (1-based)."""
    ceiling = min(
        policy.max_delay_s,
        policy.initial_delay_s * policy.backoff_multiplier ** (retry_index - 1),
    )
    if ceiling <= 0:
        return 0.0
    return random.uniform(0, ceiling) if policy.jitter else ceiling  # noqa: S311


def _requested_delay(exc: BaseException) -> float:
    if isinstance(exc, APIError) and exc.retry_after_s is not None:
        return max(0.0, exc.retry_after_s)
    return 0.0


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = should_retry_call,
) -> T:
    """Await ``factory()`` until it succeeds, fails permanently or the policy runs out.

    The last exception propagates unchanged.
    """
    deadline = (
        None if policy.max_elapsed_s is None else time.monotonic() + policy.max_elapsed_s
    )
    attempt = 1
    while True:
        try:
            return await factory()
        except Exception as exc:
            if attempt >= policy.max_attempts or not should_retry(exc):
                raise
            delay = max(
                _backoff_delay(policy, retry_index=attempt), _requested_delay(exc)
            )
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise
                delay = min(delay, remaining)

            logger.debug(
                "Retrying after %s (attempt %d/%d, sleeping %.2fs)",
                type(exc).__name__,
                attempt,
                policy.max_attempts,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
            attempt += 1
