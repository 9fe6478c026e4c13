"""Bounded async retry for single request/response exchanges.

A retry wraps exactly one network exchange. It never spans a function
callback: the orchestrator retries ``submit`` and nothing else.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

import httpx

from geminichat._http import RETRYABLE_STATUS_CODES
from geminichat.errors import TransportError, exception_chain

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)

_TRANSIENT = (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException, httpx.RequestError)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a failed exchange is retried.

    Delays grow by ``backoff_multiplier`` from ``initial_delay_s`` up to
    ``max_delay_s``. With ``jitter`` each delay is drawn uniformly from
    ``[0, delay]``. A server-provided ``Retry-After`` raises the delay but
    never beyond what is left of ``max_elapsed_s``.
    """

    max_attempts: int = 3
    initial_delay_s: float = 0.5
    backoff_multiplier: float = 2.0
    max_delay_s: float = 5.0
    jitter: bool = True
    max_elapsed_s: float | None = 30.0

    def __post_init__(self) -> None:
        checks = (
            (self.max_attempts >= 1, "max_attempts must be >= 1"),
            (self.initial_delay_s >= 0, "initial_delay_s must be >= 0"),
            (self.backoff_multiplier > 0, "backoff_multiplier must be > 0"),
            (self.max_delay_s >= 0, "max_delay_s must be >= 0"),
            (
                self.max_elapsed_s is None or self.max_elapsed_s >= 0,
                "max_elapsed_s must be >= 0 or None",
            ),
        )
        for ok, message in checks:
            if not ok:
                raise ValueError(f"RetryPolicy.{message}")

    @classmethod
    def none(cls) -> RetryPolicy:
        """Policy that makes exactly one attempt."""
        return cls(max_attempts=1)

    def backoff(self, retry_index: int) -> float:
        """Sleep before retry number *retry_index* (1-based)."""
        delay = min(
            self.max_delay_s,
            self.initial_delay_s * self.backoff_multiplier ** max(0, retry_index - 1),
        )
        if delay <= 0:
            return 0.0
        return random.uniform(0.0, delay) if self.jitter else delay  # noqa: S311


def should_retry(exc: BaseException) -> bool:
    """Classify an exchange failure.

    TransportErrors carry their own verdict (``retryable`` or a retryable
    status code). Bare timeouts and httpx request errors count as
    transient. Cancellation and everything else are final.
    """
    if isinstance(exc, asyncio.CancelledError):
        return False
    if isinstance(exc, TransportError):
        return exc.retryable is True or exc.status_code in RETRYABLE_STATUS_CODES
    return any(isinstance(e, _TRANSIENT) for e in exception_chain(exc))


async def retry_async(
    factory: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = should_retry,
) -> T:
    """Await ``factory()`` until it succeeds or the policy gives up.

    The final failure is re-raised as-is, so callers see the transport's
    own error rather than a wrapper.
    """
    deadline = (
        time.monotonic() + policy.max_elapsed_s if policy.max_elapsed_s is not None else None
    )
    attempt = 0
    while True:
        attempt += 1
        try:
            return await factory()
        except Exception as exc:
            if attempt >= policy.max_attempts or not should_retry(exc):
                raise
            delay = policy.backoff(attempt)
            if isinstance(exc, TransportError) and exc.retry_after_s is not None:
                delay = max(delay, exc.retry_after_s)
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise
                delay = min(delay, remaining)
            logger.debug(
                "Attempt %d/%d failed with %s; retrying in %.2fs",
                attempt,
                policy.max_attempts,
                type(exc).__name__,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
