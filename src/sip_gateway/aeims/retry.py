"""
Retry policy applied uniformly by the AEIMS client.

Reads and idempotent commands use the general policy (3 attempts, linear
backoff, retry on timeouts, transport failures and 5xx gateway statuses).

Non-idempotent commands (call initiation, conference creation, ...) use a
separate policy: at most ``non_idempotent_max_retries`` extra attempts, and
only for failures where the request never reached the backend (connection
could not be opened). Retrying after a read timeout could place the same
outbound call twice, so those failures surface immediately.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import httpx

from sip_gateway.shared.exceptions import UpstreamUnavailableError
from sip_gateway.shared.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({500, 502, 503, 504})


class RetryableStatusError(Exception):
    """Backend answered with a status worth retrying (5xx)."""

    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__(f"Backend returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body


# Failures that may be transient
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    httpx.TimeoutException,
    httpx.TransportError,
    RetryableStatusError,
)

# Failures where the request provably never left this process
UNDELIVERED_ERRORS: tuple[type[BaseException], ...] = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
)

# Anything in here that is not retried becomes UpstreamUnavailableError
UPSTREAM_FAILURES: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    RetryableStatusError,
)


def linear_backoff(base_delay: float) -> Callable[[int], float]:
    """Delay before retry number ``attempt`` is ``attempt * base_delay``."""

    def _backoff(attempt: int) -> float:
        return attempt * base_delay

    return _backoff


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with pluggable backoff."""

    max_attempts: int = 3
    idempotent: bool = True
    backoff: Callable[[int], float] = field(default_factory=lambda: linear_backoff(1.0))
    retry_on: tuple[type[BaseException], ...] = TRANSIENT_ERRORS
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def for_reads(
        cls,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=max_attempts,
            idempotent=True,
            backoff=linear_backoff(base_delay),
            retry_on=TRANSIENT_ERRORS,
            sleep=sleep,
        )

    @classmethod
    def for_non_idempotent(
        cls,
        max_retries: int = 1,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=1 + max(0, min(max_retries, 1)),
            idempotent=False,
            backoff=linear_backoff(base_delay),
            retry_on=UNDELIVERED_ERRORS,
            sleep=sleep,
        )

    async def run(self, call: Callable[[], Awaitable[T]], operation: str = "request") -> T:
        """Run ``call`` under this policy.

        Raises:
            UpstreamUnavailableError: Retries exhausted, or an upstream failure
                this policy does not retry. The last underlying error is kept
                on ``last_error`` and chained as ``__cause__``.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "Retries exhausted",
                        extra={"operation": operation, "attempts": attempt, "error": repr(e)},
                    )
                    raise UpstreamUnavailableError(
                        f"{operation} failed after {attempt} attempt(s)",
                        operation=operation,
                        attempts=attempt,
                        last_error=e,
                    ) from e
                delay = self.backoff(attempt)
                logger.warning(
                    "Retrying backend call",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "delay_seconds": delay,
                        "error": repr(e),
                    },
                )
                await self.sleep(delay)
            except UPSTREAM_FAILURES as e:
                logger.error(
                    "Backend call failed (not retried)",
                    extra={
                        "operation": operation,
                        "attempt": attempt,
                        "idempotent": self.idempotent,
                        "error": repr(e),
                    },
                )
                raise UpstreamUnavailableError(
                    f"{operation} failed",
                    operation=operation,
                    attempts=attempt,
                    last_error=e,
                ) from e
