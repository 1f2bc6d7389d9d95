"""Exponential-backoff retry for idempotent network reads."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, FrozenSet, Optional, TypeVar

import httpx

from .errors import ErrorCode, VyraError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_CODES: FrozenSet[str] = frozenset(
    {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
        ErrorCode.RATE_LIMIT_EXCEEDED,
        ErrorCode.SERVICE_UNAVAILABLE,
    }
)


def is_retryable(error: BaseException) -> bool:
    """Decide whether a failure may be retried.

    SDK errors are classified by code membership in ``RETRYABLE_CODES``, so
    signature, balance, input and revert failures are never retried.
    """
    if isinstance(error, VyraError):
        return error.code in RETRYABLE_CODES
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return True
    code = getattr(error, "code", None)
    return isinstance(code, str) and code in RETRYABLE_CODES


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    *,
    classifier: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with exponential backoff.

    Waits ``base_delay * 2**attempt`` between attempts. Non-retryable failures
    and the final failure are re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except Exception as exc:
            if not classifier(exc) or attempt == max_attempts - 1:
                raise
            delay = base_delay * (2**attempt)
            logger.warning(
                "Retryable failure (attempt %d/%d), retrying in %.2fs: %s",
                attempt + 1,
                max_attempts,
                delay,
                exc,
            )
            await sleep(delay)

    raise RuntimeError("Unexpected exit from retry loop")


@dataclass
class RetryPolicy:
    """Bound retry settings shared by the coordinators."""

    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await retry(
            operation,
            self.max_attempts,
            self.base_delay,
            sleep=self.sleep or asyncio.sleep,
        )
