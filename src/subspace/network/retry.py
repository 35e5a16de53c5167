"""Retry policy with bounded exponential backoff."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ClassVar, TypeVar

from loguru import logger

from subspace.network.errors import ErrorKind, NetworkError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[object]]

_ALWAYS_RETRYABLE = frozenset({ErrorKind.NO_CONNECTION, ErrorKind.TIMEOUT, ErrorKind.UNKNOWN})


@dataclass(frozen=True)
class RetryPolicy:
    """Decides whether a failed attempt is retried and how long to wait.

    Delays grow as ``base_delay * multiplier ** (attempt - 1)`` and are capped at
    ``max_delay``. No jitter is applied.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    STANDARD: ClassVar[RetryPolicy]
    AGGRESSIVE: ClassVar[RetryPolicy]
    CONSERVATIVE: ClassVar[RetryPolicy]
    NONE: ClassVar[RetryPolicy]

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.max_delay <= 0:
            raise ValueError("max_delay must be positive")
        if self.multiplier <= 1:
            raise ValueError("multiplier must be greater than 1")

    @classmethod
    def named(cls, name: str) -> RetryPolicy:
        """Look up a preset by name: standard, aggressive, conservative or none."""
        presets = {
            "standard": cls.STANDARD,
            "aggressive": cls.AGGRESSIVE,
            "conservative": cls.CONSERVATIVE,
            "none": cls.NONE,
        }
        try:
            return presets[name.lower()]
        except KeyError:
            raise ValueError(f"unknown retry policy: {name}") from None

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-indexed)."""
        if attempt < 1:
            raise ValueError("attempt is 1-indexed")
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        if not isinstance(error, NetworkError):
            return True
        if error.kind is ErrorKind.SERVER_ERROR:
            return error.status_code is not None and error.status_code >= 500
        return error.kind in _ALWAYS_RETRYABLE

    async def execute(self, operation: Callable[[], Awaitable[T]], *, sleep: Sleep = asyncio.sleep) -> T:
        """Run `operation` until it succeeds or the policy gives up.

        Raises the last error once attempts are exhausted, or a non-retryable
        error immediately.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await operation()
            except Exception as exc:
                if not self.should_retry(exc, attempt):
                    if attempt >= self.max_attempts:
                        logger.error("retry.exhausted attempts={} error={!r}", attempt, exc)
                    else:
                        logger.error("retry.not_retryable attempt={} error={!r}", attempt, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.warning("retry.scheduled attempt={} delay={}s error={!r}", attempt, delay, exc)
                await sleep(delay)
                continue
            if attempt > 1:
                logger.info("retry.succeeded attempt={}", attempt)
            return result


RetryPolicy.STANDARD = RetryPolicy()
RetryPolicy.AGGRESSIVE = RetryPolicy(max_attempts=5, base_delay=0.5)
RetryPolicy.CONSERVATIVE = RetryPolicy(max_attempts=2, base_delay=2.0)
RetryPolicy.NONE = RetryPolicy(max_attempts=1)
