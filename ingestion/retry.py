"""
Retry combinator shared by the fetcher and the upsert batcher.

The fetcher retries rate-limited calls with exponential backoff; the
batcher retries rejected writes with linear backoff. Both go through
``with_retry`` so attempt counting and logging behave identically.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from core.exceptions import RateLimited, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy(str, enum.Enum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay after the first failed attempt, in seconds
        multiplier: Growth factor per attempt (exponential strategy)
        max_delay: Upper bound for a single delay
        strategy: Exponential (base * multiplier**n) or linear (base * (n + 1))
    """

    max_attempts: int = 4
    base_delay: float = 5.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Delay after the failed zero-based ``attempt``"""
        if self.strategy == BackoffStrategy.LINEAR:
            delay = self.base_delay * (attempt + 1)
        else:
            delay = self.base_delay * (self.multiplier ** attempt)
        return min(delay, self.max_delay)

    @classmethod
    def exponential(cls, retries: int, base_delay: float, max_delay: float) -> "RetryPolicy":
        return cls(
            max_attempts=retries + 1,
            base_delay=base_delay,
            multiplier=2.0,
            max_delay=max_delay,
            strategy=BackoffStrategy.EXPONENTIAL,
        )

    @classmethod
    def linear(cls, attempts: int, base_delay: float) -> "RetryPolicy":
        return cls(
            max_attempts=attempts,
            base_delay=base_delay,
            multiplier=1.0,
            max_delay=base_delay * max(attempts, 1),
            strategy=BackoffStrategy.LINEAR,
        )


async def with_retry(
    fn: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (RetryableError,),
    description: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """
    Call ``fn(attempt)`` until it succeeds or the policy runs out.

    Only exceptions in ``retry_on`` are retried; anything else propagates
    immediately. When every attempt fails, the last retryable exception is
    re-raised so the caller decides how to degrade.
    """
    sleep = sleep or asyncio.sleep

    for attempt in range(policy.max_attempts):
        try:
            return await fn(attempt)
        except retry_on as e:
            if attempt >= policy.max_attempts - 1:
                raise

            delay = policy.delay_for(attempt)
            if isinstance(e, RateLimited) and e.retry_after:
                delay = min(max(delay, e.retry_after), policy.max_delay)

            logger.warning(
                f"{description} failed ({type(e).__name__}). "
                f"Retrying in {delay:g}s (attempt {attempt + 1}/{policy.max_attempts})"
            )
            await sleep(delay)

    raise ValueError(f"{description}: retry policy allows no attempts")
