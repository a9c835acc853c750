"""
Token bucket rate limiting for outgoing translation calls.

Allows bursts up to the bucket capacity while converging to the sustained
refill rate. Burst state lives in memory only; the daily quota is enforced
separately by the usage ledger.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional

from .clock import Clock, SystemClock
from quota_guard.config.loader import RateLimitConfig

logger = logging.getLogger(__name__)


class TokenBucket:
    """Cooperative token bucket for a single consumer.

    Not safe for concurrent consumers: two tasks waiting on the same bucket
    can both be admitted after the same refill.
    """

    def __init__(
        self,
        capacity: float,
        refill_rate: float,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Create a full bucket.

        Args:
            capacity: Maximum number of tokens (burst size)
            refill_rate: Tokens added per second (sustained rate)
            clock: Time source, defaults to the system clock
            sleep: Coroutine used to suspend the caller while waiting

        Raises:
            ValueError: If capacity or refill_rate is not positive
        """
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if refill_rate <= 0:
            raise ValueError("refill_rate must be > 0")

        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate)
        self._clock = clock or SystemClock()
        self._sleep = sleep
        self._tokens = self.capacity
        self._last_refill = self._clock.time()

    @property
    def tokens(self) -> float:
        """Raw token count as of the last accounting update."""
        return self._tokens

    def _refill(self) -> None:
        now = self._clock.time()
        # A clock stepping backwards must not drain or freeze the bucket
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
        self._last_refill = max(self._last_refill, now)

    def can_consume(self, tokens_needed: float = 1) -> bool:
        """Check if tokens are available without consuming them."""
        _check_request(tokens_needed)
        self._refill()
        return self._tokens >= tokens_needed

    def get_available_tokens(self) -> int:
        """Whole tokens currently available."""
        self._refill()
        return math.floor(self._tokens)

    def get_wait_time(self, tokens_needed: float = 1) -> float:
        """Seconds until tokens_needed tokens are available.

        Rounded up to whole milliseconds so that sleeping for the returned
        delay never wakes up short of the requested tokens.
        """
        _check_request(tokens_needed)
        self._refill()

        if self._tokens >= tokens_needed:
            return 0.0

        tokens_short = tokens_needed - self._tokens
        # round() strips float noise so an exact 500 ms does not become 501
        return math.ceil(round(tokens_short / self.refill_rate * 1000, 9)) / 1000

    async def consume(self, tokens_needed: float = 1) -> None:
        """Consume tokens, suspending the caller until they are available.

        If the wait is cancelled nothing is deducted and the bucket stays
        consistent for the next call.
        """
        _check_request(tokens_needed)
        self._refill()

        if self._tokens >= tokens_needed:
            self._tokens -= tokens_needed
            return

        wait = self.get_wait_time(tokens_needed)
        logger.debug("Rate limited: waiting %.3fs for %s token(s)", wait, tokens_needed)
        await self._sleep(wait)

        self._refill()
        self._tokens = max(0.0, self._tokens - tokens_needed)

    def reset(self) -> None:
        """Refill the bucket to capacity. Intended for tests and admin use."""
        self._tokens = self.capacity
        self._last_refill = self._clock.time()


def _check_request(tokens_needed: float) -> None:
    if tokens_needed < 0:
        raise ValueError("tokens_needed must be >= 0")


def create_default_rate_limiter(
    config: Optional[RateLimitConfig] = None,
    clock: Optional[Clock] = None,
) -> TokenBucket:
    """Create a bucket tuned for the translation provider's request limit."""
    config = config or RateLimitConfig()
    return TokenBucket(config.capacity, config.refill_rate, clock=clock)
