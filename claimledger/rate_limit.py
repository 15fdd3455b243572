"""
Backend call throttling.

RateLimitDelay is a token bucket placed between successive calls into the
confidential-compute backend so that a burst of evaluations does not trip
the backend's own rate rejection. It carries no business semantics.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .errors import DelayIntegrityError
from .logging_config import audit_log


# Absorbs float drift when a sleep refills exactly one token
TOKEN_EPSILON = 1e-9


@dataclass
class RateLimitResult:
    """Result of a bucket check."""
    allowed: bool
    remaining: float
    retry_after: Optional[float] = None


class RateLimitDelay:
    """
    Token bucket limiter with a blocking tick().

    Allows bursts up to capacity while holding the long-run call rate at
    `rate` per second. The clock and sleep functions are injectable so the
    delay can be driven deterministically.
    """

    def __init__(
        self,
        rate: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            rate: Tokens added per second
            capacity: Maximum bucket capacity (burst size)
            clock: Monotonic time source
            sleep: Called with the number of seconds to wait
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._rate = float(rate)
        self._capacity = int(capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._last = clock()
        self._lock = threading.RLock()
        self._ticks = 0
        self._waits = 0
        self._waited_seconds = 0.0

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> int:
        return self._capacity

    def check(self, tokens: int = 1) -> RateLimitResult:
        """
        Try to take tokens without waiting.

        Returns:
            RateLimitResult; when not allowed, retry_after is the number of
            seconds until enough tokens have accumulated.
        """
        with self._lock:
            self._refill()
            if self._tokens + TOKEN_EPSILON >= tokens:
                self._tokens = max(0.0, self._tokens - tokens)
                return RateLimitResult(allowed=True, remaining=self._tokens)
            missing = tokens - self._tokens
            return RateLimitResult(
                allowed=False,
                remaining=self._tokens,
                retry_after=missing / self._rate,
            )

    def tick(self) -> None:
        """
        Take one token, sleeping until one is available.

        Raises:
            DelayIntegrityError: the bucket state left its valid range or the
                clock ran backwards. Never expected; aborts the caller.
        """
        with self._lock:
            result = self.check()
            while not result.allowed:
                self._waits += 1
                self._waited_seconds += result.retry_after
                audit_log.rate_limit_wait(result.retry_after)
                self._sleep(result.retry_after)
                result = self.check()
            self._ticks += 1
            self._verify()

    def stats(self) -> Dict[str, float]:
        with self._lock:
            return {
                "ticks": self._ticks,
                "waits": self._waits,
                "waited_seconds": self._waited_seconds,
                "tokens": self._tokens,
                "capacity": self._capacity,
                "rate": self._rate,
            }

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last
        if elapsed < 0:
            self._fail(f"clock ran backwards by {-elapsed:.6f}s")
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last = now

    def _verify(self) -> None:
        if not 0 <= self._tokens <= self._capacity:
            self._fail(f"token count {self._tokens!r} outside [0, {self._capacity}]")

    def _fail(self, reason: str) -> None:
        audit_log.delay_integrity_failure(reason)
        raise DelayIntegrityError(reason)
