"""Per-client rate limiting for the agents routes.

Token bucket per client address: a fast bucket caps requests per minute,
a slow bucket caps requests per day. In-memory, so limits reset when the
server restarts.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class _TokenBucket:
    capacity: float
    refill_rate: float  # tokens per second
    tokens: float = 0.0
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        self.tokens = self.capacity

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now

    def consume(self) -> bool:
        """Try to take one token. Returns True if allowed."""
        self._refill()
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def refund(self) -> None:
        self.tokens = min(self.capacity, self.tokens + 1.0)

    @property
    def retry_after(self) -> float:
        """Seconds until the next token is available."""
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) / self.refill_rate


class RateLimiter:
    """Token-bucket limiter keyed by client id. Buckets are created lazily.

    Args:
        requests_per_minute: Burst capacity per client.
        requests_per_day: Daily quota per client.
    """

    def __init__(self, requests_per_minute: int = 10, requests_per_day: int = 100) -> None:
        self._rpm = requests_per_minute
        self._daily = requests_per_day
        self._minute_buckets: dict[str, _TokenBucket] = {}
        self._daily_buckets: dict[str, _TokenBucket] = {}

    def check(self, client_id: str) -> tuple[bool, float, str]:
        """Check whether a request is allowed.

        Returns:
            (allowed, retry_after_seconds, limit_type)
        """
        minute_bucket = self._minute_buckets.setdefault(
            client_id,
            _TokenBucket(capacity=float(self._rpm), refill_rate=self._rpm / 60.0),
        )
        daily_bucket = self._daily_buckets.setdefault(
            client_id,
            _TokenBucket(capacity=float(self._daily), refill_rate=self._daily / 86400.0),
        )

        if not daily_bucket.consume():
            logger.warning("rate_limit_daily_exceeded", client_id=client_id)
            return False, daily_bucket.retry_after, "daily"

        if not minute_bucket.consume():
            # The rejected request must not count against the daily quota
            daily_bucket.refund()
            logger.warning("rate_limit_minute_exceeded", client_id=client_id)
            return False, minute_bucket.retry_after, "minute"

        return True, 0.0, ""
