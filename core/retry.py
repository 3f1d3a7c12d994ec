"""Exponential backoff shared by the sync engine and the read cache."""

from dataclasses import dataclass
from typing import Optional

from core.errors import RateLimitError, StoreError


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    Attempt ``n`` (1-based) that fails waits ``base * 2 ** (n - 1)`` seconds,
    capped at ``maximum``, before attempt ``n + 1``. A ``Retry-After`` hint
    from the store wins when it is longer.
    """

    max_attempts: int = 5
    base: float = 0.5
    maximum: float = 30.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay(self, attempt: int, error: Optional[StoreError] = None) -> float:
        delay = min(self.base * (2 ** (attempt - 1)), self.maximum)
        if isinstance(error, RateLimitError) and error.retry_after:
            delay = max(delay, min(error.retry_after, self.maximum))
        return delay

    @classmethod
    def from_settings(cls, settings) -> 'RetryPolicy':
        return cls(
            max_attempts=settings.retry_max_attempts,
            base=settings.retry_backoff_base,
            maximum=settings.retry_backoff_max,
        )
