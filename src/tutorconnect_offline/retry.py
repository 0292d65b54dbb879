"""Retry policy for actions whose delivery failed."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .config import OfflineConfig


@dataclass
class RetryPolicy:
    max_retries: Optional[int] = 8
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 300.0
    jitter: float = 0.25
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_config(cls, config: OfflineConfig) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            backoff_seconds=config.backoff_seconds,
            max_backoff_seconds=config.max_backoff_seconds,
            jitter=config.backoff_jitter,
        )

    def exhausted(self, retry_count: int) -> bool:
        """True once ``retry_count`` attempts have used up the first try plus ``max_retries``."""
        if self.max_retries is None:
            return False
        return retry_count > self.max_retries

    def delay(self, retry_count: int) -> float:
        if self.backoff_seconds <= 0:
            return 0.0
        base = self.backoff_seconds * (2 ** min(max(retry_count - 1, 0), 32))
        base = min(base, self.max_backoff_seconds)
        extra = base * self.jitter * self.rng.random() if self.jitter > 0 else 0.0
        return min(base + extra, self.max_backoff_seconds)

    def next_attempt(self, retry_count: int, now: datetime) -> Optional[datetime]:
        seconds = self.delay(retry_count)
        if seconds <= 0:
            return None
        return now + timedelta(seconds=seconds)


__all__ = ["RetryPolicy"]
