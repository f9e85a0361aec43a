"""
eventsync.runtime.resilience

Shared resilience utilities: retry backoff, polite throttling.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass

TRANSIENT_STATUS_CODES: tuple[int, ...] = (408, 425, 429, 500, 502, 503, 504)


def is_transient_status(status_code: int) -> bool:
    """Whether an HTTP status is worth retrying later."""
    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_mode: str = "exp"  # exp | fixed | none
    base_delay_s: float = 30.0
    max_delay_s: float = 900.0
    jitter: float = 0.25

    def should_retry(self, attempt: int) -> bool:
        """
        attempt: the 1-based attempt that just failed
        """
        return attempt < self.max_attempts

    def compute_backoff_s(self, attempt: int) -> float:
        """
        attempt: 1..N
        """
        if self.backoff_mode == "none":
            return 0.0
        if self.backoff_mode == "fixed":
            delay = self.base_delay_s
        else:
            delay = self.base_delay_s * (2 ** max(0, attempt - 1))

        delay = min(delay, self.max_delay_s)
        if self.jitter > 0:
            delay = delay * (1.0 + (random.random() * 2 - 1) * self.jitter)
        return max(0.0, delay)


class PoliteDelay:
    """
    Randomized pause between consecutive requests to the same site.

    The first call never sleeps.
    """

    def __init__(self, min_delay_s: float = 0.5, max_delay_s: float = 1.5) -> None:
        self.min_delay_s = min_delay_s
        self.max_delay_s = max_delay_s
        self._calls = 0

    def wait(self) -> float:
        self._calls += 1
        if self._calls == 1:
            return 0.0
        delay = random.uniform(self.min_delay_s, self.max_delay_s)
        time.sleep(delay)
        return delay
