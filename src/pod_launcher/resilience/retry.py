"""
Retry configuration with exponential backoff.

The delay before retry ``n`` (1-indexed) is::

    min(max_delay, min_delay * factor ** (n - 1))

optionally scaled by a random factor in [1, 2) when ``jitter`` is enabled.
"""

import random
from dataclasses import dataclass


@dataclass
class RetryConfig:
    """Backoff schedule for the resilient caller."""

    # Total attempts, first call included
    max_attempts: int = 5

    # Delay before the first retry, in seconds
    min_delay_seconds: float = 1.0

    # Upper bound for any single delay, in seconds
    max_delay_seconds: float = 30.0

    # Multiplier applied per attempt
    factor: float = 2.0

    # Randomize delays to avoid synchronized retries
    jitter: bool = False

    def get_delay(self, attempt: int) -> float:
        """
        Seconds to wait after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)
        """
        delay = self.min_delay_seconds * (self.factor ** max(0, attempt - 1))
        if self.jitter:
            delay *= 1 + random.random()
        return min(delay, self.max_delay_seconds)

