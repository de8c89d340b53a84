"""
Exponential backoff policy for reconnect loops.

Unlike a per-call retry decorator, the stream connector owns its own loop
(connect, read, fail, sleep, reconnect) and only asks this policy how long
to wait before the next attempt and when the attempt window is exhausted.
"""

import random
from dataclasses import dataclass


@dataclass
class BackoffPolicy:
    """Configuration for bounded exponential backoff.

    Attributes:
        max_attempts: Consecutive failures allowed before the window resets
        initial_delay: Delay before the first retry (seconds)
        max_delay: Ceiling for any single delay (seconds)
        multiplier: Growth factor per attempt (standard doubling by default)
        jitter: Extra random fraction added on top of the exponential delay.
            0.0 disables jitter. Jitter only ever lengthens a delay, so the
            result stays within [initial_delay, max_delay].
    """

    max_attempts: int = 10
    initial_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.0

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.initial_delay = float(self.initial_delay)
        self.max_delay = float(self.max_delay)
        self.multiplier = float(self.multiplier)
        self.jitter = float(self.jitter)

        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.max_delay < self.initial_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= initial_delay ({self.initial_delay})"
            )
        if self.jitter < 0:
            raise ValueError(f"jitter must be >= 0, got {self.jitter}")

    @classmethod
    def from_stream_settings(
        cls,
        max_attempts: int,
        initial_backoff_seconds: float,
        max_backoff_minutes: float,
        jitter: float = 0.0,
    ) -> "BackoffPolicy":
        """Build a policy from the connector's configured units."""
        return cls(
            max_attempts=max_attempts,
            initial_delay=float(initial_backoff_seconds),
            max_delay=float(max_backoff_minutes) * 60.0,
            jitter=jitter,
        )

    def get_delay(self, attempt: int) -> float:
        """
        Calculate the delay before retry number ``attempt``.

        Args:
            attempt: 0-indexed attempt number within the current window

        Returns:
            Delay in seconds, clamped to [initial_delay, max_delay]
        """
        attempt = max(0, attempt)
        # Cap the exponent before it overflows a float on very long outages
        exponent = min(attempt, 64)
        delay = self.initial_delay * (self.multiplier**exponent)

        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)

        return max(self.initial_delay, min(delay, self.max_delay))

    def is_exhausted(self, attempt: int) -> bool:
        """Whether ``attempt`` (1-indexed consecutive failure count) closes the window."""
        return attempt >= self.max_attempts


__all__ = ["BackoffPolicy"]
