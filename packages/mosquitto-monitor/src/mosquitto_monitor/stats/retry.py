"""
Reconnection backoff for the $SYS statistics feed.

ReconnectPolicy spreads reconnect attempts with exponential backoff and
jitter, so a broker restart does not get hammered by an immediate retry
loop.
"""

import random
from dataclasses import dataclass


@dataclass
class ReconnectPolicy:
    """
    Configuration for stats feed reconnection.

    Attributes:
        enabled: Reconnect at all after the session ends (default True)
        min_wait_seconds: Wait before the first reconnect (default 1.0)
        max_wait_seconds: Upper bound for the base wait (default 60.0)
        exponential_base: Base for exponential calculation (default 2.0)
        jitter_fraction: Fraction of wait time to add as jitter (default 0.5)
        max_attempts: Give up after this many consecutive failures,
            None for unlimited (default None)

    Example:
        policy = ReconnectPolicy(min_wait_seconds=2.0)
        policy.delay(attempt=0)  # ~2-3 seconds
        policy.delay(attempt=3)  # ~16-24 seconds
    """

    enabled: bool = True
    min_wait_seconds: float = 1.0
    max_wait_seconds: float = 60.0
    exponential_base: float = 2.0
    jitter_fraction: float = 0.5
    max_attempts: int | None = None

    def delay(self, attempt: int) -> float:
        """
        Seconds to wait before reconnect attempt number `attempt`.

        Formula: min(max_wait, min_wait * base^attempt) + random(0, wait * jitter)

        Args:
            attempt: Consecutive failures so far (0 for the first reconnect)
        """
        wait = min(
            self.max_wait_seconds,
            self.min_wait_seconds * (self.exponential_base**attempt),
        )
        return wait + random.uniform(0, wait * self.jitter_fraction)

    def should_retry(self, attempt: int) -> bool:
        """
        Check if another reconnect should be made.

        Args:
            attempt: Consecutive failures so far
        """
        if not self.enabled:
            return False
        return self.max_attempts is None or attempt < self.max_attempts
