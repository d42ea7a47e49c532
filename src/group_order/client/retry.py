"""Reconnect delays with exponential backoff and jitter."""

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for reconnect behaviour.

    Attributes:
        initial_delay: Base delay in seconds.
        max_delay: Cap on any single delay in seconds.
        backoff_base: Exponential multiplier per attempt.
        jitter_factor: Random spread as a fraction of the delay (0.25 = +/-25%).
        max_attempts: Consecutive failed attempts before giving up.
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_base: float = 2.0
    jitter_factor: float = 0.25
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


def calculate_delay_with_jitter(
    attempt: int, config: RetryConfig | None = None
) -> float:
    """Return the delay before reconnect attempt ``attempt`` (0-indexed).

    ``initial_delay * backoff_base ** attempt``, capped at ``max_delay``, then
    spread by +/- ``jitter_factor`` so clients dropped together do not all
    reconnect at the same instant.
    """
    config = config or RetryConfig()
    delay = config.initial_delay * (config.backoff_base**attempt)
    capped = min(delay, config.max_delay)
    jitter_range = capped * config.jitter_factor
    return max(0.0, capped + random.uniform(-jitter_range, jitter_range))
