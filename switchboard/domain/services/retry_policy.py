"""Exponential backoff policy for message redelivery."""

import random
from dataclasses import dataclass

from switchboard.settings import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    The nominal delay before retry ``n`` (zero-based) is
    ``min(max_delay, base_delay * backoff_factor ** n)``. A symmetric jitter of
    ``jitter_ratio`` is applied on top and the result clamped to ``max_delay``.
    """

    base_delay_ms: int = 1000
    backoff_factor: float = 2.0
    max_delay_ms: int = 30000
    max_attempts: int = 5
    jitter_ratio: float = 0.1

    def __post_init__(self) -> None:
        if self.base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not 0 <= self.jitter_ratio < 1:
            raise ValueError("jitter_ratio must be in [0, 1)")

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            base_delay_ms=settings.retry_base_delay_ms,
            backoff_factor=settings.retry_backoff_factor,
            max_delay_ms=settings.retry_max_delay_ms,
            max_attempts=settings.retry_max_attempts,
            jitter_ratio=settings.retry_jitter_ratio,
        )

    def base_delay_for(self, retry_index: int) -> float:
        """Nominal delay in milliseconds, without jitter."""
        if retry_index < 0:
            raise ValueError("retry_index must be >= 0")
        # Cap the exponent so huge attempt numbers cannot overflow
        exponent = min(retry_index, 64)
        return min(float(self.max_delay_ms), self.base_delay_ms * self.backoff_factor ** exponent)

    def delay_for(self, retry_index: int, rng: random.Random | None = None) -> float:
        """Jittered delay in milliseconds, never above ``max_delay_ms``."""
        nominal = self.base_delay_for(retry_index)
        if not self.jitter_ratio:
            return nominal
        spread = nominal * self.jitter_ratio
        offset = (rng or random).uniform(-spread, spread)
        return max(0.0, min(float(self.max_delay_ms), nominal + offset))

    def is_exhausted(self, attempt_count: int) -> bool:
        """True once ``attempt_count`` failed attempts use up the budget."""
        return attempt_count >= self.max_attempts
