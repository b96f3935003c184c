"""Bounded retry delays for failed reconciliation passes."""

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with an upper bound.

    The delay for the n-th consecutive failure (starting at 0) is
    ``base_seconds * factor**n``, capped at ``max_seconds``.

    Attributes:
        base_seconds: Delay after the first failure.
        max_seconds: Upper bound for any delay.
        factor: Growth factor between consecutive failures.
    """

    base_seconds: float = 10.0
    max_seconds: float = 300.0
    factor: float = 2.0

    def __post_init__(self) -> None:
        """Validate policy values after initialization."""
        if self.base_seconds <= 0:
            msg = f"base_seconds must be positive, got {self.base_seconds}"
            raise ValueError(msg)
        if self.max_seconds < self.base_seconds:
            msg = "max_seconds must not be smaller than base_seconds"
            raise ValueError(msg)
        if self.factor < 1:
            msg = f"factor must be at least 1, got {self.factor}"
            raise ValueError(msg)

    def delay(self, attempt: int) -> timedelta:
        """Return the delay before retrying after ``attempt`` prior failures."""
        attempt = max(attempt, 0)
        seconds = self.base_seconds
        for _ in range(attempt):
            seconds *= self.factor
            if seconds >= self.max_seconds:
                break
        return timedelta(seconds=min(seconds, self.max_seconds))
