"""
Run statistics snapshot.

This module defines the RunStats dataclass returned by ``RetryEngine.stats``.
It captures the state of the most recent work function run so callers can
inspect it after ``run`` returns or raises.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class RunStats:
    """
    Immutable view of a single work function's run.

    Attributes:
        attempts: Total attempts executed, including those before a reset
        retry_count: Attempts beyond the first
        attempt_index: Final 0-based attempt index (clamped to max_retries)
        max_retries: Retry budget the run was configured with
        elapsed: Seconds spent in the most recent attempt
        total_backoff: Seconds slept across the run
        last_backoff: Seconds slept after the most recent attempt
        result: Last successful return value
        error: Last raised error (None if the last attempt succeeded)
        stopped: Whether a Stop signal ended the loop
    """

    attempts: int
    retry_count: int
    attempt_index: int
    max_retries: int
    elapsed: float = 0.0
    total_backoff: float = 0.0
    last_backoff: float = 0.0
    result: Any = None
    error: Optional[BaseException] = None
    stopped: bool = False

    def __post_init__(self) -> None:
        """Validate snapshot invariants."""
        if self.attempts < 0:
            raise ValueError("attempts must be >= 0")

        if self.retry_count != max(self.attempts - 1, 0):
            raise ValueError("retry_count must equal attempts - 1")

        if self.total_backoff < 0 or self.last_backoff < 0:
            raise ValueError("backoff durations must be >= 0")

    @property
    def succeeded(self) -> bool:
        return self.attempts > 0 and self.error is None
