"""
Backoff strategies for the retry engine.

A strategy maps an attempt index (0-based) to a wait duration in seconds.
Strategies only compute; the engine does the sleeping. Each strategy keeps a
running total of every duration it has handed out, which is handy for
diagnostics and tests but never used for control decisions.
"""

import random
from abc import ABC, abstractmethod
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


class BackoffStrategy(ABC):
    """
    Abstract base class for backoff strategies.

    Subclasses implement ``calculate``. Callers use ``compute``, which also
    accumulates ``total_duration``.
    """

    def __init__(self) -> None:
        self._total_duration = 0.0

    @property
    def total_duration(self) -> float:
        """Total seconds produced by ``compute`` since creation or ``reset``."""
        return self._total_duration

    def compute(self, attempt_index: int) -> float:
        """
        Return the wait before the attempt after ``attempt_index``.

        Args:
            attempt_index: 0-based index of the attempt that just finished

        Returns:
            Wait duration in seconds
        """
        duration = self.calculate(attempt_index)
        self._total_duration += duration
        logger.debug(
            "Backoff computed",
            strategy=self.__class__.__name__,
            attempt_index=attempt_index,
            duration=duration,
            total_duration=self._total_duration,
        )
        return duration

    @abstractmethod
    def calculate(self, attempt_index: int) -> float:
        """Pure duration calculation, without bookkeeping."""

    def reset(self) -> None:
        self._total_duration = 0.0

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(total_duration={self._total_duration})"


class ExponentialBackoff(BackoffStrategy):
    """
    Exponential backoff with uniform jitter.

    ``base ** attempt_index + uniform(0, max_jitter)`` seconds, optionally
    capped at ``max_delay``. With ``fixed_duration`` set the attempt index is
    ignored and the constant is returned every time.

    The default parameters give 1-2s, 2-3s, 4-5s, ... which grows
    monotonically in expectation.
    """

    def __init__(
        self,
        fixed_duration: Optional[float] = None,
        base: float = 2.0,
        max_jitter: float = 1.0,
        max_delay: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize exponential backoff.

        Args:
            fixed_duration: Constant wait in seconds (disables the exponent)
            base: Exponent base
            max_jitter: Upper bound of the uniform jitter in seconds
            max_delay: Optional cap for a single wait
            rng: Random source (seed one for reproducible jitter)
        """
        super().__init__()
        if fixed_duration is not None and fixed_duration < 0:
            raise ValueError("fixed_duration must be >= 0")
        if base < 1:
            raise ValueError("base must be >= 1")
        if max_jitter < 0:
            raise ValueError("max_jitter must be >= 0")
        if max_delay is not None and max_delay < 0:
            raise ValueError("max_delay must be >= 0")

        self.fixed_duration = fixed_duration
        self.base = base
        self.max_jitter = max_jitter
        self.max_delay = max_delay
        self._rng = rng or random.Random()

    def calculate(self, attempt_index: int) -> float:
        if self.fixed_duration is not None:
            return self.fixed_duration

        delay = self.base ** max(attempt_index, 0) + self._rng.uniform(0, self.max_jitter)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def __repr__(self) -> str:
        if self.fixed_duration is not None:
            return f"ExponentialBackoff(fixed_duration={self.fixed_duration})"
        return (
            f"ExponentialBackoff(base={self.base}, "
            f"max_jitter={self.max_jitter}, max_delay={self.max_delay})"
        )


__all__ = ["BackoffStrategy", "ExponentialBackoff"]
