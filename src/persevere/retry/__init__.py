"""
Retry engine with hook-driven control signals.

The engine runs a zero-argument work function repeatedly under a
configurable policy. After every attempt a caller-supplied hook inspects an
EventContext and steers the loop:

1. **Stop / accept**: return the current outcome
2. **Retry**: run again immediately
3. **DelayRetry**: wait ``2**attempt + jitter`` seconds, then run again
4. **Backoff**: wait a static, exponential or strategy-computed duration
5. **Reset**: restart the attempt counter (optionally with new work)

Main Components:
    - RetryEngine: Fluent configuration and the attempt loop
    - EventContext: Statistics and signal methods handed to hooks
    - BackoffStrategy / ExponentialBackoff: Wait duration policies
    - RunStats: Immutable snapshot of the last run

Usage:
    >>> from persevere.retry import RetryEngine
    >>> engine = RetryEngine.build().retries(2).catch_exceptions([TimeoutError])
    >>> engine.run(lambda: 42)
    42
"""

from persevere.retry.backoff import BackoffStrategy, ExponentialBackoff
from persevere.retry.context import EventContext, RunState
from persevere.retry.engine import RetryEngine
from persevere.retry.exceptions import (
    ConfigurationError,
    EngineInvariantError,
    MissingBackoffStrategyError,
    PersevereError,
)
from persevere.retry.metadata import RunStats
from persevere.retry.signals import (
    Backoff,
    ControlSignal,
    DelayRetry,
    Reset,
    Retry,
    Stop,
)

__all__ = [
    "RetryEngine",
    "EventContext",
    "RunState",
    "RunStats",
    "BackoffStrategy",
    "ExponentialBackoff",
    "ControlSignal",
    "Stop",
    "Retry",
    "DelayRetry",
    "Backoff",
    "Reset",
    "PersevereError",
    "ConfigurationError",
    "EngineInvariantError",
    "MissingBackoffStrategyError",
]
