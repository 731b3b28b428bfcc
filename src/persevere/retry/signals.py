"""
Control signals that steer the retry loop.

A hook tells the engine what to do next by producing one of the variants
below. There are two equivalent ways to do that:

1. Return the signal value from the hook::

       def on_result(ctx):
           if ctx.result.status == "pending":
               return DelayRetry()

2. Call the matching EventContext method, which raises ``SignalRaised``
   and never returns::

       def on_result(ctx):
           if ctx.result.status == "pending":
               ctx.delay_retry()

``SignalRaised`` derives from ``BaseException`` so that ``except Exception``
blocks in work functions or caller code cannot swallow it. Only the engine
loop catches it.
"""

from dataclasses import dataclass
from typing import Any, Callable, NoReturn, Optional

from persevere.retry.exceptions import ConfigurationError


@dataclass(frozen=True)
class ControlSignal:
    """Base class of the closed set of control signals."""

    @property
    def name(self) -> str:
        return type(self).__name__.lower()


@dataclass(frozen=True)
class Stop(ControlSignal):
    """Accept the current outcome and leave the loop."""


@dataclass(frozen=True)
class Retry(ControlSignal):
    """Run the next attempt immediately."""


@dataclass(frozen=True)
class DelayRetry(ControlSignal):
    """
    Wait an exponential-with-jitter delay, then run the next attempt.

    Meant for eventually-consistent systems that need a moment to catch up
    (e.g. a folder that is not listed right after being created).
    """


@dataclass(frozen=True)
class Backoff(ControlSignal):
    """
    Back off before the next attempt.

    Attributes:
        duration: Seconds to wait. None lets the engine's configured
            BackoffStrategy decide.
    """

    duration: Optional[float] = None

    def __post_init__(self) -> None:
        if self.duration is None:
            return
        if isinstance(self.duration, bool) or not isinstance(self.duration, (int, float)):
            raise ConfigurationError(
                "Backoff duration must be a number of seconds",
                details={"duration": repr(self.duration)},
            )
        if self.duration < 0:
            raise ConfigurationError(
                "Backoff duration must be >= 0",
                details={"duration": self.duration},
            )


@dataclass(frozen=True)
class Reset(ControlSignal):
    """
    Restart the attempt counter at 0.

    Attributes:
        work: Optional replacement work function for the following attempts.
    """

    work: Optional[Callable[[], Any]] = None


class SignalRaised(BaseException):
    """Carrier that transports a ControlSignal from a hook to the engine."""

    def __init__(self, signal: ControlSignal):
        super().__init__(signal)
        self.signal = signal


def raise_signal(signal: ControlSignal) -> NoReturn:
    """Transfer control back to the engine loop."""
    raise SignalRaised(signal)


__all__ = [
    "Backoff",
    "ControlSignal",
    "DelayRetry",
    "Reset",
    "Retry",
    "SignalRaised",
    "Stop",
    "raise_signal",
]
