"""
Run state and the event context handed to hooks.

RunState is owned by the engine's ``run`` call for one work function.
EventContext is the only window a hook gets into it: a snapshot of the
statistics taken when the attempt finished, plus methods that send a
control signal back to the engine.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, NoReturn, Optional

from persevere.retry.exceptions import EngineInvariantError
from persevere.retry.signals import (
    Backoff,
    ControlSignal,
    DelayRetry,
    Reset,
    Retry,
    Stop,
    raise_signal,
)

if TYPE_CHECKING:
    from persevere.retry.engine import RetryEngine


@dataclass
class RunState:
    """Mutable bookkeeping for one work function inside ``run``."""

    work: Callable[[], Any]
    attempt_index: int = 0
    attempts: int = 0
    result: Any = None
    error: Optional[BaseException] = None
    elapsed: float = 0.0
    total_backoff: float = 0.0
    last_backoff: float = 0.0
    stopped: bool = False

    def record_result(self, result: Any, elapsed: float) -> None:
        self.result = result
        self.error = None
        self.elapsed = elapsed

    def record_error(self, error: BaseException, elapsed: Optional[float] = None) -> None:
        self.result = None
        self.error = error
        if elapsed is not None:
            self.elapsed = elapsed

    def record_backoff(self, duration: float) -> None:
        self.last_backoff = duration
        self.total_backoff += duration


class EventContext:
    """
    Read view plus signal emitter passed to result and exception hooks.

    The statistics are captured when the context is built, so they describe
    the attempt that triggered the hook. A context expires as soon as its
    hook returns; emitting a signal from an expired context raises
    EngineInvariantError.
    """

    __slots__ = (
        "_engine",
        "_attempt_index",
        "_attempts",
        "_max_retries",
        "_elapsed",
        "_total_backoff",
        "_last_backoff",
        "_result",
        "_error",
        "_active",
    )

    def __init__(self, engine: "RetryEngine", state: RunState):
        self._engine = engine
        self._attempt_index = state.attempt_index
        self._attempts = state.attempts
        self._max_retries = engine.max_retries
        self._elapsed = state.elapsed
        self._total_backoff = state.total_backoff
        self._last_backoff = state.last_backoff
        self._result = state.result if state.error is None else None
        self._error = state.error
        self._active = True

    # --- statistics ---

    @property
    def attempt_index(self) -> int:
        return self._attempt_index

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def remaining(self) -> int:
        """Retries left after the current attempt."""
        return max(self._max_retries - self._attempt_index, 0)

    @property
    def elapsed(self) -> float:
        return self._elapsed

    @property
    def total_backoff(self) -> float:
        return self._total_backoff

    @property
    def last_backoff(self) -> float:
        return self._last_backoff

    @property
    def result(self) -> Any:
        return self._result

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    # --- signals ---

    def stop(self) -> NoReturn:
        self._emit(Stop())

    # Accepting a result and giving up on a failure both end the loop
    accept = stop
    fail = stop

    def retry(self) -> NoReturn:
        self._emit(Retry())

    def delay_retry(self) -> NoReturn:
        self._emit(DelayRetry())

    def backoff(self) -> NoReturn:
        """
        Back off for as long as the engine's BackoffStrategy says.

        Without a configured strategy the engine raises
        MissingBackoffStrategyError, on the final attempt too, even though no
        wait would follow it.
        """
        self._emit(Backoff())

    def static_backoff(self, duration: float) -> NoReturn:
        """Back off ``duration`` seconds; a negative value is a ConfigurationError."""
        self._emit(Backoff(duration))

    def exponential_backoff(self) -> NoReturn:
        """Back off ``2 ** attempt_index`` seconds plus jitter."""
        self._emit(Backoff(self._engine.delay_strategy.calculate(self._attempt_index)))

    def reset(self) -> NoReturn:
        self._emit(Reset())

    def reset_and_run(self, new_work: Callable[[], Any]) -> NoReturn:
        """Reset the attempt counter and run ``new_work`` from now on."""
        self._engine.validate_work(new_work)
        self._emit(Reset(new_work))

    def expire(self) -> None:
        self._active = False

    def _emit(self, signal: ControlSignal) -> NoReturn:
        if not self._active:
            raise EngineInvariantError(
                "Signal emitted from an expired event context",
                details={"signal": signal.name, "attempt_index": self._attempt_index},
            )
        raise_signal(signal)

    def __repr__(self) -> str:
        return (
            f"EventContext(attempt_index={self._attempt_index}, "
            f"max_retries={self._max_retries}, "
            f"error={type(self._error).__name__ if self._error else None})"
        )
