"""
Retry engine driven by hook-emitted control signals.

The engine runs a unit of work until a terminal outcome is reached. After
every attempt it hands an EventContext to the result hook (work returned) or
the exception hook (work raised), and the hook answers with a control
signal:

    Stop        accept the outcome and return
    Retry       run again right away
    DelayRetry  wait 2**attempt + jitter, then run again
    Backoff     wait (explicit duration or BackoffStrategy), then run again
    Reset       restart the attempt counter, optionally with new work

Errors listed with ``catch_exceptions`` are retried silently while budget
remains. Everything else reaches the exception hook, and is re-raised
unchanged unless the hook redirects control.

Usage:
    engine = (
        RetryEngine.build()
        .retries(3)
        .catch_exceptions([ConnectionError])
        .backoff_strategy(ExponentialBackoff())
        .result_hook(lambda ctx: ctx.backoff() if ctx.result is None else None)
    )
    value = engine.run(fetch_value)
"""

import inspect
import time
from typing import Any, Callable, Iterable, Optional, Sequence, Union

import structlog

from persevere.config import Settings
from persevere.config import settings as default_settings
from persevere.monitoring.metrics import (
    retry_attempts_total,
    retry_backoff_seconds,
    retry_runs_total,
    retry_signals_total,
)
from persevere.retry.backoff import BackoffStrategy, ExponentialBackoff
from persevere.retry.context import EventContext, RunState
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
    SignalRaised,
    Stop,
)

logger = structlog.get_logger(__name__)

Work = Callable[[], Any]
Hook = Callable[[EventContext], Optional[ControlSignal]]


def _describe(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or repr(func)


class RetryEngine:
    """
    Configurable retry/backoff executor.

    Configuration is fluent and write-once for hooks and the backoff
    strategy. It is frozen while ``run`` executes: any setter called from a
    hook raises ConfigurationError.

    An engine instance is not thread-safe. Attempts run sequentially on the
    calling thread and backoff blocks it with ``time.sleep``; callers that
    share an instance across threads must serialize ``run`` themselves.

    Attributes:
        settings: Settings providing defaults and backoff parameters
        delay_strategy: Exponential strategy used by DelayRetry and
            ``EventContext.exponential_backoff``
    """

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize retry engine.

        Args:
            settings: Library settings (defaults to the global instance)
        """
        self.settings = settings or default_settings

        # Run configuration
        self._max_retries: int = self.settings.DEFAULT_MAX_RETRIES
        self._catchable: tuple[type[Exception], ...] = ()
        self._short_circuit = False
        self._backoff_strategy: Optional[BackoffStrategy] = None
        self._result_hook: Optional[Hook] = None
        self._exception_hook: Optional[Hook] = None

        self.delay_strategy = ExponentialBackoff(
            base=self.settings.BACKOFF_BASE,
            max_jitter=self.settings.BACKOFF_MAX_JITTER,
            max_delay=self.settings.BACKOFF_MAX_DELAY,
        )

        # State of the most recent work function
        self._state: Optional[RunState] = None
        self._running = False

    @classmethod
    def build(cls, settings: Optional[Settings] = None) -> "RetryEngine":
        """Create an engine ready for fluent configuration."""
        return cls(settings)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def retries(self, retries: int) -> "RetryEngine":
        """
        Set how many additional attempts follow the first one.

        Raises:
            ConfigurationError: retries is not a non-negative integer
        """
        self._ensure_idle("retries")
        if isinstance(retries, bool) or not isinstance(retries, int):
            raise ConfigurationError(
                "Retry count must be an integer",
                details={"retries": repr(retries)},
            )
        if retries < 0:
            raise ConfigurationError(
                "Retry count must be >= 0",
                details={"retries": retries},
            )
        self._max_retries = retries
        return self

    def catch_exceptions(
        self, kinds: Union[type[Exception], Iterable[type[Exception]]]
    ) -> "RetryEngine":
        """
        Register error kinds that are suppressed and retried.

        Subclasses of a registered kind match too. Repeated calls merge.

        Raises:
            ConfigurationError: kinds is not an exception type or an
                iterable of exception types
        """
        self._ensure_idle("catch_exceptions")
        if isinstance(kinds, type):
            kinds = (kinds,)
        try:
            candidates = tuple(kinds)
        except TypeError as e:
            raise ConfigurationError(
                "catch_exceptions expects an exception type or an iterable of them",
                details={"kinds": repr(kinds)},
            ) from e

        for kind in candidates:
            if not (isinstance(kind, type) and issubclass(kind, Exception)):
                raise ConfigurationError(
                    "Only Exception subclasses can be caught",
                    details={"kind": repr(kind)},
                )

        self._catchable += tuple(k for k in candidates if k not in self._catchable)
        return self

    def short_circuit(self, enabled: bool = True) -> "RetryEngine":
        """Propagate the first error immediately, ignoring catchable kinds."""
        self._ensure_idle("short_circuit")
        self._short_circuit = bool(enabled)
        return self

    def backoff_strategy(self, strategy: BackoffStrategy) -> "RetryEngine":
        """
        Set the strategy consulted by ``EventContext.backoff()``.

        Raises:
            ConfigurationError: strategy already set or not a BackoffStrategy
        """
        self._ensure_idle("backoff_strategy")
        if self._backoff_strategy is not None:
            raise ConfigurationError(
                "Backoff strategy already specified",
                details={"current": repr(self._backoff_strategy)},
            )
        if not isinstance(strategy, BackoffStrategy):
            raise ConfigurationError(
                "Backoff strategy must be a BackoffStrategy instance",
                details={"strategy": repr(strategy)},
            )
        self._backoff_strategy = strategy
        return self

    def result_hook(self, hook: Hook) -> "RetryEngine":
        """Set the hook called after each attempt that returns normally."""
        self._ensure_idle("result_hook")
        if self._result_hook is not None:
            raise ConfigurationError("Result hook already specified")
        self._validate_hook(hook, "Result hook")
        self._result_hook = hook
        return self

    def exception_hook(self, hook: Hook) -> "RetryEngine":
        """Set the hook called when an error is about to propagate."""
        self._ensure_idle("exception_hook")
        if self._exception_hook is not None:
            raise ConfigurationError("Exception hook already specified")
        self._validate_hook(hook, "Exception hook")
        self._exception_hook = hook
        return self

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def run(self, work: Union[Work, Sequence[Work]]) -> Any:
        """
        Run work under the configured retry policy.

        Args:
            work: Zero-argument callable, or a list/tuple of them. Each
                callable is run independently with its own run state.

        Returns:
            The work's final result. For a sequence, a list of results in
            call order, except that a one-element sequence returns its
            result unwrapped.

        Raises:
            ConfigurationError: work is not callable without arguments, or
                the engine is already running
            MissingBackoffStrategyError: strategy-driven backoff requested
                without a configured strategy
            Exception: the work's own error, unchanged, when no retry or
                hook intercepted it
        """
        if self._running:
            raise ConfigurationError("run() called while a run is already in progress")

        works = self._normalize_work(work)

        self._running = True
        try:
            results = [self._run_work(item) for item in works]
        finally:
            self._running = False

        return results[0] if len(results) == 1 else results

    def invokable(self, new_work: Work) -> "RetryEngine":
        """
        Swap the work function of the run in progress.

        Meant to be called from a hook, typically right before a reset.

        Raises:
            ConfigurationError: no run in progress or new_work not callable
        """
        if not self._running or self._state is None:
            raise ConfigurationError("invokable() can only swap work during a run")
        self.validate_work(new_work)
        logger.info(
            "Swapping work function",
            previous=_describe(self._state.work),
            replacement=_describe(new_work),
        )
        self._state.work = new_work
        return self

    @staticmethod
    def validate_work(work: Any) -> None:
        """
        Check that work can be called with no arguments.

        Raises:
            ConfigurationError: work is not a zero-argument callable
        """
        if not callable(work):
            raise ConfigurationError(
                "Work must be a callable",
                details={"work": repr(work)},
            )
        try:
            signature = inspect.signature(work)
        except (TypeError, ValueError):
            # Some builtins expose no signature; trust the caller
            return
        try:
            signature.bind()
        except TypeError as e:
            raise ConfigurationError(
                "Work must be callable without arguments",
                details={"work": _describe(work), "signature": str(signature)},
            ) from e

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def attempts(self) -> int:
        """Attempts executed for the most recent work function."""
        return self._state.attempts if self._state else 0

    @property
    def retry_count(self) -> int:
        return max(self.attempts - 1, 0)

    @property
    def attempt_index(self) -> int:
        return self._state.attempt_index if self._state else 0

    @property
    def last_result(self) -> Any:
        return self._state.result if self._state else None

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._state.error if self._state else None

    @property
    def total_backoff(self) -> float:
        return self._state.total_backoff if self._state else 0.0

    @property
    def last_backoff(self) -> float:
        return self._state.last_backoff if self._state else 0.0

    @property
    def elapsed(self) -> float:
        return self._state.elapsed if self._state else 0.0

    @property
    def stats(self) -> RunStats:
        """Snapshot of the most recent work function's run."""
        state = self._state
        if state is None:
            return RunStats(attempts=0, retry_count=0, attempt_index=0, max_retries=self._max_retries)
        return RunStats(
            attempts=state.attempts,
            retry_count=max(state.attempts - 1, 0),
            attempt_index=state.attempt_index,
            max_retries=self._max_retries,
            elapsed=state.elapsed,
            total_backoff=state.total_backoff,
            last_backoff=state.last_backoff,
            result=state.result,
            error=state.error,
            stopped=state.stopped,
        )

    # ------------------------------------------------------------------
    # Attempt loop
    # ------------------------------------------------------------------

    def _run_work(self, work: Work) -> Any:
        state = RunState(work=work)
        self._state = state

        logger.debug(
            "Starting run",
            work=_describe(work),
            max_retries=self._max_retries,
            catchable=[k.__name__ for k in self._catchable],
            short_circuit=self._short_circuit,
        )

        try:
            while state.attempt_index <= self._max_retries:
                signal = self._attempt(state)
                self._record_signal(signal)

                if isinstance(signal, Stop):
                    state.stopped = True
                    break

                self._interpret(signal, state)
                state.attempt_index += 1
        except Exception:
            self._record_run("raised")
            raise

        state.attempt_index = min(state.attempt_index, self._max_retries)

        if state.error is not None and not state.stopped:
            # Budget ran out while the hook kept asking for more attempts
            logger.warning(
                "Retries exhausted",
                work=_describe(state.work),
                attempts=state.attempts,
                error_type=type(state.error).__name__,
            )
            self._record_run("raised")
            raise state.error

        logger.debug(
            "Run finished",
            work=_describe(state.work),
            attempts=state.attempts,
            stopped=state.stopped,
            total_backoff=state.total_backoff,
        )
        self._record_run("returned")
        return state.result

    def _attempt(self, state: RunState) -> ControlSignal:
        """Execute one attempt plus its hook and return the resulting signal."""
        state.attempts += 1
        started = time.monotonic()

        try:
            result = state.work()
        except PersevereError:
            raise
        except Exception as e:
            state.record_error(e, time.monotonic() - started)
            self._record_attempt("error")
            return self._handle_error(state, e)
        except SignalRaised as raised:
            raise EngineInvariantError(
                "Control signals can only be emitted from hooks",
                details={"signal": raised.signal.name, "work": _describe(state.work)},
            ) from None

        state.record_result(result, time.monotonic() - started)
        self._record_attempt("result")

        try:
            signal = self._invoke_hook(self._result_hook, state)
        except PersevereError:
            raise
        except Exception as e:
            logger.info(
                "Result hook raised",
                attempt_index=state.attempt_index,
                error_type=type(e).__name__,
            )
            state.record_error(e)
            return self._handle_error(state, e)

        # No hook, or a hook without an opinion, accepts the result
        return signal if signal is not None else Stop()

    def _handle_error(self, state: RunState, error: Exception) -> ControlSignal:
        """Decide what follows a failed attempt, or re-raise the error."""
        if self._is_retryable(state, error):
            logger.info(
                "Suppressed error, retrying",
                attempt_index=state.attempt_index,
                max_retries=self._max_retries,
                error_type=type(error).__name__,
                error=str(error),
            )
            return Retry()

        if self._exception_hook is not None:
            try:
                signal = self._invoke_hook(self._exception_hook, state)
            except PersevereError:
                raise
            except Exception as hook_error:
                state.record_error(hook_error)
                if self._is_retryable(state, hook_error):
                    return Retry()
                logger.warning(
                    "Exception hook raised",
                    attempt_index=state.attempt_index,
                    error_type=type(hook_error).__name__,
                )
                raise

            if signal is not None:
                return signal

        logger.warning(
            "Propagating work error",
            attempt_index=state.attempt_index,
            max_retries=self._max_retries,
            error_type=type(error).__name__,
            suppressible=isinstance(error, self._catchable),
            short_circuit=self._short_circuit,
        )
        raise error

    def _invoke_hook(self, hook: Optional[Hook], state: RunState) -> Optional[ControlSignal]:
        if hook is None:
            return None

        context = EventContext(self, state)
        try:
            returned = hook(context)
        except SignalRaised as raised:
            return raised.signal
        finally:
            context.expire()

        if returned is None or isinstance(returned, ControlSignal):
            return returned
        raise ConfigurationError(
            "Hooks must return None or a ControlSignal",
            details={"hook": _describe(hook), "returned": type(returned).__name__},
        )

    def _interpret(self, signal: ControlSignal, state: RunState) -> None:
        """Apply a non-Stop signal to the run state."""
        state.last_backoff = 0.0
        has_next = state.attempt_index < self._max_retries

        if isinstance(signal, Retry):
            logger.debug("Retry requested", attempt_index=state.attempt_index)

        elif isinstance(signal, DelayRetry):
            if has_next:
                self._sleep(state, self.delay_strategy.compute(state.attempt_index), signal)

        elif isinstance(signal, Backoff):
            if signal.duration is None and self._backoff_strategy is None:
                raise MissingBackoffStrategyError(state.attempt_index)
            if has_next:
                if signal.duration is not None:
                    duration = signal.duration
                else:
                    duration = self._backoff_strategy.compute(state.attempt_index)
                self._sleep(state, duration, signal)

        elif isinstance(signal, Reset):
            if signal.work is not None:
                self.validate_work(signal.work)
                state.work = signal.work
            logger.info(
                "Resetting attempt counter",
                attempts=state.attempts,
                work=_describe(state.work),
                work_replaced=signal.work is not None,
            )
            # The loop increment brings it back to 0
            state.attempt_index = -1

        else:
            raise EngineInvariantError(
                "Unknown control signal",
                details={"signal": repr(signal)},
            )

    def _sleep(self, state: RunState, duration: float, signal: ControlSignal) -> None:
        logger.info(
            f"Attempt {state.attempt_index + 1} of {self._max_retries + 1}: "
            f"backing off for {duration:.3f}s",
            signal=signal.name,
            attempt_index=state.attempt_index,
            duration=duration,
            total_backoff=state.total_backoff + duration,
        )
        time.sleep(duration)
        state.record_backoff(duration)
        if self.settings.PROMETHEUS_ENABLED:
            retry_backoff_seconds.observe(duration)

    def _is_retryable(self, state: RunState, error: Exception) -> bool:
        return (
            not self._short_circuit
            and state.attempt_index < self._max_retries
            and isinstance(error, self._catchable)
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _normalize_work(self, work: Union[Work, Sequence[Work]]) -> list[Work]:
        if callable(work):
            works = [work]
        elif isinstance(work, (list, tuple)):
            works = list(work)
        else:
            raise ConfigurationError(
                "run() expects a callable or a list/tuple of callables",
                details={"work_type": type(work).__name__},
            )

        for item in works:
            self.validate_work(item)
        return works

    def _ensure_idle(self, setting: str) -> None:
        if self._running:
            raise ConfigurationError(
                "Configuration cannot change while a run is in progress",
                details={"setting": setting},
            )

    @staticmethod
    def _validate_hook(hook: Any, label: str) -> None:
        if not callable(hook):
            raise ConfigurationError(
                f"{label} must be callable",
                details={"hook": repr(hook)},
            )
        try:
            signature = inspect.signature(hook)
        except (TypeError, ValueError):
            return
        try:
            signature.bind(None)
        except TypeError as e:
            raise ConfigurationError(
                f"{label} must accept the event context as its only argument",
                details={"hook": _describe(hook), "signature": str(signature)},
            ) from e

    def _record_attempt(self, outcome: str) -> None:
        if self.settings.PROMETHEUS_ENABLED:
            retry_attempts_total.labels(outcome=outcome).inc()

    def _record_signal(self, signal: ControlSignal) -> None:
        if self.settings.PROMETHEUS_ENABLED:
            retry_signals_total.labels(signal=signal.name).inc()

    def _record_run(self, outcome: str) -> None:
        if self.settings.PROMETHEUS_ENABLED:
            retry_runs_total.labels(outcome=outcome).inc()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"max_retries={self._max_retries}, "
            f"catchable={[k.__name__ for k in self._catchable]}, "
            f"short_circuit={self._short_circuit})"
        )
