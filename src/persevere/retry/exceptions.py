"""
Retry engine exceptions.

These are the errors the engine itself raises. They are never retried and
never matched against the caller's catchable error kinds: a configuration
mistake or a broken hook wiring should surface immediately instead of being
hidden behind a retry budget.

Errors raised by the work function are NOT wrapped in any of these; the
engine re-raises them unchanged.
"""

from typing import Any


class PersevereError(Exception):
    """
    Base exception for all engine errors.

    Attributes:
        message: Human-readable error description
        details: Structured error data for logging
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PersevereError):
    """
    Raised on caller misuse of the configuration or invocation surface.

    Examples:
    - Non-integer or negative retry budget
    - Registering a hook or backoff strategy twice
    - A work function that cannot be called without arguments
    - Changing configuration while a run is in progress
    """
    pass


class EngineInvariantError(PersevereError):
    """
    Raised when hooks drive the engine into a state it cannot honor.

    Signals a programming error in hook wiring, e.g. emitting a signal from
    an EventContext whose attempt has already been handled.
    """
    pass


class MissingBackoffStrategyError(EngineInvariantError):
    """
    Raised when a hook asks for a strategy-driven backoff but no
    BackoffStrategy was configured on the engine.
    """

    def __init__(self, attempt_index: int):
        super().__init__(
            "Backoff signal received, but no backoff strategy is configured",
            details={"attempt_index": attempt_index},
        )
