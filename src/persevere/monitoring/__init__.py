"""Monitoring and metrics instrumentation for the retry engine.

Exports custom Prometheus metrics for operational monitoring and alerting.
"""

from persevere.monitoring.metrics import (
    retry_attempts_total,
    retry_backoff_seconds,
    retry_runs_total,
    retry_signals_total,
)

__all__ = [
    "retry_attempts_total",
    "retry_signals_total",
    "retry_backoff_seconds",
    "retry_runs_total",
]
