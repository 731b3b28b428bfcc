"""Custom Prometheus metrics for the retry engine.

Collectors are registered on the default prometheus_client registry; expose
them with ``prometheus_client.start_http_server`` or any WSGI/ASGI exporter.
Alert rules should be configured for:
- retry_runs_total{outcome="raised"} (work failing after all retries)
- retry_backoff_seconds (time lost waiting on unstable dependencies)
"""

from prometheus_client import Counter, Histogram

# === Attempt Metrics ===

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total work function attempts by outcome",
    ["outcome"],
)
"""
Attempts counter.

Labels:
- outcome: result (work returned), error (work or hook raised)
"""

retry_signals_total = Counter(
    "retry_signals_total",
    "Total control signals interpreted by the engine",
    ["signal"],
)
"""
Control signals counter.

Labels:
- signal: stop, retry, delayretry, backoff, reset
"""

# === Backoff Metrics ===

retry_backoff_seconds = Histogram(
    "retry_backoff_seconds",
    "Seconds slept between attempts",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
"""
Backoff/delay durations.

Includes both strategy-driven backoff and delay_retry waits.
"""

# === Run Metrics ===

retry_runs_total = Counter(
    "retry_runs_total",
    "Total work function runs by terminal outcome",
    ["outcome"],
)
"""
Runs counter, one per work function passed to ``run``.

Labels:
- outcome: returned (a value was returned), raised (the work error propagated)
"""
