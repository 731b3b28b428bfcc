"""
persevere: retry and backoff for unreliable calls.

Runs a unit of work until it produces an acceptable outcome, letting
caller-supplied hooks decide after each attempt whether to accept, retry,
wait, back off, or start over. Includes an HTTP request runner that
dispatches responses to per-status-code handlers.

Architecture: synchronous retry engine + pluggable backoff strategies +
httpx-based request runner
"""

__version__ = "0.1.0"
