"""
Unit tests for persevere.

Test individual components in isolation:
- Control signals and the event context
- Backoff strategies
- Retry engine (attempt loop, hooks, suppression, reset)
- HTTP request runner (against httpx.MockTransport)
- Settings and logging configuration
"""
