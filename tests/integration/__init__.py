"""
Integration tests for persevere.

Test components together against real I/O:
- HTTP request runner against a local threaded HTTP server
  (marked with @pytest.mark.integration)
"""
