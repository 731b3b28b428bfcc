"""HTTP request runner with per-status-code response handlers."""

from persevere.http.models import HttpRequest
from persevere.http.runner import HttpRequestRunner, ResponseHandler

__all__ = ["HttpRequest", "HttpRequestRunner", "ResponseHandler"]
