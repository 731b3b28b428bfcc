"""
HTTP request runner built on the retry engine.

Sends one request per attempt with an httpx.Client and routes each response
to a handler registered for its status code. Handlers receive the
EventContext plus the response and steer the engine exactly like any other
hook, e.g.::

    runner = HttpRequestRunner().retries(4).catch_exceptions(httpx.TransportError)
    runner.add_handler(429, lambda ctx, response: ctx.exponential_backoff())
    runner.add_handler([502, 503], lambda ctx, response: ctx.delay_retry())
    response = runner.run_request(HttpRequest(url="https://api.example.com/items"))

Responses whose status code has no handler are accepted as-is.
"""

import inspect
from collections.abc import Iterable
from typing import Any, Callable, Optional, Union

import httpx
import structlog

from persevere.config import Settings
from persevere.http.models import HttpRequest
from persevere.retry.context import EventContext
from persevere.retry.engine import RetryEngine
from persevere.retry.exceptions import ConfigurationError
from persevere.retry.signals import ControlSignal, Stop

logger = structlog.get_logger(__name__)

ResponseHandler = Callable[[EventContext, httpx.Response], Optional[ControlSignal]]


class HttpRequestRunner(RetryEngine):
    """
    Retry engine specialised for HTTP requests.

    The runner installs its own result hook to dispatch responses, so
    ``result_hook`` cannot be set on it; register status-code handlers with
    ``add_handler`` instead. Retry budget, catchable errors, exception hook
    and backoff strategy are configured as on any RetryEngine.

    Attributes:
        client: httpx client used to send requests
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize HTTP request runner.

        Args:
            settings: Library settings (timeouts, redirects, backoff)
            client: Pre-configured httpx client. When omitted the runner
                creates one from settings and closes it in ``close()``.
        """
        super().__init__(settings)
        self._handlers: dict[int, ResponseHandler] = {}
        self._owns_client = client is None
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(self.settings.HTTP_TIMEOUT),
            follow_redirects=self.settings.HTTP_FOLLOW_REDIRECTS,
        )
        self.result_hook(self._dispatch_response)

        logger.debug(
            "HttpRequestRunner initialized",
            timeout=self.settings.HTTP_TIMEOUT,
            follow_redirects=self.settings.HTTP_FOLLOW_REDIRECTS,
            owns_client=self._owns_client,
        )

    def add_handler(
        self,
        status_codes: Union[int, Iterable[int]],
        handler: ResponseHandler,
    ) -> "HttpRequestRunner":
        """
        Register a handler for one or more HTTP status codes.

        Args:
            status_codes: Status code or iterable of status codes
            handler: ``handler(ctx, response)``; may return or raise a signal

        Returns:
            itself for chaining

        Raises:
            ConfigurationError: invalid code, non-callable handler, or a
                code that already has a handler
        """
        self._ensure_idle("add_handler")
        if isinstance(status_codes, int) and not isinstance(status_codes, bool):
            codes = [status_codes]
        elif isinstance(status_codes, Iterable) and not isinstance(status_codes, (str, bytes)):
            codes = list(status_codes)
        else:
            raise ConfigurationError(
                "Status codes must be an int or an iterable of ints",
                details={"status_codes": repr(status_codes)},
            )

        for code in codes:
            if isinstance(code, bool) or not isinstance(code, int) or not 100 <= code <= 599:
                raise ConfigurationError(
                    "Invalid HTTP status code",
                    details={"status_code": repr(code)},
                )
            if code in self._handlers:
                raise ConfigurationError(
                    "Response handler already registered for status code",
                    details={"status_code": code},
                )

        self._validate_handler(handler)
        for code in codes:
            self._handlers[code] = handler
        return self

    def run_request(self, request: Union[HttpRequest, str]) -> httpx.Response:
        """
        Send a request under the configured retry policy.

        Args:
            request: HttpRequest, or a URL for a plain GET

        Returns:
            The accepted httpx.Response

        Raises:
            ConfigurationError: request is neither an HttpRequest nor a URL
            httpx.HTTPError: transport errors not suppressed by the policy
        """
        if isinstance(request, str):
            request = HttpRequest(url=request)
        if not isinstance(request, HttpRequest):
            raise ConfigurationError(
                "Expected an HttpRequest or a URL",
                details={"request_type": type(request).__name__},
            )

        def send() -> httpx.Response:
            return self._send(request)

        return self.run(send)

    def close(self) -> None:
        """Close the underlying client if the runner created it."""
        if self._owns_client:
            logger.debug("Closing httpx client")
            self.client.close()

    def __enter__(self) -> "HttpRequestRunner":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _send(self, request: HttpRequest) -> httpx.Response:
        kwargs: dict[str, Any] = {}
        if request.timeout is not None:
            kwargs["timeout"] = request.timeout

        logger.debug(
            "Sending HTTP request",
            method=request.method,
            url=request.url,
            attempt_index=self.attempt_index,
        )
        return self.client.request(
            request.method,
            request.url,
            headers=request.headers or None,
            params=request.params or None,
            json=request.json_body,
            content=request.content,
            **kwargs,
        )

    def _dispatch_response(self, ctx: EventContext) -> Optional[ControlSignal]:
        """Result hook: hand the response to the handler for its status code."""
        response = ctx.result
        if response is None:
            raise ConfigurationError(
                "No response received from request, check the request configuration"
            )

        handler = self._handlers.get(response.status_code)
        if handler is None:
            logger.debug(
                "No response handler for status code, accepting response",
                status_code=response.status_code,
            )
            return Stop()

        logger.debug(
            "Dispatching response to handler",
            status_code=response.status_code,
            attempt_index=ctx.attempt_index,
        )
        signal = handler(ctx, response)
        return Stop() if signal is None else signal

    @staticmethod
    def _validate_handler(handler: Any) -> None:
        if not callable(handler):
            raise ConfigurationError(
                "Response handler must be callable",
                details={"handler": repr(handler)},
            )
        try:
            signature = inspect.signature(handler)
        except (TypeError, ValueError):
            return
        try:
            signature.bind(None, None)
        except TypeError as e:
            raise ConfigurationError(
                "Response handler must accept (ctx, response)",
                details={"handler": repr(handler), "signature": str(signature)},
            ) from e
