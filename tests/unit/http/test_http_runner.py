"""
Unit tests for HttpRequestRunner.

Requests go through httpx.MockTransport; no network access.
"""

import json

import httpx
import pytest

from persevere.http import HttpRequest, HttpRequestRunner
from persevere.retry.exceptions import ConfigurationError
from persevere.retry.signals import Retry


class StatusSequence:
    """MockTransport handler replying with a fixed sequence of status codes."""

    def __init__(self, *status_codes: int):
        self.status_codes = list(status_codes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.status_codes) - 1)
        status = self.status_codes[index]
        return httpx.Response(status, json={"attempt": len(self.requests)})


def make_runner(test_settings, handler) -> HttpRequestRunner:
    client = httpx.Client(transport=httpx.MockTransport(handler), base_url="https://api.test")
    return HttpRequestRunner(test_settings, client=client)


# ============================================================================
# Response Dispatch
# ============================================================================


def test_response_without_handler_is_accepted(test_settings):
    transport = StatusSequence(404)
    runner = make_runner(test_settings, transport).retries(3)

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 404
    assert len(transport.requests) == 1


def test_handler_retries_until_success(test_settings):
    transport = StatusSequence(503, 503, 200)
    runner = make_runner(test_settings, transport).retries(3)
    runner.add_handler(503, lambda ctx, response: ctx.retry())

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 200
    assert response.json() == {"attempt": 3}
    assert runner.attempts == 3
    assert runner.attempt_index == 2


def test_handler_may_return_signal(test_settings):
    transport = StatusSequence(500, 201)
    runner = make_runner(test_settings, transport).retries(1)
    runner.add_handler(500, lambda ctx, response: Retry())

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 201


def test_handler_returning_none_accepts_response(test_settings):
    seen = []
    transport = StatusSequence(500, 200)
    runner = make_runner(test_settings, transport).retries(2)
    runner.add_handler(500, lambda ctx, response: seen.append(ctx.attempt_index))

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 500
    assert seen == [0]


def test_handler_receives_context_and_response(test_settings):
    captured = {}

    def handler(ctx, response):
        captured["remaining"] = ctx.remaining
        captured["result"] = ctx.result
        captured["response"] = response

    runner = make_runner(test_settings, StatusSequence(418)).retries(2)
    runner.add_handler(418, handler)

    response = runner.run_request(HttpRequest(url="/teapot"))

    assert captured["remaining"] == 2
    assert captured["result"] is response
    assert captured["response"] is response


def test_one_handler_for_several_codes(test_settings):
    transport = StatusSequence(502, 504, 200)
    runner = make_runner(test_settings, transport).retries(5)
    runner.add_handler([502, 503, 504], lambda ctx, response: ctx.retry())

    assert runner.run_request(HttpRequest(url="/items")).status_code == 200
    assert len(transport.requests) == 3


def test_static_backoff_on_rate_limit(test_settings, no_sleep):
    transport = StatusSequence(429, 200)
    runner = make_runner(test_settings, transport).retries(2)
    runner.add_handler(429, lambda ctx, response: ctx.static_backoff(0.5))

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 200
    no_sleep.assert_called_once_with(0.5)
    assert runner.total_backoff == 0.5


def test_retries_exhausted_returns_last_response(test_settings):
    transport = StatusSequence(503)
    runner = make_runner(test_settings, transport).retries(2)
    runner.add_handler(503, lambda ctx, response: ctx.retry())

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 503
    assert response.json() == {"attempt": 3}
    assert runner.attempt_index == 2


# ============================================================================
# Transport Errors
# ============================================================================


def test_suppressed_transport_error_is_retried(test_settings):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200)

    runner = make_runner(test_settings, handler).retries(1).catch_exceptions(httpx.TransportError)

    response = runner.run_request(HttpRequest(url="/items"))

    assert response.status_code == 200
    assert len(calls) == 2


def test_unsuppressed_transport_error_propagates(test_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    runner = make_runner(test_settings, handler).retries(3)

    with pytest.raises(httpx.ConnectError):
        runner.run_request(HttpRequest(url="/items"))

    assert runner.attempts == 1


def test_exception_hook_can_accept_transport_failure(test_settings):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    runner = make_runner(test_settings, handler).exception_hook(lambda ctx: ctx.accept())

    assert runner.run_request(HttpRequest(url="/items")) is None
    assert isinstance(runner.last_error, httpx.ReadTimeout)


# ============================================================================
# Request Building
# ============================================================================


def test_url_string_sends_get(test_settings):
    transport = StatusSequence(200)
    runner = make_runner(test_settings, transport)

    runner.run_request("/health")

    request = transport.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/health"


def test_request_fields_are_sent(test_settings):
    transport = StatusSequence(201)
    runner = make_runner(test_settings, transport)

    runner.run_request(
        HttpRequest(
            method="post",
            url="/items",
            headers={"X-Token": "secret"},
            params={"page": 2},
            json_body={"name": "widget"},
            timeout=1.5,
        )
    )

    request = transport.requests[0]
    assert request.method == "POST"
    assert request.headers["X-Token"] == "secret"
    assert request.url.params["page"] == "2"
    assert json.loads(request.content) == {"name": "widget"}


def test_same_request_sent_on_every_attempt(test_settings):
    transport = StatusSequence(503, 200)
    runner = make_runner(test_settings, transport).retries(1)
    runner.add_handler(503, lambda ctx, response: ctx.retry())

    runner.run_request(HttpRequest(method="PUT", url="/items/1", content=b"payload"))

    assert [r.content for r in transport.requests] == [b"payload", b"payload"]


def test_invalid_request_type(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))

    with pytest.raises(ConfigurationError, match="Expected an HttpRequest"):
        runner.run_request({"url": "/items"})


def test_plain_work_without_response_rejected(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))

    with pytest.raises(ConfigurationError, match="No response received"):
        runner.run(lambda: None)


# ============================================================================
# Handler Registration
# ============================================================================


def test_add_handler_chains(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))

    assert runner.add_handler(500, lambda ctx, response: None) is runner


@pytest.mark.parametrize("codes", [42, 600, True, "503", [200, "201"], 3.5])
def test_invalid_status_codes_rejected(test_settings, codes):
    runner = make_runner(test_settings, StatusSequence(200))

    with pytest.raises(ConfigurationError):
        runner.add_handler(codes, lambda ctx, response: None)


def test_duplicate_status_code_rejected(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))
    runner.add_handler([500, 503], lambda ctx, response: None)

    with pytest.raises(ConfigurationError, match="already registered"):
        runner.add_handler(503, lambda ctx, response: None)


def test_non_callable_handler_rejected(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))

    with pytest.raises(ConfigurationError, match="callable"):
        runner.add_handler(500, "retry")


def test_handler_with_wrong_arity_rejected(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))

    with pytest.raises(ConfigurationError, match=r"\(ctx, response\)"):
        runner.add_handler(500, lambda ctx: None)


def test_result_hook_is_reserved(test_settings):
    runner = make_runner(test_settings, StatusSequence(200))

    with pytest.raises(ConfigurationError):
        runner.result_hook(lambda ctx: None)


# ============================================================================
# Client Lifecycle
# ============================================================================


def test_owned_client_is_closed(test_settings):
    runner = HttpRequestRunner(test_settings)

    runner.close()

    assert runner.client.is_closed


def test_owned_client_uses_settings(test_settings):
    with HttpRequestRunner(test_settings) as runner:
        assert runner.client.timeout == httpx.Timeout(5.0)
        assert runner.client.follow_redirects is True

    assert runner.client.is_closed


def test_injected_client_left_open(test_settings):
    client = httpx.Client(transport=httpx.MockTransport(StatusSequence(200)))

    with HttpRequestRunner(test_settings, client=client):
        pass

    assert not client.is_closed
    client.close()
