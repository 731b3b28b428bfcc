"""Integration test fixtures (local HTTP server).

Provides a throwaway HTTP server on 127.0.0.1 whose replies are scripted
per test, so the runner is exercised over real sockets without any
external service.
"""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class ScriptedServer(ThreadingHTTPServer):
    """HTTP server replying with a scripted sequence of status codes.

    Once the script runs out, the last status is repeated. Every request
    line is recorded in ``requests``.
    """

    daemon_threads = True

    def __init__(self):
        super().__init__(("127.0.0.1", 0), ScriptedHandler)
        self.script: list[tuple[int, dict[str, str]]] = [(200, {})]
        self.requests: list[tuple[str, str]] = []
        self.lock = threading.Lock()

    @property
    def base_url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def reply_with(self, *replies) -> None:
        """Set the reply script; items are a status code or (status, headers)."""
        self.script = [r if isinstance(r, tuple) else (r, {}) for r in replies]

    def next_reply(self, method: str, path: str) -> tuple[int, dict[str, str]]:
        with self.lock:
            self.requests.append((method, path))
            index = min(len(self.requests), len(self.script)) - 1
            return self.script[index]


class ScriptedHandler(BaseHTTPRequestHandler):
    def _reply(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)

        status, headers = self.server.next_reply(self.command, self.path)
        body = f'{{"attempt": {len(self.server.requests)}}}'.encode()

        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        for name, value in headers.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    do_GET = _reply
    do_POST = _reply
    do_PUT = _reply
    do_DELETE = _reply

    def log_message(self, format, *args):
        pass


@pytest.fixture
def http_server():
    """Running ScriptedServer, shut down after the test."""
    server = ScriptedServer()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server

    server.shutdown()
    server.server_close()
    thread.join(timeout=5)
