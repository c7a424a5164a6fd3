"""
Shared test fixtures
"""

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from dusk.config import set_config
from dusk.events import default_registry


# Upper bound on how long a stalled response holds its connection
STALL_SECONDS = 5


@pytest.fixture(autouse=True)
def reset_defaults():
    """Isolate tests from global listeners and the default config"""
    default_registry.clear()
    set_config(None)
    yield
    default_registry.clear()
    set_config(None)


class _StallingHandler(BaseHTTPRequestHandler):
    """
    /ok answers at once, /slow-headers never sends a status line, and
    /slow-body and /slow-snappy promise 10 body bytes but send 2
    """

    protocol_version = "HTTP/1.1"
    release = threading.Event()

    def do_GET(self) -> None:
        if self.path == "/ok":
            self.send_response(200)
            self.send_header("Content-Length", "2")
            self.end_headers()
            self.wfile.write(b"ok")
            return

        if self.path == "/slow-headers":
            self.release.wait(STALL_SECONDS)
            self.close_connection = True
            return

        self.send_response(200)
        if self.path == "/slow-snappy":
            self.send_header("Content-Encoding", "snappy")
        self.send_header("Content-Length", "10")
        self.end_headers()
        self.wfile.write(b"ab")
        self.wfile.flush()
        self.release.wait(STALL_SECONDS)
        self.close_connection = True

    def log_message(self, format: str, *args: object) -> None:
        return


@pytest.fixture
def stalling_server(monkeypatch):
    """Base URL of a local HTTP server whose slow paths stall mid-response"""
    monkeypatch.setenv("no_proxy", "127.0.0.1")
    handler = _StallingHandler
    handler.release = threading.Event()
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        handler.release.set()
        server.shutdown()
        server.server_close()
        thread.join(timeout=1)
