import asyncio
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from fenrir.backends import (
    AsyncHttpBackend,
    BackendError,
    HttpBackend,
    NoopBackend,
    basic_credentials,
    push_url,
)
from fenrir.types import AuthenticationMethod


class _Recorder:
    def __init__(self):
        self.requests = []
        self.status = 204
        self.url = ""


@pytest.fixture
def server():
    recorder = _Recorder()

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self):
            length = int(self.headers.get("Content-Length", 0))
            body = self.rfile.read(length)
            headers = {key.lower(): value for key, value in self.headers.items()}
            recorder.requests.append((self.path, headers, body))
            self.send_response(recorder.status)
            self.send_header("Content-Length", "0")
            self.end_headers()

        def log_message(self, *args):
            pass

    httpd = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    recorder.url = f"http://127.0.0.1:{httpd.server_address[1]}"
    yield recorder
    httpd.shutdown()
    httpd.server_close()


def test_noop_backend_without_credentials():
    backend = NoopBackend()
    assert backend.authentication is AuthenticationMethod.NONE
    assert backend.credentials is None
    assert backend.send(b"anything") is None


def test_http_backend_without_credentials():
    backend = HttpBackend("https://loki.example.com")
    assert backend.authentication is AuthenticationMethod.NONE
    assert backend.credentials is None


def test_http_backend_with_credentials():
    password = "password"
    backend = HttpBackend(
        "https://loki.example.com",
        AuthenticationMethod.BASIC,
        basic_credentials("username", password),
    )
    assert backend.authentication is AuthenticationMethod.BASIC
    assert backend.credentials == "dXNlcm5hbWU6cGFzc3dvcmQ="


def test_async_http_backend_with_credentials():
    password = "password"
    loop = asyncio.new_event_loop()
    try:
        backend = AsyncHttpBackend(
            "https://loki.example.com",
            loop,
            AuthenticationMethod.BASIC,
            basic_credentials("username", password),
        )
        assert backend.authentication is AuthenticationMethod.BASIC
        assert backend.credentials == "dXNlcm5hbWU6cGFzc3dvcmQ="
    finally:
        loop.close()


def test_async_http_backend_without_credentials():
    loop = asyncio.new_event_loop()
    try:
        backend = AsyncHttpBackend("https://loki.example.com", loop)
        assert backend.authentication is AuthenticationMethod.NONE
        assert backend.credentials is None
    finally:
        loop.close()


def test_push_url_replaces_path():
    assert push_url("https://loki.example.com") == "https://loki.example.com/loki/api/v1/push"
    assert push_url("http://localhost:3100/some/path") == "http://localhost:3100/loki/api/v1/push"


def test_push_url_rejects_invalid_endpoint():
    with pytest.raises(BackendError):
        push_url("not a url")


def test_build_request_headers_without_auth():
    request = HttpBackend("https://loki.example.com").build_request(b"{}")
    assert request.get_method() == "POST"
    assert request.full_url == "https://loki.example.com/loki/api/v1/push"
    assert request.get_header("Content-type") == "application/json; charset=utf-8"
    assert request.get_header("Authorization") is None
    assert request.data == b"{}"


def test_build_request_headers_with_basic_auth():
    backend = HttpBackend("https://loki.example.com", AuthenticationMethod.BASIC, "token")
    request = backend.build_request(b"{}")
    assert request.get_header("Authorization") == "Basic token"


def test_http_send_posts_payload(server):
    backend = HttpBackend(server.url, AuthenticationMethod.BASIC, "token")
    backend.send(b'{"streams":[]}')
    assert len(server.requests) == 1
    path, headers, body = server.requests[0]
    assert path == "/loki/api/v1/push"
    assert headers["authorization"] == "Basic token"
    assert headers["content-type"] == "application/json; charset=utf-8"
    assert body == b'{"streams":[]}'


def test_http_send_raises_on_error_status(server):
    server.status = 500
    backend = HttpBackend(server.url)
    with pytest.raises(BackendError):
        backend.send(b"{}")


def test_http_send_raises_on_unreachable_endpoint():
    backend = HttpBackend("http://127.0.0.1:9", timeout=1.0)
    with pytest.raises(BackendError):
        backend.send(b"{}")


@pytest.mark.asyncio
async def test_async_send_delivers(server):
    backend = AsyncHttpBackend(server.url, asyncio.get_running_loop(), timeout=2.0)
    delivered = await asyncio.wrap_future(backend.send(b"payload"))
    assert delivered is True
    assert [body for _, _, body in server.requests] == [b"payload"]


@pytest.mark.asyncio
async def test_async_send_retries_server_errors(server):
    server.status = 500
    backend = AsyncHttpBackend(server.url, asyncio.get_running_loop(), timeout=2.0)
    delivered = await asyncio.wrap_future(backend.send(b"payload"))
    assert delivered is False
    assert len(server.requests) == 1 + backend.retries


@pytest.mark.asyncio
async def test_async_send_stops_on_client_error(server):
    server.status = 400
    backend = AsyncHttpBackend(server.url, asyncio.get_running_loop(), timeout=2.0)
    delivered = await asyncio.wrap_future(backend.send(b"payload"))
    assert delivered is False
    assert len(server.requests) == 1


def test_async_send_rejects_invalid_endpoint():
    loop = asyncio.new_event_loop()
    try:
        backend = AsyncHttpBackend("nowhere", loop)
        with pytest.raises(BackendError):
            backend.send(b"{}")
    finally:
        loop.close()