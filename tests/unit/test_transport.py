"""
Transport Unit Tests
"""

import socket
from http.client import RemoteDisconnected

import pytest
import requests
import responses
from urllib3.exceptions import (
    MaxRetryError,
    NameResolutionError,
    ProtocolError,
    ReadTimeoutError,
)

from dusk.client import Context, RequestsTransport, is_timeout, normalize_error
from dusk.client.transport import (
    TracingHTTPAdapter,
    bind_trace,
    find_cause,
    read_deadline,
    _emit,
)
from dusk.exceptions import (
    ContextCancelledError,
    DeadlineExceededError,
    NetworkError,
    NetworkErrorCode,
)
from dusk.trace import new_client_trace


BASE_URL = "http://test.com"


def read_timeout_error() -> requests.exceptions.ConnectionError:
    """A body read timeout the way requests reports it"""
    return requests.exceptions.ConnectionError(
        ReadTimeoutError(None, "/", "Read timed out.")
    )


def dns_error() -> requests.exceptions.ConnectionError:
    reason = NameResolutionError(
        "test.invalid", None, socket.gaierror(-2, "Name or service not known")
    )
    return requests.exceptions.ConnectionError(MaxRetryError(None, "/", reason))


def aborted_error() -> requests.exceptions.ConnectionError:
    return requests.exceptions.ConnectionError(
        ProtocolError(
            "Connection aborted.",
            RemoteDisconnected("Remote end closed connection without response"),
        )
    )


def prepare(url: str = f"{BASE_URL}/") -> requests.PreparedRequest:
    return requests.Request("GET", url).prepare()


class TestRequestsTransport:
    """Tests for RequestsTransport"""

    @pytest.fixture
    def transport(self) -> RequestsTransport:
        with RequestsTransport() as transport:
            yield transport

    def test_session_adapters(self, transport: RequestsTransport):
        """Should mount the tracing adapter without retries"""
        adapter = transport.session.get_adapter(f"{BASE_URL}/")
        assert isinstance(adapter, TracingHTTPAdapter)
        assert adapter.max_retries.total == 0

    @responses.activate
    def test_send_and_read(self, transport: RequestsTransport):
        responses.add(responses.GET, f"{BASE_URL}/", body=b"hello")
        ctx = Context.background()

        resp = transport.send(prepare(), ctx)
        body = transport.read(resp, ctx)

        assert resp.status_code == 200
        assert body == b"hello"

    @responses.activate
    def test_send_adds_accept_encoding(self, transport: RequestsTransport):
        """Should advertise compression without touching the caller's request"""
        responses.add(responses.GET, f"{BASE_URL}/", status=200)
        request = prepare()

        transport.send(request, Context.background())

        assert "gzip" in responses.calls[0].request.headers["Accept-Encoding"]
        assert "Accept-Encoding" not in request.headers

    @responses.activate
    def test_send_expired_context(self, transport: RequestsTransport):
        """Should not send once the deadline passed"""
        ctx, cancel = Context.with_timeout(Context.background(), 0)
        try:
            with pytest.raises(DeadlineExceededError):
                transport.send(prepare(), ctx)
        finally:
            cancel()
        assert len(responses.calls) == 0

    @responses.activate
    def test_send_cancelled_context(self, transport: RequestsTransport):
        ctx, cancel = Context.with_cancel(Context.background())
        cancel()

        with pytest.raises(ContextCancelledError):
            transport.send(prepare(), ctx)

    @responses.activate
    def test_send_emits_trace(self, transport: RequestsTransport):
        """Should report the first response byte to the context's trace"""
        responses.add(responses.GET, f"{BASE_URL}/", status=200)
        client_trace, trace = new_client_trace()
        ctx = Context.background().with_trace(client_trace)

        transport.send(prepare(), ctx)

        assert trace.first_response_byte is not None

    def test_read_in_memory_response(self, transport: RequestsTransport):
        """Should read responses that have no connection"""
        resp = requests.Response()
        resp.status_code = 200
        resp._content = b"memory"

        assert transport.read(resp, Context.background()) == b"memory"


class TestBindTrace:
    """Tests for bind_trace"""

    def test_restores_previous(self):
        outer, outer_trace = new_client_trace()
        inner, inner_trace = new_client_trace()

        with bind_trace(outer):
            with bind_trace(inner):
                _emit("connect_done")
            _emit("first_response_byte")

        assert inner_trace.connect_done is not None
        assert outer_trace.connect_done is None
        assert outer_trace.first_response_byte is not None

    def test_emit_without_trace(self):
        """Should do nothing when no trace is bound"""
        _emit("connect_done")


class TestSocketTimeouts:
    """Tests for timeouts against a server that stalls mid-response"""

    @pytest.fixture
    def transport(self) -> RequestsTransport:
        with RequestsTransport() as transport:
            yield transport

    def test_send_stalled_headers(
        self, transport: RequestsTransport, stalling_server: str
    ):
        """Should time out waiting for the status line"""
        ctx, cancel = Context.with_timeout(Context.background(), 0.3)
        try:
            with pytest.raises(requests.exceptions.ReadTimeout) as exc_info:
                transport.send(prepare(f"{stalling_server}/slow-headers"), ctx)
        finally:
            cancel()

        assert is_timeout(exc_info.value)

    def test_read_stalled_body(
        self, transport: RequestsTransport, stalling_server: str
    ):
        """Should raise the deadline error when the body stops arriving"""
        ctx, cancel = Context.with_timeout(Context.background(), 0.3)
        try:
            resp = transport.send(prepare(f"{stalling_server}/slow-body"), ctx)
            assert resp.status_code == 200

            with pytest.raises(DeadlineExceededError) as exc_info:
                transport.read(resp, ctx)
        finally:
            cancel()

        assert is_timeout(exc_info.value)
        assert find_cause(exc_info.value.__cause__, (ReadTimeoutError,)) is not None


class TestConnectionLookup:
    """Tests for name resolution of new connections"""

    @pytest.fixture
    def lookups(self, monkeypatch) -> list:
        calls = []
        real_getaddrinfo = socket.getaddrinfo

        def counting_getaddrinfo(host, *args, **kwargs):
            calls.append(host)
            return real_getaddrinfo(host, *args, **kwargs)

        monkeypatch.setattr(socket, "getaddrinfo", counting_getaddrinfo)
        return calls

    def test_untraced_resolves_once(self, stalling_server: str, lookups: list):
        ctx = Context.background()
        with RequestsTransport() as transport:
            resp = transport.send(prepare(f"{stalling_server}/ok"), ctx)
            assert transport.read(resp, ctx) == b"ok"

        assert lookups == ["127.0.0.1"]

    def test_traced_resolves_once(self, stalling_server: str, lookups: list):
        """Should report the lookup and connect without a second lookup"""
        client_trace, trace = new_client_trace()
        ctx = Context.background().with_trace(client_trace)
        port = stalling_server.rsplit(":", 1)[1]

        with RequestsTransport() as transport:
            resp = transport.send(prepare(f"{stalling_server}/ok"), ctx)
            assert transport.read(resp, ctx) == b"ok"

        assert lookups == ["127.0.0.1"]
        assert trace.host == "127.0.0.1"
        assert trace.addrs == ["127.0.0.1"]
        assert trace.addr == f"127.0.0.1:{port}"
        assert trace.dns_done is not None
        assert trace.connect_done is not None


class TestReadDeadline:
    """Tests for read_deadline"""

    def test_read_timeout_without_deadline(self):
        """Should re-raise as a requests read timeout"""
        with pytest.raises(requests.exceptions.ReadTimeout) as exc_info:
            with read_deadline(Context.background()):
                raise read_timeout_error()

        assert is_timeout(exc_info.value)

    def test_read_timeout_after_deadline(self):
        ctx, cancel = Context.with_timeout(Context.background(), 0)
        try:
            with pytest.raises(DeadlineExceededError):
                with read_deadline(ctx):
                    raise ReadTimeoutError(None, "/", "Read timed out.")
        finally:
            cancel()

    def test_other_errors_unchanged(self):
        error = aborted_error()
        with pytest.raises(requests.exceptions.ConnectionError) as exc_info:
            with read_deadline(Context.background()):
                raise error

        assert exc_info.value is error


class TestIsTimeout:
    """Tests for is_timeout"""

    @pytest.mark.parametrize(
        "error,expected",
        [
            (DeadlineExceededError(), True),
            (NetworkError.timed_out(), True),
            (requests.exceptions.ReadTimeout(), True),
            (socket.timeout(), True),
            (read_timeout_error(), True),
            (ReadTimeoutError(None, "/", "Read timed out."), True),
            (ContextCancelledError(), False),
            (requests.exceptions.ConnectionError(), False),
            (dns_error(), False),
            (ValueError("x"), False),
            (None, False),
        ],
    )
    def test_classification(self, error, expected: bool):
        assert is_timeout(error) is expected


class TestNormalizeError:
    """Tests for normalize_error"""

    @pytest.mark.parametrize(
        "error,code",
        [
            (requests.exceptions.ConnectTimeout(), NetworkErrorCode.TIMEOUT),
            (requests.exceptions.SSLError(), NetworkErrorCode.SSL_ERROR),
            (requests.exceptions.ConnectionError(), NetworkErrorCode.CONNECTION_REFUSED),
            (requests.exceptions.ChunkedEncodingError(), NetworkErrorCode.READ_FAILED),
            (read_timeout_error(), NetworkErrorCode.TIMEOUT),
            (dns_error(), NetworkErrorCode.DNS_LOOKUP_FAILED),
            (aborted_error(), NetworkErrorCode.NO_RESPONSE),
            (ProtocolError("Connection broken"), NetworkErrorCode.READ_FAILED),
            (requests.exceptions.TooManyRedirects(), NetworkErrorCode.UNKNOWN),
        ],
    )
    def test_maps_transport_errors(self, error: Exception, code: NetworkErrorCode):
        result = normalize_error(error, None)

        assert isinstance(result, NetworkError)
        assert result.code == code.value
        assert result.cause is error

    def test_timeout_flag(self):
        result = normalize_error(requests.exceptions.ReadTimeout(), None)
        assert result.timeout is True
        assert result.status_code == 408

    def test_keeps_other_errors(self):
        """Should return non-transport errors unchanged"""
        err = ValueError("bad")
        assert normalize_error(err, None) is err

        network = NetworkError("already")
        assert normalize_error(network, None) is network
