"""
HTTP transport layer
Sends prepared requests through a pooled requests session and reports
connection-level timing to the trace hooks bound to the call context
"""

import logging
import socket
import ssl
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, List, Optional, Protocol, Tuple

import requests
from requests.adapters import HTTPAdapter
from requests.utils import DEFAULT_ACCEPT_ENCODING
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.exceptions import (
    ConnectTimeoutError,
    MaxRetryError,
    NameResolutionError,
    NewConnectionError,
    ProtocolError,
    ReadTimeoutError,
)
from urllib3.response import HTTPResponse

from dusk.client.context import Context
from dusk.client.request import (
    HEADER_ACCEPT_ENCODING,
    HEADER_CONTENT_ENCODING,
    HEADER_CONTENT_LENGTH,
    redact_headers,
)
from dusk.config.dusk_config import ConfigDefaults
from dusk.exceptions import DeadlineExceededError, NetworkError
from dusk.trace import ClientTrace

if TYPE_CHECKING:
    from dusk.client.dusk import Dusk


logger = logging.getLogger(__name__)

# Encodings urllib3 decodes transparently while the body is read
TRANSPARENT_ENCODINGS = frozenset(
    getattr(HTTPResponse, "CONTENT_DECODERS", ["gzip", "deflate"])
)

_local = threading.local()

# Only the read timeout counts from urllib3: its NewConnectionError extends
# ConnectTimeoutError, and requests already wraps real connect timeouts
TIMEOUT_ERRORS = (
    requests.exceptions.Timeout,
    ReadTimeoutError,
    socket.timeout,
    TimeoutError,
)
DNS_ERRORS = (NameResolutionError, socket.gaierror)


class Transport(Protocol):
    """Sends a request and buffers its body; the only network collaborator"""

    def send(
        self, request: requests.PreparedRequest, ctx: Context
    ) -> requests.Response:
        """Send the request; return once the response headers are received"""
        ...

    def read(self, response: requests.Response, ctx: Context) -> bytes:
        """Read the full response body and close it"""
        ...


@contextmanager
def bind_trace(trace: Optional[ClientTrace]) -> Iterator[None]:
    """Expose trace hooks to the connection classes for the current thread"""
    previous = getattr(_local, "trace", None)
    _local.trace = trace
    try:
        yield
    finally:
        _local.trace = previous


def close_response(response: requests.Response) -> None:
    """Release the connection of a response; no-op for responses built in memory"""
    if response.raw is not None:
        response.close()


def _emit(name: str, *args, **kwargs) -> None:
    trace: Optional[ClientTrace] = getattr(_local, "trace", None)
    if trace is not None:
        trace.emit(name, *args, **kwargs)


def find_cause(
    error: Optional[BaseException], types: Tuple[type, ...], depth: int = 8
) -> Optional[BaseException]:
    """
    Find an error of the given types in the chain of a wrapped error

    requests wraps urllib3 errors in its own exceptions (by argument, not by
    ``raise from``) and urllib3 keeps the failing socket error as the reason
    of a ``MaxRetryError``; all three links are followed.
    """
    current = error
    for _ in range(depth):
        if current is None:
            return None
        if isinstance(current, types):
            return current

        wrapped = None
        if isinstance(current, MaxRetryError):
            wrapped = current.reason
        elif current.args and isinstance(current.args[0], BaseException):
            wrapped = current.args[0]
        current = wrapped or current.__cause__ or current.__context__
    return None


@contextmanager
def read_deadline(ctx: Optional[Context]) -> Iterator[None]:
    """
    Report a body read that ran out of time as a timeout

    A read timeout while the body streams surfaces from requests as a
    ``ConnectionError`` and from urllib3 as a ``ReadTimeoutError``. It is
    raised again as the context error once the deadline has passed, and as
    ``requests.exceptions.ReadTimeout`` otherwise.
    """
    try:
        yield
    except (requests.exceptions.ConnectionError, ReadTimeoutError, socket.timeout) as e:
        if find_cause(e, (ReadTimeoutError, socket.timeout)) is None:
            raise
        err = ctx.err() if ctx is not None else None
        if err is not None:
            raise err from e
        raise requests.exceptions.ReadTimeout(e) from e


def resolve(host: str, port: int) -> List[str]:
    """Resolve a host to its stream socket addresses, first answer first"""
    addrs: List[str] = []
    for info in socket.getaddrinfo(host, port, 0, socket.SOCK_STREAM):
        addr = info[4][0]
        if addr not in addrs:
            addrs.append(addr)
    return addrs


class _TracingConnectionMixin:
    """Reports DNS, connect and first byte events of a urllib3 connection"""

    def _new_conn(self) -> socket.socket:
        if getattr(_local, "trace", None) is None:
            return super()._new_conn()

        host = self._dns_host
        _emit("dns_start", host)
        try:
            addrs = resolve(host, self.port)
        except OSError:
            _emit("dns_done", [])
            # urllib3 reports the resolution failure
            return super()._new_conn()
        _emit("dns_done", addrs)

        # Connect to the resolved addresses in order so the name is looked
        # up once; self.host still carries the name for SNI and cert checks
        last_error: Optional[Exception] = None
        for addr in addrs:
            _emit("connect_start", "tcp", f"{addr}:{self.port}")
            self._dns_host = addr
            try:
                sock = super()._new_conn()
            except (NewConnectionError, ConnectTimeoutError) as e:
                logger.debug(f"Connect to {addr}:{self.port} failed: {e}")
                last_error = e
                continue
            finally:
                self._dns_host = host
            _emit("connect_done")
            return sock
        raise last_error

    def getresponse(self, *args, **kwargs):
        response = super().getresponse(*args, **kwargs)
        _emit("first_response_byte")
        return response


class TracingHTTPConnection(_TracingConnectionMixin, HTTPConnection):
    pass


class TracingHTTPSConnection(_TracingConnectionMixin, HTTPSConnection):
    """Also reports the TLS handshake"""

    def _new_conn(self) -> socket.socket:
        sock = super()._new_conn()
        _emit("tls_handshake_start")
        return sock

    def connect(self) -> None:
        super().connect()
        sock = self.sock
        if isinstance(sock, ssl.SSLSocket):
            cipher = sock.cipher()
            _emit(
                "tls_handshake_done",
                sock.version(),
                sock.session_reused,
                cipher[0] if cipher else None,
                sock.selected_alpn_protocol(),
            )
        else:
            _emit("tls_handshake_done")


class _TracingPoolMixin:
    """Reports when a connection is taken from the pool"""

    def _get_conn(self, timeout=None):
        conn = super()._get_conn(timeout)
        reused = getattr(conn, "sock", None) is not None
        _emit("got_connection", reused, reused)
        return conn


class TracingHTTPConnectionPool(_TracingPoolMixin, HTTPConnectionPool):
    ConnectionCls = TracingHTTPConnection


class TracingHTTPSConnectionPool(_TracingPoolMixin, HTTPSConnectionPool):
    ConnectionCls = TracingHTTPSConnection


class TracingHTTPAdapter(HTTPAdapter):
    """HTTPAdapter whose pools report connection events to the bound trace"""

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": TracingHTTPConnectionPool,
            "https": TracingHTTPSConnectionPool,
        }

    def send(self, request, *args, **kwargs):
        response = super().send(request, *args, **kwargs)
        # no-op when the connection already reported it
        _emit("first_response_byte")
        return response


class RequestsTransport:
    """
    Default transport backed by a requests session

    Features:
    - Connection keep-alive via session pooling
    - Context deadline mapped onto the requests timeout
    - Connection timing reported to the context's trace hooks

    Retries are never performed here; one send is one network call.

    Example:
        >>> transport = RequestsTransport(pool_maxsize=20)
        >>> dusk.get("https://example.com/").set_client(transport).do()
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        pool_connections: int = ConfigDefaults.POOL_CONNECTIONS,
        pool_maxsize: int = ConfigDefaults.POOL_MAXSIZE,
        allow_redirects: bool = True,
        disable_compression: bool = False,
    ) -> None:
        self.pool_connections = pool_connections
        self.pool_maxsize = pool_maxsize
        self.allow_redirects = allow_redirects
        self.disable_compression = disable_compression
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session with connection pooling adapter"""
        session = requests.Session()

        adapter = TracingHTTPAdapter(
            pool_connections=self.pool_connections,
            pool_maxsize=self.pool_maxsize,
            max_retries=0,
        )

        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    @property
    def session(self) -> requests.Session:
        return self._session

    def send(
        self, request: requests.PreparedRequest, ctx: Context
    ) -> requests.Response:
        """
        Send a prepared request

        Args:
            request: Prepared request
            ctx: Call context supplying the deadline and trace hooks

        Returns:
            Response with headers received and body unread

        Raises:
            DeadlineExceededError: If the deadline passed before sending
            ContextCancelledError: If the context was cancelled
            requests.exceptions.RequestException: On transport failure
        """
        err = ctx.err()
        if err is not None:
            raise err

        timeout = ctx.remaining()
        if timeout is not None and timeout <= 0:
            raise DeadlineExceededError()

        if not self.disable_compression and HEADER_ACCEPT_ENCODING not in request.headers:
            request = request.copy()
            request.headers[HEADER_ACCEPT_ENCODING] = DEFAULT_ACCEPT_ENCODING

        logger.debug(
            f"Sending {request.method} {request.url} "
            f"headers={redact_headers(request.headers)}"
        )
        with bind_trace(ctx.trace):
            return self._session.send(
                request,
                timeout=timeout,
                stream=True,
                allow_redirects=self.allow_redirects,
            )

    def read(self, response: requests.Response, ctx: Context) -> bytes:
        """
        Buffer the full response body and release the connection

        When urllib3 decoded the body transparently the encoding headers no
        longer describe it and are removed.
        """
        try:
            with read_deadline(ctx):
                body = response.content
        finally:
            close_response(response)

        err = ctx.err()
        if err is not None:
            raise err

        encoding = response.headers.get(HEADER_CONTENT_ENCODING)
        if encoding and isinstance(response.raw, HTTPResponse):
            if encoding.strip().lower() in TRANSPARENT_ENCODINGS:
                del response.headers[HEADER_CONTENT_ENCODING]
                response.headers.pop(HEADER_CONTENT_LENGTH, None)
        return body or b""

    def close(self) -> None:
        """Close the HTTP session"""
        self._session.close()

    def __enter__(self) -> "RequestsTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


_default_transport: Optional[RequestsTransport] = None
_default_transport_lock = threading.Lock()


def get_default_transport() -> RequestsTransport:
    """Get the shared transport, created on first use"""
    global _default_transport
    with _default_transport_lock:
        if _default_transport is None:
            _default_transport = RequestsTransport()
        return _default_transport


def is_timeout(error: Optional[BaseException]) -> bool:
    """Whether an error is timeout-classified"""
    if error is None:
        return False
    if isinstance(error, NetworkError):
        return error.timeout
    return find_cause(error, TIMEOUT_ERRORS) is not None


def normalize_error(error: BaseException, dusk: "Dusk") -> BaseException:
    """
    Error converter mapping transport errors into NetworkError

    Use with ``Dusk.convert_error(normalize_error)``. Errors that are not
    transport failures are returned unchanged.
    """
    if isinstance(error, NetworkError):
        return error

    if find_cause(error, TIMEOUT_ERRORS) is not None:
        return NetworkError.timed_out(cause=error)

    if isinstance(error, requests.exceptions.SSLError):
        return NetworkError.ssl_error(f"SSL error: {error}", cause=error)

    if isinstance(
        error,
        (
            requests.exceptions.ChunkedEncodingError,
            requests.exceptions.ContentDecodingError,
        ),
    ):
        return NetworkError.read_failed(f"Read error: {error}", cause=error)

    if isinstance(error, (requests.exceptions.ConnectionError, NewConnectionError)):
        if find_cause(error, DNS_ERRORS) is not None:
            return NetworkError.dns_lookup_failed(
                f"DNS lookup failed: {error}", cause=error
            )
        # connection dropped before a response arrived
        if find_cause(error, (ProtocolError,)) is not None:
            return NetworkError.no_response(f"No response: {error}", cause=error)
        return NetworkError.connection_refused(
            f"Connection error: {error}", cause=error
        )

    # urllib3 errors of a raw body read
    if isinstance(error, ProtocolError):
        return NetworkError.read_failed(f"Read error: {error}", cause=error)

    if isinstance(error, requests.exceptions.RequestException):
        return NetworkError(f"Request error: {error}", cause=error)

    return error
