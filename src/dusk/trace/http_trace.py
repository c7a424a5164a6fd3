"""
Network timing capture for a single send
Records the lifecycle instants of one request and reduces them to durations
"""

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple


UNKNOWN = "unknown"

# ssl.SSLSocket.version() names
TLS_VERSIONS = {
    "SSLv3": "ssl3.0",
    "TLSv1": "tls1.0",
    "TLSv1.1": "tls1.1",
    "TLSv1.2": "tls1.2",
    "TLSv1.3": "tls1.3",
}


def convert_tls_version(version: Optional[str]) -> str:
    """Convert an ssl protocol name to its short form"""
    return TLS_VERSIONS.get(version or "", UNKNOWN)


@dataclass
class HTTPTimelineStats:
    """Durations derived from an HTTPTrace"""
    dns_lookup: timedelta = timedelta(0)
    tcp_connection: timedelta = timedelta(0)
    tls_handshake: timedelta = timedelta(0)
    server_processing: timedelta = timedelta(0)
    content_transfer: timedelta = timedelta(0)
    total: timedelta = timedelta(0)

    def to_dict(self) -> Dict[str, float]:
        """Durations in milliseconds, zero durations omitted"""
        values = {
            "dnsLookup": self.dns_lookup,
            "tcpConnection": self.tcp_connection,
            "tlsHandshake": self.tls_handshake,
            "serverProcessing": self.server_processing,
            "contentTransfer": self.content_transfer,
            "total": self.total,
        }
        return {
            key: value.total_seconds() * 1000
            for key, value in values.items()
            if value
        }


def _between(start: Optional[float], end: Optional[float]) -> timedelta:
    if start is None or end is None:
        return timedelta(0)
    return timedelta(seconds=end - start)


class HTTPTrace:
    """
    Timestamps of one send

    Hooks may fire from a thread other than the caller's (a timeout can race
    a completion callback), so every read and write holds the lock. Each
    timestamp is written at most once; later writes are ignored.

    Example:
        >>> trace, ht = new_client_trace()
        >>> ht.on_dns_start("example.com")
        >>> ht.stats().total
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.start: float = time.monotonic()
        self.dns_start: Optional[float] = None
        self.dns_done: Optional[float] = None
        self.connect_start: Optional[float] = None
        self.connect_done: Optional[float] = None
        self.got_connection: Optional[float] = None
        self.first_response_byte: Optional[float] = None
        self.tls_handshake_start: Optional[float] = None
        self.tls_handshake_done: Optional[float] = None
        self.done: Optional[float] = None

        self.host: Optional[str] = None
        self.addrs: List[str] = []
        self.network: Optional[str] = None
        self.addr: Optional[str] = None
        self.reused = False
        self.was_idle = False
        self.protocol: Optional[str] = None
        self.tls_version: Optional[str] = None
        self.tls_resume = False
        self.tls_cipher_suite: Optional[str] = None

    def _stamp(self, name: str) -> None:
        if getattr(self, name) is None:
            setattr(self, name, time.monotonic())

    def on_dns_start(self, host: Optional[str] = None) -> None:
        with self._lock:
            self.host = host
            self._stamp("dns_start")

    def on_dns_done(self, addrs: Optional[List[str]] = None) -> None:
        with self._lock:
            self.addrs = list(addrs or [])
            self._stamp("dns_done")

    def on_connect_start(
        self, network: Optional[str] = None, addr: Optional[str] = None
    ) -> None:
        with self._lock:
            self.network = network
            self.addr = addr
            self._stamp("connect_start")

    def on_connect_done(self) -> None:
        with self._lock:
            self._stamp("connect_done")

    def on_got_connection(self, reused: bool = False, was_idle: bool = False) -> None:
        with self._lock:
            self.reused = reused
            self.was_idle = was_idle
            self._stamp("got_connection")

    def on_first_response_byte(self) -> None:
        with self._lock:
            self._stamp("first_response_byte")

    def on_tls_handshake_start(self) -> None:
        with self._lock:
            self._stamp("tls_handshake_start")

    def on_tls_handshake_done(
        self,
        version: Optional[str] = None,
        resumed: bool = False,
        cipher_suite: Optional[str] = None,
        protocol: Optional[str] = None,
    ) -> None:
        with self._lock:
            self.tls_version = convert_tls_version(version)
            self.tls_resume = resumed
            self.tls_cipher_suite = cipher_suite or UNKNOWN
            self.protocol = protocol
            self._stamp("tls_handshake_done")

    def finish(self) -> None:
        """Stamp the terminal timestamp"""
        with self._lock:
            self._stamp("done")

    def stats(self) -> HTTPTimelineStats:
        """
        Reduce the timestamps to durations

        A phase whose start or end was never stamped (a reused connection
        has no DNS or connect phase) reports a zero duration.

        Returns:
            HTTPTimelineStats for this send
        """
        with self._lock:
            self._stamp("done")
            return HTTPTimelineStats(
                dns_lookup=_between(self.dns_start, self.dns_done),
                tcp_connection=_between(self.connect_start, self.connect_done),
                tls_handshake=_between(
                    self.tls_handshake_start, self.tls_handshake_done
                ),
                server_processing=_between(
                    self.got_connection, self.first_response_byte
                ),
                content_transfer=_between(self.first_response_byte, self.done),
                total=_between(self.start, self.done),
            )

    def to_dict(self) -> Dict[str, Any]:
        """Descriptive fields of the trace"""
        with self._lock:
            return {
                "host": self.host,
                "addrs": list(self.addrs),
                "network": self.network,
                "addr": self.addr,
                "reused": self.reused,
                "wasIdle": self.was_idle,
                "protocol": self.protocol,
                "tlsVersion": self.tls_version,
                "tlsResume": self.tls_resume,
                "tlsCipherSuite": self.tls_cipher_suite,
            }


@dataclass
class ClientTrace:
    """Hooks a transport calls while it performs a send"""
    dns_start: Optional[Callable[..., None]] = None
    dns_done: Optional[Callable[..., None]] = None
    connect_start: Optional[Callable[..., None]] = None
    connect_done: Optional[Callable[..., None]] = None
    got_connection: Optional[Callable[..., None]] = None
    first_response_byte: Optional[Callable[..., None]] = None
    tls_handshake_start: Optional[Callable[..., None]] = None
    tls_handshake_done: Optional[Callable[..., None]] = None

    def emit(self, name: str, *args: Any, **kwargs: Any) -> None:
        """Call the hook registered under name, if any"""
        hook = getattr(self, name, None)
        if hook is not None:
            hook(*args, **kwargs)


def new_client_trace() -> Tuple[ClientTrace, HTTPTrace]:
    """Create a ClientTrace whose hooks record into a fresh HTTPTrace"""
    ht = HTTPTrace()
    trace = ClientTrace(
        dns_start=ht.on_dns_start,
        dns_done=ht.on_dns_done,
        connect_start=ht.on_connect_start,
        connect_done=ht.on_connect_done,
        got_connection=ht.on_got_connection,
        first_response_byte=ht.on_first_response_byte,
        tls_handshake_start=ht.on_tls_handshake_start,
        tls_handshake_done=ht.on_tls_handshake_done,
    )
    return trace, ht
