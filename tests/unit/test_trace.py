"""
Trace Module Unit Tests
"""

from datetime import timedelta

import pytest

from dusk.trace import HTTPTimelineStats, HTTPTrace, convert_tls_version, new_client_trace


class TestConvertTlsVersion:
    """Tests for convert_tls_version"""

    @pytest.mark.parametrize(
        "version,expected",
        [
            ("SSLv3", "ssl3.0"),
            ("TLSv1", "tls1.0"),
            ("TLSv1.1", "tls1.1"),
            ("TLSv1.2", "tls1.2"),
            ("TLSv1.3", "tls1.3"),
        ],
    )
    def test_known_versions(self, version: str, expected: str):
        """Should map ssl protocol names to short names"""
        assert convert_tls_version(version) == expected

    def test_unknown_version(self):
        """Should return unknown for unmapped versions"""
        assert convert_tls_version("QUIC") == "unknown"
        assert convert_tls_version(None) == "unknown"


class TestHTTPTrace:
    """Tests for HTTPTrace"""

    @pytest.fixture
    def trace(self) -> HTTPTrace:
        return HTTPTrace()

    def test_stats_from_timestamps(self, trace: HTTPTrace):
        """Should derive every duration from its pair of timestamps"""
        trace.start = 100.0
        trace.dns_start = 100.0
        trace.dns_done = 100.01
        trace.connect_start = 100.01
        trace.connect_done = 100.03
        trace.tls_handshake_start = 100.03
        trace.tls_handshake_done = 100.06
        trace.got_connection = 100.06
        trace.first_response_byte = 100.1
        trace.done = 100.2

        stats = trace.stats()

        assert stats.dns_lookup == timedelta(seconds=0.01)
        assert stats.tcp_connection == timedelta(seconds=0.02)
        assert stats.tls_handshake == timedelta(seconds=0.03)
        assert stats.server_processing == timedelta(seconds=0.04)
        assert stats.content_transfer == timedelta(seconds=0.1)
        assert stats.total == timedelta(seconds=0.2)

    def test_reused_connection_has_zero_connect_phases(self, trace: HTTPTrace):
        """Should report zero for phases that never started"""
        trace.on_got_connection(reused=True, was_idle=True)
        trace.on_first_response_byte()
        trace.finish()

        stats = trace.stats()

        assert stats.dns_lookup == timedelta(0)
        assert stats.tcp_connection == timedelta(0)
        assert stats.tls_handshake == timedelta(0)
        assert trace.reused is True
        assert trace.was_idle is True

    def test_first_write_wins(self, trace: HTTPTrace):
        """Should ignore a second write of the same timestamp"""
        trace.on_first_response_byte()
        first = trace.first_response_byte
        trace.on_first_response_byte()
        assert trace.first_response_byte == first

        trace.finish()
        done = trace.done
        trace.finish()
        assert trace.done == done

    def test_stats_stamps_done(self, trace: HTTPTrace):
        """Should stamp done when stats are taken before finish"""
        assert trace.done is None
        stats = trace.stats()
        assert trace.done is not None
        assert stats.total >= timedelta(0)

    def test_tls_handshake_done(self, trace: HTTPTrace):
        """Should record TLS metadata"""
        trace.on_tls_handshake_start()
        trace.on_tls_handshake_done("TLSv1.3", True, "TLS_AES_128_GCM_SHA256", "h2")

        assert trace.tls_version == "tls1.3"
        assert trace.tls_resume is True
        assert trace.tls_cipher_suite == "TLS_AES_128_GCM_SHA256"
        assert trace.protocol == "h2"

    def test_to_dict(self, trace: HTTPTrace):
        """Should describe connection metadata"""
        trace.on_dns_start("example.com")
        trace.on_dns_done(["93.184.216.34"])
        trace.on_connect_start("tcp", "example.com:443")

        data = trace.to_dict()

        assert data["host"] == "example.com"
        assert data["addrs"] == ["93.184.216.34"]
        assert data["network"] == "tcp"
        assert data["addr"] == "example.com:443"
        assert data["reused"] is False


class TestHTTPTimelineStats:
    """Tests for HTTPTimelineStats"""

    def test_to_dict_omits_zero(self):
        """Should report milliseconds and skip zero durations"""
        stats = HTTPTimelineStats(
            server_processing=timedelta(milliseconds=40),
            total=timedelta(milliseconds=50),
        )

        assert stats.to_dict() == {"serverProcessing": 40.0, "total": 50.0}


class TestNewClientTrace:
    """Tests for new_client_trace"""

    def test_hooks_record_into_trace(self):
        """Should route emitted hooks to the paired HTTPTrace"""
        client_trace, trace = new_client_trace()

        client_trace.emit("dns_start", "example.com")
        client_trace.emit("dns_done", ["127.0.0.1"])
        client_trace.emit("got_connection", False, False)

        assert trace.host == "example.com"
        assert trace.addrs == ["127.0.0.1"]
        assert trace.dns_start is not None
        assert trace.dns_done is not None
        assert trace.got_connection is not None

    def test_emit_unknown_hook(self):
        """Should ignore hooks that are not registered"""
        client_trace, trace = new_client_trace()
        client_trace.emit("wrote_headers")
        assert trace.to_dict()["host"] is None
