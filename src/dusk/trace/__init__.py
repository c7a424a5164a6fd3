"""
Network timing capture
"""

from dusk.trace.http_trace import (
    ClientTrace,
    HTTPTimelineStats,
    HTTPTrace,
    convert_tls_version,
    new_client_trace,
)

__all__ = [
    "ClientTrace",
    "HTTPTimelineStats",
    "HTTPTrace",
    "convert_tls_version",
    "new_client_trace",
]
