"""Exception classes for dusk"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class DuskErrorCategory(str, Enum):
    """Error category codes"""
    BUILD = "BUILD"
    NETWORK = "NET"
    CONFIG = "CONFIG"
    UNKNOWN = "UNKNOWN"


class NetworkErrorCode(str, Enum):
    """Network error codes"""
    TIMEOUT = "NET01"
    CONNECTION_REFUSED = "NET02"
    DNS_LOOKUP_FAILED = "NET03"
    SSL_ERROR = "NET04"
    NO_RESPONSE = "NET06"
    REQUEST_ABORTED = "NET07"
    READ_FAILED = "NET08"
    UNKNOWN = "NET10"


class DuskError(Exception):
    """
    Base exception for dusk errors

    All errors raised by the client itself extend from this class.
    Errors raised by the transport or by listeners are surfaced verbatim
    unless an error converter maps them.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.cause = cause
        self.details = details
        self.timestamp = datetime.utcnow()
        self.category = self._determine_category(code)

    def _determine_category(self, code: Optional[str]) -> DuskErrorCategory:
        """Determine error category from code"""
        if not code:
            return DuskErrorCategory.UNKNOWN

        if code.startswith("BUILD"):
            return DuskErrorCategory.BUILD
        if code.startswith("NET"):
            return DuskErrorCategory.NETWORK
        if code.startswith("CONFIG"):
            return DuskErrorCategory.CONFIG

        return DuskErrorCategory.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary"""
        return {
            "name": self.__class__.__name__,
            "message": str(self),
            "code": self.code,
            "status_code": self.status_code,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat() + "Z",
            "details": self.details,
        }

    def has_code(self, code: str) -> bool:
        """Check if error has a specific code"""
        return self.code == code

    def is_category(self, category: DuskErrorCategory) -> bool:
        """Check if error belongs to a category"""
        return self.category == category

    def get_description(self) -> str:
        """Get human-readable error description"""
        parts = [str(self)]

        if self.code:
            parts.insert(0, f"[{self.code}]")

        if self.status_code:
            parts.append(f"(HTTP {self.status_code})")

        return " ".join(parts)


class RequestBuildError(DuskError):
    """Malformed URL or unencodable body, raised before any network activity"""

    def __init__(
        self,
        message: str,
        code: str = "BUILD01",
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, code=code, cause=cause)


class NetworkError(DuskError):
    """
    Network error for transport layer failures
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        network_code: str = NetworkErrorCode.UNKNOWN.value,
        timeout: bool = False,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message, code=network_code, status_code=status_code, cause=cause
        )
        self.network_code = network_code
        self.timeout = timeout

    @classmethod
    def timed_out(
        cls,
        message: str = "Request timed out",
        cause: Optional[BaseException] = None,
    ) -> "NetworkError":
        """Create a timeout error"""
        return cls(
            message,
            status_code=408,
            network_code=NetworkErrorCode.TIMEOUT.value,
            timeout=True,
            cause=cause,
        )

    @classmethod
    def connection_refused(
        cls,
        message: str = "Connection refused",
        cause: Optional[BaseException] = None,
    ) -> "NetworkError":
        """Create a connection refused error"""
        return cls(
            message,
            network_code=NetworkErrorCode.CONNECTION_REFUSED.value,
            cause=cause,
        )

    @classmethod
    def dns_lookup_failed(
        cls,
        message: str = "DNS lookup failed",
        cause: Optional[BaseException] = None,
    ) -> "NetworkError":
        """Create a name resolution error"""
        return cls(
            message,
            network_code=NetworkErrorCode.DNS_LOOKUP_FAILED.value,
            cause=cause,
        )

    @classmethod
    def ssl_error(
        cls,
        message: str = "SSL/TLS error",
        cause: Optional[BaseException] = None,
    ) -> "NetworkError":
        """Create an SSL error"""
        return cls(
            message, network_code=NetworkErrorCode.SSL_ERROR.value, cause=cause
        )

    @classmethod
    def read_failed(
        cls,
        message: str = "Failed to read response body",
        cause: Optional[BaseException] = None,
    ) -> "NetworkError":
        """Create a body read error"""
        return cls(
            message, network_code=NetworkErrorCode.READ_FAILED.value, cause=cause
        )

    @classmethod
    def no_response(
        cls,
        message: str = "Connection closed without a response",
        cause: Optional[BaseException] = None,
    ) -> "NetworkError":
        """Create an error for a connection dropped before the response"""
        return cls(
            message, network_code=NetworkErrorCode.NO_RESPONSE.value, cause=cause
        )


class DeadlineExceededError(NetworkError):
    """The request context deadline passed before the call completed"""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(
            message,
            status_code=408,
            network_code=NetworkErrorCode.TIMEOUT.value,
            timeout=True,
        )


class ContextCancelledError(NetworkError):
    """The request context was cancelled by its owner"""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(
            message, network_code=NetworkErrorCode.REQUEST_ABORTED.value
        )


class ConfigError(DuskError):
    """Configuration error"""

    def __init__(
        self,
        message: str,
        code: str = "CONFIG01",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details=details)
