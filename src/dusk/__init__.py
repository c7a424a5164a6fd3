"""
Dusk HTTP request client for Python

Main entry point for the library
"""

from dusk.exceptions import (
    DuskError,
    DuskErrorCategory,
    NetworkError,
    NetworkErrorCode,
    RequestBuildError,
    DeadlineExceededError,
    ContextCancelledError,
    ConfigError,
)

# Requests
from dusk.client import (
    Context,
    Dusk,
    Instance,
    HttpMethod,
    Transport,
    RequestsTransport,
    new_dusk,
    get,
    head,
    post,
    put,
    patch,
    delete,
    is_timeout,
    normalize_error,
)

# Listeners
from dusk.events import (
    ListenerRegistry,
    ListenerResult,
    Phase,
    EventKind,
    add_request_listener,
    add_response_listener,
    add_error_listener,
    add_done_listener,
    clear_request_listener,
    clear_response_listener,
    clear_error_listener,
    clear_done_listener,
    default_registry,
)

# Configuration
from dusk.config import (
    DuskConfig,
    ConfigDefaults,
    ConfigLoader,
    ENV_VAR_MAPPING,
    get_config,
    set_config,
)

# Tracing
from dusk.trace import HTTPTimelineStats, HTTPTrace, new_client_trace

__version__ = "0.1.0"

__all__ = [
    # Exceptions
    "DuskError",
    "DuskErrorCategory",
    "NetworkError",
    "NetworkErrorCode",
    "RequestBuildError",
    "DeadlineExceededError",
    "ContextCancelledError",
    "ConfigError",
    # Requests
    "Context",
    "Dusk",
    "Instance",
    "HttpMethod",
    "Transport",
    "RequestsTransport",
    "new_dusk",
    "get",
    "head",
    "post",
    "put",
    "patch",
    "delete",
    "is_timeout",
    "normalize_error",
    # Listeners
    "ListenerRegistry",
    "ListenerResult",
    "Phase",
    "EventKind",
    "add_request_listener",
    "add_response_listener",
    "add_error_listener",
    "add_done_listener",
    "clear_request_listener",
    "clear_response_listener",
    "clear_error_listener",
    "clear_done_listener",
    "default_registry",
    # Configuration
    "DuskConfig",
    "ConfigDefaults",
    "ConfigLoader",
    "ENV_VAR_MAPPING",
    "get_config",
    "set_config",
    # Tracing
    "HTTPTimelineStats",
    "HTTPTrace",
    "new_client_trace",
]
