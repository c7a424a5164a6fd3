"""
Listener registry and listener result types
"""

from dusk.events.result import (
    DoneListener,
    ErrorConverter,
    ErrorListener,
    EventKind,
    ListenerResult,
    Phase,
    RequestListener,
    ResponseListener,
    ResultAction,
)
from dusk.events.registry import (
    ListenerRegistry,
    PhasedListener,
    add_done_listener,
    add_error_listener,
    add_request_listener,
    add_response_listener,
    clear_done_listener,
    clear_error_listener,
    clear_request_listener,
    clear_response_listener,
    default_registry,
    get_default_registry,
    resolve,
)

__all__ = [
    "DoneListener",
    "ErrorConverter",
    "ErrorListener",
    "EventKind",
    "ListenerResult",
    "Phase",
    "RequestListener",
    "ResponseListener",
    "ResultAction",
    "ListenerRegistry",
    "PhasedListener",
    "add_done_listener",
    "add_error_listener",
    "add_request_listener",
    "add_response_listener",
    "clear_done_listener",
    "clear_error_listener",
    "clear_request_listener",
    "clear_response_listener",
    "default_registry",
    "get_default_registry",
    "resolve",
]
