"""
Listener registry
Ordered, phase-tagged listener chains held at call, instance and global scope
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

from dusk.events.result import (
    DoneListener,
    ErrorListener,
    EventKind,
    Phase,
    RequestListener,
    ResponseListener,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhasedListener:
    """A request or response listener bound to a phase"""
    listener: Callable[..., Any]
    phase: Phase


class ListenerRegistry:
    """
    Append-only listener lists for one scope

    Registration is safe to call concurrently with firing: readers take a
    snapshot under the lock and iterate outside it.

    Example:
        >>> registry = ListenerRegistry("instance")
        >>> registry.add_request_listener(sign_request, Phase.BEFORE)
        >>> registry.request_listeners(Phase.BEFORE)
        [<function sign_request ...>]
    """

    def __init__(self, scope: str = "call") -> None:
        self.scope = scope
        self._lock = threading.Lock()
        self._request: List[PhasedListener] = []
        self._response: List[PhasedListener] = []
        self._error: List[ErrorListener] = []
        self._done: List[DoneListener] = []

    def add_request_listener(
        self, listener: RequestListener, phase: Phase = Phase.BEFORE
    ) -> "ListenerRegistry":
        """Add a request listener fired before or after the send"""
        with self._lock:
            self._request.append(PhasedListener(listener, Phase(phase)))
        return self

    def add_response_listener(
        self, listener: ResponseListener, phase: Phase = Phase.BEFORE
    ) -> "ListenerRegistry":
        """Add a response listener fired before or after the body read"""
        with self._lock:
            self._response.append(PhasedListener(listener, Phase(phase)))
        return self

    def add_error_listener(self, *listeners: ErrorListener) -> "ListenerRegistry":
        with self._lock:
            self._error.extend(listeners)
        return self

    def add_done_listener(self, *listeners: DoneListener) -> "ListenerRegistry":
        with self._lock:
            self._done.extend(listeners)
        return self

    def remove_done_listener(self, listener: DoneListener) -> None:
        with self._lock:
            self._done = [ln for ln in self._done if ln is not listener]

    def request_listeners(self, phase: Phase) -> List[RequestListener]:
        with self._lock:
            return [e.listener for e in self._request if e.phase == phase]

    def response_listeners(self, phase: Phase) -> List[ResponseListener]:
        with self._lock:
            return [e.listener for e in self._response if e.phase == phase]

    def error_listeners(self) -> List[ErrorListener]:
        with self._lock:
            return list(self._error)

    def done_listeners(self) -> List[DoneListener]:
        with self._lock:
            return list(self._done)

    def listeners(
        self, kind: EventKind, phase: Optional[Phase] = None
    ) -> List[Callable[..., Any]]:
        """Snapshot of the listeners of a kind (and phase for request/response)"""
        kind = EventKind(kind)
        if kind == EventKind.REQUEST:
            return self.request_listeners(_require_phase(kind, phase))
        if kind == EventKind.RESPONSE:
            return self.response_listeners(_require_phase(kind, phase))
        if kind == EventKind.ERROR:
            return self.error_listeners()
        return self.done_listeners()

    def clear_request_listeners(self) -> None:
        with self._lock:
            self._request = []

    def clear_response_listeners(self) -> None:
        with self._lock:
            self._response = []

    def clear_error_listeners(self) -> None:
        with self._lock:
            self._error = []

    def clear_done_listeners(self) -> None:
        with self._lock:
            self._done = []

    def clear(self) -> None:
        """Drop every listener of this scope"""
        self.clear_request_listeners()
        self.clear_response_listeners()
        self.clear_error_listeners()
        self.clear_done_listeners()
        logger.debug(f"Cleared {self.scope} listener registry")

    def __len__(self) -> int:
        with self._lock:
            return (
                len(self._request)
                + len(self._response)
                + len(self._error)
                + len(self._done)
            )

    def __repr__(self) -> str:
        return f"<ListenerRegistry scope={self.scope} listeners={len(self)}>"


def _require_phase(kind: EventKind, phase: Optional[Phase]) -> Phase:
    if phase is None:
        raise ValueError(f"{kind.value} listeners require a phase")
    return Phase(phase)


def resolve(
    scopes: Sequence[Optional[ListenerRegistry]],
    kind: EventKind,
    phase: Optional[Phase] = None,
) -> List[Callable[..., Any]]:
    """
    Merge the listeners of several scopes into firing order

    Args:
        scopes: Registries ordered call, instance, global; None entries are skipped
        kind: Listener kind to collect
        phase: Phase for request and response listeners

    Returns:
        Listeners in scope order, insertion order within each scope
    """
    merged: List[Callable[..., Any]] = []
    for registry in _present(scopes):
        merged.extend(registry.listeners(kind, phase))
    return merged


def _present(
    scopes: Iterable[Optional[ListenerRegistry]],
) -> Iterable[ListenerRegistry]:
    return (registry for registry in scopes if registry is not None)


# Process-wide registry, created empty at import
default_registry = ListenerRegistry("global")


def get_default_registry() -> ListenerRegistry:
    """Get the process-wide listener registry"""
    return default_registry


def add_request_listener(
    listener: RequestListener, phase: Phase = Phase.BEFORE
) -> None:
    """
    Add a request listener for every request

    The listener is called before or after the send. Returning
    ``ListenerResult.replace(req)`` overrides the request; returning
    ``ListenerResult.fail(err)`` (or raising) aborts the call.
    """
    default_registry.add_request_listener(listener, phase)


def add_response_listener(
    listener: ResponseListener, phase: Phase = Phase.BEFORE
) -> None:
    """
    Add a response listener for every request

    The listener is called before or after the body is read. Returning
    ``ListenerResult.replace(resp)`` overrides the response; returning
    ``ListenerResult.fail(err)`` (or raising) aborts the call.
    """
    default_registry.add_response_listener(listener, phase)


def add_error_listener(*listeners: ErrorListener) -> None:
    """Add error listeners for every request"""
    default_registry.add_error_listener(*listeners)


def add_done_listener(*listeners: DoneListener) -> None:
    """Add done listeners for every request"""
    default_registry.add_done_listener(*listeners)


def clear_request_listener() -> None:
    """Clear global request listeners"""
    default_registry.clear_request_listeners()


def clear_response_listener() -> None:
    """Clear global response listeners"""
    default_registry.clear_response_listeners()


def clear_error_listener() -> None:
    """Clear global error listeners"""
    default_registry.clear_error_listeners()


def clear_done_listener() -> None:
    """Clear global done listeners"""
    default_registry.clear_done_listeners()
