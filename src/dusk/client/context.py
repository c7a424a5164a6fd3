"""
Cancellation context
Carries the deadline, the cancellation state and the trace hooks of a call
"""

import threading
import time
from typing import Callable, List, Optional, Tuple

from dusk.exceptions import ContextCancelledError, DeadlineExceededError
from dusk.trace import ClientTrace


CancelFunc = Callable[[], None]


class Context:
    """
    Cancellation handle owned by the caller

    A derived context is cancelled when its parent is, and its deadline
    never exceeds the parent's. Deriving a cancellable child registers it
    with the parent; calling the returned cancel function releases that
    registration, so every derivation must be paired with exactly one
    cancel.

    Example:
        >>> ctx, cancel = Context.with_timeout(Context.background(), 2.0)
        >>> try:
        ...     transport.send(request, ctx)
        ... finally:
        ...     cancel()
    """

    def __init__(
        self,
        parent: Optional["Context"] = None,
        deadline: Optional[float] = None,
        trace: Optional[ClientTrace] = None,
    ) -> None:
        self._parent = parent
        self._lock = threading.Lock()
        self._err: Optional[Exception] = None
        self._children: List["Context"] = []

        if parent is not None and parent.deadline is not None:
            if deadline is None or parent.deadline < deadline:
                deadline = parent.deadline
        self._deadline = deadline

        if trace is None and parent is not None:
            trace = parent.trace
        self._trace = trace

    @classmethod
    def background(cls) -> "Context":
        """An empty context: never cancelled, no deadline"""
        return cls()

    @classmethod
    def with_cancel(cls, parent: "Context") -> Tuple["Context", CancelFunc]:
        """Derive a child context cancelled by the returned function"""
        child = cls(parent)
        parent._attach(child)
        return child, child.cancel

    @classmethod
    def with_timeout(
        cls, parent: "Context", timeout: float
    ) -> Tuple["Context", CancelFunc]:
        """
        Derive a child context that expires after timeout seconds

        Args:
            parent: Context to derive from
            timeout: Seconds until the deadline

        Returns:
            The child context and the function releasing it
        """
        child = cls(parent, deadline=time.monotonic() + timeout)
        parent._attach(child)
        return child, child.cancel

    def with_trace(self, trace: ClientTrace) -> "Context":
        """Derive a context carrying trace hooks; cancellation follows this one"""
        return Context(self, trace=trace)

    @property
    def deadline(self) -> Optional[float]:
        """Monotonic deadline, None when unbounded"""
        return self._deadline

    @property
    def trace(self) -> Optional[ClientTrace]:
        return self._trace

    @property
    def children(self) -> Tuple["Context", ...]:
        """Derived contexts not yet released"""
        with self._lock:
            return tuple(self._children)

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, None when unbounded"""
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def err(self) -> Optional[Exception]:
        """Why the context is done, or None while it is live"""
        with self._lock:
            if self._err is not None:
                return self._err
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceededError()
        if self._parent is not None:
            return self._parent.err()
        return None

    def done(self) -> bool:
        return self.err() is not None

    def cancel(self) -> None:
        """Cancel this context and its children; safe to call more than once"""
        self._cancel(ContextCancelledError())

    def _cancel(self, reason: Exception) -> None:
        with self._lock:
            if self._err is not None:
                return
            expired = (
                self._deadline is not None and time.monotonic() >= self._deadline
            )
            self._err = DeadlineExceededError() if expired else reason
            children, self._children = self._children, []
        for child in children:
            child._cancel(reason)
        if self._parent is not None:
            self._parent._detach(self)

    def _attach(self, child: "Context") -> None:
        with self._lock:
            cancelled = self._err
            if cancelled is None:
                self._children.append(child)
        if cancelled is not None:
            child._cancel(cancelled)

    def _detach(self, child: "Context") -> None:
        with self._lock:
            self._children = [c for c in self._children if c is not child]

    def __repr__(self) -> str:
        return f"<Context deadline={self._deadline} err={self._err!r}>"
