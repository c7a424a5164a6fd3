"""Listener types and the tagged result a listener returns"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

import requests

if TYPE_CHECKING:
    from dusk.client.dusk import Dusk


class Phase(str, Enum):
    """Sub-stage of the request or response event"""
    BEFORE = "before"
    AFTER = "after"


class EventKind(str, Enum):
    """Listener kinds"""
    REQUEST = "request"
    RESPONSE = "response"
    ERROR = "error"
    DONE = "done"


class ResultAction(str, Enum):
    KEEP = "keep"
    REPLACE = "replace"
    FAIL = "fail"


@dataclass(frozen=True)
class ListenerResult:
    """
    Outcome of a request or response listener

    A listener returns ``None`` or ``ListenerResult.keep()`` to leave the
    current object alone, ``ListenerResult.replace(obj)`` to swap it for the
    rest of the pipeline, or ``ListenerResult.fail(err)`` to abort.
    """
    action: ResultAction = ResultAction.KEEP
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def keep(cls) -> "ListenerResult":
        return cls(ResultAction.KEEP)

    @classmethod
    def replace(cls, value: Any) -> "ListenerResult":
        if value is None:
            raise ValueError("replacement value must not be None")
        return cls(ResultAction.REPLACE, value=value)

    @classmethod
    def fail(cls, error: BaseException) -> "ListenerResult":
        if error is None:
            raise ValueError("error must not be None")
        return cls(ResultAction.FAIL, error=error)

    @property
    def is_replace(self) -> bool:
        return self.action == ResultAction.REPLACE

    @property
    def is_fail(self) -> bool:
        return self.action == ResultAction.FAIL


# Request listener: may replace the prepared request or abort
RequestListener = Callable[
    [requests.PreparedRequest, "Dusk"], Optional[ListenerResult]
]

# Response listener: may replace the response or abort
ResponseListener = Callable[[requests.Response, "Dusk"], Optional[ListenerResult]]

# Error listener: returns a replacement error or None
ErrorListener = Callable[[BaseException, "Dusk"], Optional[BaseException]]

# Done listener: returns an error that overrides the final error, or None
DoneListener = Callable[["Dusk"], Optional[BaseException]]

# Error converter: maps the terminal error once before error listeners run
ErrorConverter = Callable[[BaseException, "Dusk"], BaseException]

AnyListener = Union[RequestListener, ResponseListener, ErrorListener, DoneListener]
