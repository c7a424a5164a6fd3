"""
Dusk request object
Fluent request builder and the execution engine driving one request
through its listener phases
"""

import logging
from typing import (
    IO,
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import requests

from dusk.client.codecs import (
    BR_ENCODING,
    GZIP_ENCODING,
    SNAPPY_ENCODING,
    br_decode,
    snappy_decode,
)
from dusk.client.context import Context
from dusk.client.request import (
    HEADER_ACCEPT_ENCODING,
    HEADER_CONTENT_TYPE,
    FormBody,
    HttpMethod,
    JsonBody,
    RawBody,
    RequestDescriptor,
    content_type_alias,
    prepend_base_url,
)
from dusk.client.transport import Transport, close_response, get_default_transport
from dusk.config.dusk_config import get_config
from dusk.events import (
    DoneListener,
    ErrorConverter,
    ErrorListener,
    EventKind,
    ListenerRegistry,
    ListenerResult,
    Phase,
    RequestListener,
    ResponseListener,
    default_registry,
    resolve,
)
from dusk.trace import HTTPTimelineStats, HTTPTrace, new_client_trace


logger = logging.getLogger(__name__)


class Dusk:
    """
    One HTTP request attempt and its live state

    The public fields ``request``, ``response``, ``body`` and ``error`` are
    read by every listener and by the engine between phases, so a listener
    may either return a ``ListenerResult`` or mutate them in place. Listeners
    fire call scope first, then instance scope, then global scope.

    Example:
        >>> resp, body = (
        ...     dusk.post("https://example.com/users/:id")
        ...     .param("id", "123")
        ...     .query("type", "2")
        ...     .send({"account": "tree"})
        ...     .do()
        ... )
    """

    def __init__(
        self,
        method: Union[HttpMethod, str],
        url: str,
        registry: Optional[ListenerRegistry] = None,
        instance_registry: Optional[ListenerRegistry] = None,
    ) -> None:
        """
        Create a request

        Args:
            method: HTTP method
            url: URL template, may contain :name placeholders
            registry: Global-scope registry (default: the process-wide one)
            instance_registry: Instance-scope registry, if created by an Instance
        """
        self.request: Optional[requests.PreparedRequest] = None
        self.response: Optional[requests.Response] = None
        self.body: Optional[bytes] = None
        self.error: Optional[BaseException] = None

        self._descriptor = RequestDescriptor(method, url)
        self._listeners = ListenerRegistry("call")
        self._instance_listeners = instance_registry
        self._global_listeners = (
            registry if registry is not None else default_registry
        )
        self._default_headers: List[Tuple[str, str]] = []
        self._values: Dict[str, Any] = {}
        self._client: Optional[Transport] = None
        self._context: Optional[Context] = None
        self._ctx: Optional[Context] = None
        self._release_listeners: List[DoneListener] = []
        self._error_converter: Optional[ErrorConverter] = None
        self._trace_enabled = False
        self._http_trace: Optional[HTTPTrace] = None
        self._sent_response: Optional[requests.Response] = None

    # Builder

    def param(self, key: str, value: str) -> "Dusk":
        """Set the value substituted for :key in the URL"""
        self._descriptor.params[key] = str(value)
        return self

    def query(self, key: str, value: str) -> "Dusk":
        """Set a query parameter (last write wins)"""
        self._descriptor.query[key] = str(value)
        return self

    def queries(self, query: Mapping[str, str]) -> "Dusk":
        for key, value in query.items():
            self.query(key, value)
        return self

    def set_header(self, key: str, value: str) -> "Dusk":
        """Set a request header, replacing existing values"""
        self._descriptor.set_header(key, value)
        return self

    def add_header(self, key: str, value: str) -> "Dusk":
        """Append a value to a request header"""
        self._descriptor.add_header(key, value)
        return self

    def get_header(self, key: str) -> Optional[str]:
        return self._descriptor.get_header(key)

    def add_default_headers(self, items: Iterable[Tuple[str, str]]) -> "Dusk":
        """Add (name, value) pairs rendered ahead of the request's own headers"""
        self._default_headers.extend(items)
        return self

    def set_content_type(self, content_type: str) -> "Dusk":
        """Set the content type; "json" and "form" are aliases"""
        return self.set_header(HEADER_CONTENT_TYPE, content_type_alias(content_type))

    def send(self, data: Any) -> "Dusk":
        """Send data serialized as JSON"""
        self._descriptor.body = JsonBody(data)
        return self

    def send_form(
        self,
        data: Union[Mapping[str, Union[str, Sequence[str]]], Iterable[Tuple[str, str]]],
    ) -> "Dusk":
        """Send data as application/x-www-form-urlencoded"""
        self._descriptor.body = FormBody.from_data(data)
        return self

    def send_raw(self, data: Union[bytes, str, IO[bytes]]) -> "Dusk":
        """Send bytes, text or a stream unchanged"""
        self._descriptor.body = RawBody(data)
        return self

    def set_timeout(self, timeout: float) -> "Dusk":
        """Bound the call to timeout seconds (0 disables)"""
        if timeout < 0:
            raise ValueError("timeout must not be negative")
        self._descriptor.timeout = timeout
        return self

    def set_context(self, ctx: Context) -> "Dusk":
        """Use ctx (owned by the caller) as the parent of the call context"""
        self._context = ctx
        return self

    def set_client(self, client: Transport) -> "Dusk":
        """Use client instead of the shared default transport"""
        self._client = client
        return self

    def enable_trace(self) -> "Dusk":
        """Capture network timing for the send"""
        self._trace_enabled = True
        return self

    def snappy(self) -> "Dusk":
        """Accept and decode snappy encoded responses"""
        return self._enable_encoding(SNAPPY_ENCODING, snappy_decode)

    def br(self) -> "Dusk":
        """Accept and decode brotli encoded responses"""
        return self._enable_encoding(BR_ENCODING, br_decode)

    def _enable_encoding(self, encoding: str, listener: ResponseListener) -> "Dusk":
        if getattr(self.client, "disable_compression", False):
            return self
        accept = self._descriptor.get_header(HEADER_ACCEPT_ENCODING) or GZIP_ENCODING
        self.set_header(HEADER_ACCEPT_ENCODING, f"{accept}, {encoding}")
        return self.on_response(listener, Phase.BEFORE)

    def set_value(self, key: str, value: Any) -> "Dusk":
        """Store a value for other listeners of this call"""
        self._values[key] = value
        return self

    def get_value(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    # Listeners

    def on_request(
        self, listener: RequestListener, phase: Phase = Phase.BEFORE
    ) -> "Dusk":
        """Add a call-scoped request listener"""
        self._listeners.add_request_listener(listener, phase)
        return self

    def on_response(
        self, listener: ResponseListener, phase: Phase = Phase.BEFORE
    ) -> "Dusk":
        """Add a call-scoped response listener"""
        self._listeners.add_response_listener(listener, phase)
        return self

    def on_error(self, *listeners: ErrorListener) -> "Dusk":
        self._listeners.add_error_listener(*listeners)
        return self

    def on_done(self, *listeners: DoneListener) -> "Dusk":
        self._listeners.add_done_listener(*listeners)
        return self

    def convert_error(self, converter: Optional[ErrorConverter]) -> "Dusk":
        """Map the terminal error once, before error listeners run"""
        self._error_converter = converter
        return self

    # Accessors

    @property
    def method(self) -> str:
        return self._descriptor.method.value

    @property
    def url(self) -> str:
        """URL with params substituted and the query string appended"""
        return self._descriptor.render_url()

    @property
    def path(self) -> str:
        return self._descriptor.path

    @property
    def timeout(self) -> float:
        return self._descriptor.timeout

    @property
    def context(self) -> Optional[Context]:
        """The call context once derived, otherwise the caller's"""
        return self._ctx or self._context

    @property
    def client(self) -> Transport:
        return self._client or get_default_transport()

    @property
    def listeners(self) -> ListenerRegistry:
        """Call-scoped listener registry"""
        return self._listeners

    def get_http_trace(self) -> Optional[HTTPTrace]:
        return self._http_trace

    def get_timeline_stats(self) -> Optional[HTTPTimelineStats]:
        if self._http_trace is None:
            return None
        return self._http_trace.stats()

    def render(self) -> requests.PreparedRequest:
        """Render the wire-level request without sending it"""
        return self._descriptor.render(self._default_headers)

    def reset(self) -> "Dusk":
        """
        Rearm the live fields for a deliberate second dispatch

        Builder configuration and user listeners are kept.
        """
        self.request = None
        self.response = None
        self.body = None
        self.error = None
        self._values = {}
        self._ctx = None
        self._http_trace = None
        self._sent_response = None
        for release in self._release_listeners:
            self._listeners.remove_done_listener(release)
        self._release_listeners = []
        return self

    # Execution

    def do(self) -> Tuple[Optional[requests.Response], Optional[bytes]]:
        """
        Perform the request

        Exactly one send is attempted. Error listeners and done listeners
        run on every outcome, each able to replace the error.

        Returns:
            Tuple of response and buffered body

        Raises:
            BaseException: The final error of the call, also kept in ``self.error``
        """
        logger.debug(f"{self.method} {self._descriptor.url} started")
        try:
            err = self._run()
        finally:
            self._close_responses()
        err = self._finalize(err)
        if err is not None:
            logger.warning(f"{self.method} {self._descriptor.url} failed: {err}")
            raise err
        return self.response, self.body

    def _scopes(self) -> Tuple[Optional[ListenerRegistry], ...]:
        return (self._listeners, self._instance_listeners, self._global_listeners)

    def _run(self) -> Optional[BaseException]:
        try:
            self.request = self.render()
        except Exception as e:
            return e
        self._ctx = self._derive_context()

        err = self._emit(EventKind.REQUEST, Phase.BEFORE, "request")
        if err is not None:
            return err

        ctx = self._ctx
        if self._trace_enabled:
            trace, self._http_trace = new_client_trace()
            ctx = ctx.with_trace(trace)
            self._ctx = ctx

        client = self.client
        try:
            self.response = self._sent_response = client.send(self.request, ctx)
        except Exception as e:
            return e
        finally:
            # headers received or send failed
            if self._http_trace is not None:
                self._http_trace.finish()

        err = self._emit(EventKind.REQUEST, Phase.AFTER, "request")
        if err is not None:
            return err

        err = self._emit(EventKind.RESPONSE, Phase.BEFORE, "response")
        if err is not None:
            return err

        if self.body is None:
            try:
                self.body = client.read(self.response, ctx)
            except Exception as e:
                return e

        return self._emit(EventKind.RESPONSE, Phase.AFTER, "response")

    def _derive_context(self) -> Context:
        ctx = self._context or Context.background()
        timeout = self._descriptor.timeout
        if not timeout:
            return ctx

        ctx, cancel = Context.with_timeout(ctx, timeout)

        def release(_: "Dusk") -> None:
            cancel()

        self._release_listeners.append(release)
        self._listeners.add_done_listener(release)
        return ctx

    def _emit(
        self, kind: EventKind, phase: Phase, field: str
    ) -> Optional[BaseException]:
        """
        Fire request or response listeners of one phase

        The first failing listener stops the phase. An error written to
        ``self.error`` by a listener is picked up once the phase completes.
        """
        for listener in resolve(self._scopes(), kind, phase):
            try:
                result = listener(getattr(self, field), self)
            except Exception as e:
                logger.debug(f"{kind.value} {phase.value} listener raised: {e}")
                return e
            err = self._apply(result, field)
            if err is not None:
                logger.debug(f"{kind.value} {phase.value} listener aborted: {err}")
                return err
        return self.error

    def _apply(self, result: Any, field: str) -> Optional[BaseException]:
        if result is None:
            return None
        if not isinstance(result, ListenerResult):
            return TypeError(
                f"{field} listener returned {type(result).__name__}, "
                "expected ListenerResult or None"
            )
        if result.is_fail:
            return result.error
        if result.is_replace:
            setattr(self, field, result.value)
        return None

    def _finalize(self, err: Optional[BaseException]) -> Optional[BaseException]:
        scopes = self._scopes()
        if err is not None:
            if self._error_converter is not None:
                try:
                    err = self._error_converter(err, self) or err
                except Exception as e:
                    err = e
            for listener in resolve(scopes, EventKind.ERROR):
                try:
                    new_err = listener(err, self)
                except Exception as e:
                    new_err = e
                if new_err is not None:
                    err = new_err
        self.error = err

        for listener in resolve(scopes, EventKind.DONE):
            try:
                new_err = listener(self)
            except Exception as e:
                new_err = e
            if new_err is not None:
                self.error = new_err
        return self.error

    def _close_responses(self) -> None:
        responses = [self._sent_response]
        if self.response is not self._sent_response:
            responses.append(self.response)
        for response in responses:
            if response is not None:
                close_response(response)

    def __repr__(self) -> str:
        return f"<Dusk {self.method} {self._descriptor.url}>"


def new_dusk(
    method: Union[HttpMethod, str],
    url: str,
    registry: Optional[ListenerRegistry] = None,
    instance_registry: Optional[ListenerRegistry] = None,
) -> Dusk:
    """Create a request with the default config applied"""
    config = get_config()
    if config is None:
        return Dusk(
            method, url, registry=registry, instance_registry=instance_registry
        )

    d = Dusk(
        method,
        prepend_base_url(url, config.base_url),
        registry=registry,
        instance_registry=instance_registry,
    )
    if config.timeout:
        d.set_timeout(config.timeout)
    d.add_default_headers(config.header_items())
    return d


def get(url: str) -> Dusk:
    """HTTP GET request"""
    return new_dusk(HttpMethod.GET, url)


def head(url: str) -> Dusk:
    """HTTP HEAD request"""
    return new_dusk(HttpMethod.HEAD, url)


def post(url: str) -> Dusk:
    """HTTP POST request"""
    return new_dusk(HttpMethod.POST, url)


def put(url: str) -> Dusk:
    """HTTP PUT request"""
    return new_dusk(HttpMethod.PUT, url)


def patch(url: str) -> Dusk:
    """HTTP PATCH request"""
    return new_dusk(HttpMethod.PATCH, url)


def delete(url: str) -> Dusk:
    """HTTP DELETE request"""
    return new_dusk(HttpMethod.DELETE, url)
