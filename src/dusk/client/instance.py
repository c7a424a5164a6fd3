"""
Instance
A preset family of requests sharing defaults and instance-scoped listeners
"""

import logging
from typing import Optional, Union

from dusk.client.dusk import Dusk, new_dusk
from dusk.client.request import HttpMethod, prepend_base_url
from dusk.client.transport import Transport
from dusk.config.dusk_config import DuskConfig
from dusk.events import (
    DoneListener,
    ErrorConverter,
    ErrorListener,
    ListenerRegistry,
    Phase,
    RequestListener,
    ResponseListener,
)


logger = logging.getLogger(__name__)


class Instance:
    """
    Defaults and listeners inherited by every request created through it

    Instance listeners fire after the request's own listeners and before
    the global ones. The instance config is layered on top of the default
    config: its base URL is applied first, its headers are added after the
    default headers and a non-zero timeout replaces the default one.

    Example:
        >>> ins = Instance(DuskConfig(base_url="https://api.example.com"))
        >>> ins.add_error_listener(lambda err, d: normalize_error(err, d))
        >>> resp, body = ins.get("/users/:id").param("id", "1").do()
    """

    def __init__(
        self,
        config: Optional[DuskConfig] = None,
        registry: Optional[ListenerRegistry] = None,
        transport: Optional[Transport] = None,
        error_converter: Optional[ErrorConverter] = None,
    ) -> None:
        """
        Create an instance

        Args:
            config: Instance defaults
            registry: Global-scope registry for requests of this instance
                (default: the process-wide one)
            transport: Transport for requests of this instance
            error_converter: Converter set on each request
        """
        self._config = config or DuskConfig()
        self._listeners = ListenerRegistry("instance")
        self._global_listeners = registry
        self._transport = transport
        self._error_converter = error_converter

    @property
    def config(self) -> DuskConfig:
        return self._config

    @property
    def listeners(self) -> ListenerRegistry:
        """Instance-scoped listener registry"""
        return self._listeners

    def set_config(self, config: DuskConfig) -> "Instance":
        self._config = config
        logger.info(
            f"Instance config set: base_url={config.base_url} "
            f"timeout={config.timeout}"
        )
        return self

    def set_client(self, transport: Optional[Transport]) -> "Instance":
        self._transport = transport
        return self

    def set_error_converter(
        self, converter: Optional[ErrorConverter]
    ) -> "Instance":
        self._error_converter = converter
        return self

    def add_request_listener(
        self, listener: RequestListener, phase: Phase = Phase.BEFORE
    ) -> "Instance":
        self._listeners.add_request_listener(listener, phase)
        return self

    def add_response_listener(
        self, listener: ResponseListener, phase: Phase = Phase.BEFORE
    ) -> "Instance":
        self._listeners.add_response_listener(listener, phase)
        return self

    def add_error_listener(self, *listeners: ErrorListener) -> "Instance":
        self._listeners.add_error_listener(*listeners)
        return self

    def add_done_listener(self, *listeners: DoneListener) -> "Instance":
        self._listeners.add_done_listener(*listeners)
        return self

    def new(self, method: Union[HttpMethod, str], url: str) -> Dusk:
        """Create a request of this instance"""
        config = self._config
        d = new_dusk(
            method,
            prepend_base_url(url, config.base_url),
            registry=self._global_listeners,
            instance_registry=self._listeners,
        )
        d.add_default_headers(config.header_items())
        if config.timeout:
            d.set_timeout(config.timeout)
        if self._transport is not None:
            d.set_client(self._transport)
        if self._error_converter is not None:
            d.convert_error(self._error_converter)
        return d

    def get(self, url: str) -> Dusk:
        return self.new(HttpMethod.GET, url)

    def head(self, url: str) -> Dusk:
        return self.new(HttpMethod.HEAD, url)

    def post(self, url: str) -> Dusk:
        return self.new(HttpMethod.POST, url)

    def put(self, url: str) -> Dusk:
        return self.new(HttpMethod.PUT, url)

    def patch(self, url: str) -> Dusk:
        return self.new(HttpMethod.PATCH, url)

    def delete(self, url: str) -> Dusk:
        return self.new(HttpMethod.DELETE, url)
