"""
Request client module
"""

from dusk.client.context import Context
from dusk.client.dusk import (
    Dusk,
    new_dusk,
    get,
    head,
    post,
    put,
    patch,
    delete,
)
from dusk.client.instance import Instance
from dusk.client.request import (
    HttpMethod,
    RequestDescriptor,
    JsonBody,
    RawBody,
    FormBody,
    MIME_APPLICATION_JSON,
    MIME_APPLICATION_FORM_URLENCODED,
)
from dusk.client.transport import (
    Transport,
    RequestsTransport,
    get_default_transport,
    is_timeout,
    normalize_error,
)
from dusk.client.codecs import br_decode, snappy_decode

__all__ = [
    "Context",
    "Dusk",
    "new_dusk",
    "get",
    "head",
    "post",
    "put",
    "patch",
    "delete",
    "Instance",
    "HttpMethod",
    "RequestDescriptor",
    "JsonBody",
    "RawBody",
    "FormBody",
    "MIME_APPLICATION_JSON",
    "MIME_APPLICATION_FORM_URLENCODED",
    "Transport",
    "RequestsTransport",
    "get_default_transport",
    "is_timeout",
    "normalize_error",
    "br_decode",
    "snappy_decode",
]
