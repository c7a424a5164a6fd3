"""
Response body decoders for encodings urllib3 does not handle by itself

Each decoder is an ordinary response listener registered at the Before
phase: when the response carries its Content-Encoding marker it reads the
raw body, decodes it into ``dusk.body`` (which skips the default body read)
and strips the encoding headers.
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional

import brotli
import requests
import snappy
from urllib3.response import HTTPResponse

from dusk.client.context import Context
from dusk.client.request import HEADER_CONTENT_ENCODING, HEADER_CONTENT_LENGTH
from dusk.client.transport import close_response, read_deadline
from dusk.events import ListenerResult

if TYPE_CHECKING:
    from dusk.client.dusk import Dusk


logger = logging.getLogger(__name__)

GZIP_ENCODING = "gzip"
SNAPPY_ENCODING = "snappy"
BR_ENCODING = "br"

Decoder = Callable[[bytes], bytes]


def read_raw(response: requests.Response, ctx: Optional[Context] = None) -> bytes:
    """Read the body exactly as sent, without urllib3's content decoding"""
    raw = response.raw
    try:
        with read_deadline(ctx):
            if isinstance(raw, HTTPResponse):
                return raw.read(decode_content=False)
            if raw is not None:
                return raw.read()
            return response.content or b""
    finally:
        close_response(response)


def decode(
    response: requests.Response,
    dusk: "Dusk",
    encoding: str,
    decoder: Decoder,
) -> Optional[ListenerResult]:
    """Decode the body if the response is encoded with encoding"""
    if response.headers.get(HEADER_CONTENT_ENCODING) != encoding:
        return None

    response.headers.pop(HEADER_CONTENT_ENCODING, None)
    response.headers.pop(HEADER_CONTENT_LENGTH, None)

    dusk.body = decoder(read_raw(response, dusk.context))
    logger.debug(f"Decoded {encoding} response body ({len(dusk.body)} bytes)")
    return None


def snappy_decode(
    response: requests.Response, dusk: "Dusk"
) -> Optional[ListenerResult]:
    """Response listener decoding Content-Encoding: snappy"""
    return decode(response, dusk, SNAPPY_ENCODING, snappy.uncompress)


def br_decode(
    response: requests.Response, dusk: "Dusk"
) -> Optional[ListenerResult]:
    """Response listener decoding Content-Encoding: br"""
    return decode(response, dusk, BR_ENCODING, brotli.decompress)
