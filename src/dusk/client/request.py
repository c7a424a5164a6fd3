"""
Request construction
Accumulates method, URL template, parameters, headers and body, and renders
the wire-level request
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
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
from urllib.parse import urlencode, urlsplit

import requests
from requests.structures import CaseInsensitiveDict

from dusk.exceptions import RequestBuildError


MIME_APPLICATION_JSON = "application/json"
MIME_APPLICATION_FORM_URLENCODED = "application/x-www-form-urlencoded"

HEADER_CONTENT_TYPE = "Content-Type"
HEADER_CONTENT_ENCODING = "Content-Encoding"
HEADER_CONTENT_LENGTH = "Content-Length"
HEADER_ACCEPT_ENCODING = "Accept-Encoding"

HTTP_PROTOCOL = "http://"
HTTPS_PROTOCOL = "https://"

CONTENT_TYPE_ALIASES = {
    "json": MIME_APPLICATION_JSON,
    "form": MIME_APPLICATION_FORM_URLENCODED,
}

# :name placeholders in a URL template
PATH_PARAM_PATTERN = re.compile(r":([A-Za-z0-9_]+)")

# Header names whose values are redacted in logs
SENSITIVE_FIELDS = [
    "authorization",
    "cookie",
    "x-api-key",
    "token",
    "password",
    "secret",
]


class HttpMethod(str, Enum):
    """HTTP method types supported"""
    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass(frozen=True)
class JsonBody:
    """A value serialized to JSON"""
    value: Any

    def encode(self) -> bytes:
        return json.dumps(self.value, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class RawBody:
    """Bytes, text or a readable stream sent as-is"""
    data: Union[bytes, str, IO[bytes]]


@dataclass(frozen=True)
class FormBody:
    """Ordered key/value pairs sent as x-www-form-urlencoded"""
    fields: Tuple[Tuple[str, str], ...]

    @classmethod
    def from_data(
        cls,
        data: Union[
            Mapping[str, Union[str, Sequence[str]]],
            Iterable[Tuple[str, str]],
        ],
    ) -> "FormBody":
        """Build from a mapping (values may be lists) or a sequence of pairs"""
        fields: List[Tuple[str, str]] = []
        if isinstance(data, Mapping):
            for key, value in data.items():
                if isinstance(value, (list, tuple)):
                    fields.extend((key, str(v)) for v in value)
                else:
                    fields.append((key, str(value)))
        else:
            fields.extend((key, str(value)) for key, value in data)
        return cls(tuple(fields))

    def encode(self) -> str:
        return urlencode(self.fields)


Body = Union[JsonBody, RawBody, FormBody]


def content_type_alias(alias: str) -> str:
    """Map "json" and "form" to their MIME types, anything else passes through"""
    return CONTENT_TYPE_ALIASES.get(alias, alias)


def is_absolute_url(url: str) -> bool:
    return url.startswith((HTTP_PROTOCOL, HTTPS_PROTOCOL))


def prepend_base_url(url: str, base_url: Optional[str]) -> str:
    """Prefix url with base_url unless url is absolute"""
    if base_url and not is_absolute_url(url):
        return base_url + url
    return url


def append_query(url: str, query: Mapping[str, str]) -> str:
    """Append the encoded query, joined with & when url already has one"""
    if not query:
        return url
    qs = urlencode(list(query.items()))
    separator = "&" if "?" in url else "?"
    return url + separator + qs


def redact_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy of headers safe for logging"""
    redacted = {}
    for key, value in headers.items():
        lower_key = key.lower()
        if any(field in lower_key for field in SENSITIVE_FIELDS):
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def substitute_params(url: str, params: Mapping[str, str]) -> str:
    """Replace :name tokens; unknown tokens stay as literal text"""
    if not params:
        return url

    def replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in params:
            return params[name]
        return match.group(0)

    return PATH_PARAM_PATTERN.sub(replace, url)


class RequestDescriptor:
    """
    Pending request description, mutable until rendered

    Query parameters keep the insertion order of their first write; a
    later write to the same key replaces the value in place. Headers are
    case-insensitive and multi-valued.
    """

    def __init__(self, method: Union[HttpMethod, str], url: str) -> None:
        self.method = HttpMethod(method)
        self.url = url
        self.params: Dict[str, str] = {}
        self.query: Dict[str, str] = {}
        self.headers: CaseInsensitiveDict = CaseInsensitiveDict()
        self.body: Optional[Body] = None
        self.timeout: float = 0.0

    @property
    def path(self) -> str:
        """Path of the URL template"""
        try:
            return urlsplit(self.url).path
        except ValueError:
            return ""

    def set_header(self, key: str, value: str) -> None:
        self.headers[key] = [value]

    def add_header(self, key: str, value: str) -> None:
        values = self.headers.get(key)
        if values is None:
            self.headers[key] = [value]
        else:
            values.append(value)

    def get_header(self, key: str) -> Optional[str]:
        values = self.headers.get(key)
        if not values:
            return None
        return values[0]

    def render_url(self) -> str:
        """URL with path params substituted and the query appended"""
        return append_query(substitute_params(self.url, self.params), self.query)

    def render(
        self, default_headers: Iterable[Tuple[str, str]] = ()
    ) -> requests.PreparedRequest:
        """
        Render the wire-level request

        Rendering does not modify the descriptor, so rendering twice yields
        the same URL and headers.

        Args:
            default_headers: (name, value) pairs added before the request's own

        Returns:
            Prepared request ready for the transport

        Raises:
            RequestBuildError: If the body cannot be encoded or the URL is invalid
        """
        headers: CaseInsensitiveDict = CaseInsensitiveDict()
        for key, value in default_headers:
            headers.setdefault(key, []).append(value)
        for key, values in self.headers.items():
            headers.setdefault(key, []).extend(values)

        data = self._encode_body(headers)

        request = requests.Request(
            method=self.method.value,
            url=self.render_url(),
            headers={key: ", ".join(values) for key, values in headers.items()},
            data=data,
        )
        try:
            return request.prepare()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise RequestBuildError(
                f"Invalid request URL {self.url!r}: {e}", code="BUILD_URL", cause=e
            ) from e

    def _encode_body(self, headers: CaseInsensitiveDict) -> Any:
        body = self.body
        if body is None:
            return None

        if isinstance(body, FormBody):
            headers[HEADER_CONTENT_TYPE] = [MIME_APPLICATION_FORM_URLENCODED]
            return body.encode()

        if isinstance(body, RawBody):
            return body.data

        try:
            data = body.encode()
        except (TypeError, ValueError) as e:
            raise RequestBuildError(
                f"Failed to encode request body: {e}", code="BUILD_BODY", cause=e
            ) from e
        if not headers.get(HEADER_CONTENT_TYPE):
            headers[HEADER_CONTENT_TYPE] = [MIME_APPLICATION_JSON]
        return data
