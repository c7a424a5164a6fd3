"""
Request Construction Unit Tests
"""

import json

import pytest

from dusk.client.request import (
    MIME_APPLICATION_FORM_URLENCODED,
    MIME_APPLICATION_JSON,
    FormBody,
    HttpMethod,
    JsonBody,
    RawBody,
    RequestDescriptor,
    append_query,
    content_type_alias,
    prepend_base_url,
    redact_headers,
    substitute_params,
)
from dusk.exceptions import DuskErrorCategory, RequestBuildError


class TestUrlHelpers:
    """Tests for URL helpers"""

    def test_substitute_params(self):
        """Should replace :name tokens"""
        url = substitute_params("http://test.com/users/:type/:id", {"type": "vip", "id": "1"})
        assert url == "http://test.com/users/vip/1"

    def test_unknown_token_stays_literal(self):
        """Should leave tokens without a value alone"""
        url = substitute_params("http://test.com/:type/:id", {"id": "1"})
        assert url == "http://test.com/:type/1"

    def test_append_query_keeps_insertion_order(self):
        """Should encode the query in insertion order"""
        url = append_query("http://test.com/users", {"type": "2", "category": "3"})
        assert url == "http://test.com/users?type=2&category=3"

    def test_append_query_to_existing_query(self):
        """Should join with & when the URL has a query already"""
        assert append_query("http://test.com/?a=1", {"b": "2"}) == "http://test.com/?a=1&b=2"

    def test_append_empty_query(self):
        assert append_query("http://test.com/", {}) == "http://test.com/"

    def test_prepend_base_url(self):
        """Should prefix relative URLs only"""
        assert prepend_base_url("/users", "https://api.test.com") == "https://api.test.com/users"
        assert prepend_base_url("http://other.com/users", "https://api.test.com") == "http://other.com/users"
        assert prepend_base_url("/users", None) == "/users"

    def test_content_type_alias(self):
        assert content_type_alias("json") == MIME_APPLICATION_JSON
        assert content_type_alias("form") == MIME_APPLICATION_FORM_URLENCODED
        assert content_type_alias("text/plain") == "text/plain"

    def test_redact_headers(self):
        """Should redact sensitive header values"""
        headers = {"Authorization": "Bearer abc", "X-Api-Key": "k", "Accept": "*/*"}
        assert redact_headers(headers) == {
            "Authorization": "[REDACTED]",
            "X-Api-Key": "[REDACTED]",
            "Accept": "*/*",
        }


class TestBodies:
    """Tests for body variants"""

    def test_json_body_is_compact(self):
        assert JsonBody({"name": "tree", "n": 1}).encode() == b'{"name":"tree","n":1}'

    def test_form_body_from_mapping(self):
        """Should expand list values into repeated keys"""
        body = FormBody.from_data({"a": ["1", "2"], "b": "3"})
        assert body.encode() == "a=1&a=2&b=3"

    def test_form_body_from_pairs(self):
        body = FormBody.from_data([("b", "1"), ("a", "2")])
        assert body.encode() == "b=1&a=2"


class TestRequestDescriptor:
    """Tests for RequestDescriptor"""

    @pytest.fixture
    def descriptor(self) -> RequestDescriptor:
        return RequestDescriptor(HttpMethod.POST, "http://test.com/users/:id")

    def test_render_url(self, descriptor: RequestDescriptor):
        """Should substitute params then append the query"""
        descriptor.params["id"] = "123"
        descriptor.query["type"] = "2"
        descriptor.query["category"] = "3"

        request = descriptor.render()

        assert request.url == "http://test.com/users/123?type=2&category=3"
        assert request.method == "POST"

    def test_query_last_write_wins(self, descriptor: RequestDescriptor):
        descriptor.query["type"] = "1"
        descriptor.query["page"] = "1"
        descriptor.query["type"] = "2"
        assert descriptor.render_url() == "http://test.com/users/:id?type=2&page=1"

    def test_method_from_string(self):
        assert RequestDescriptor("get", "http://test.com/").method == HttpMethod.GET

    def test_invalid_method(self):
        with pytest.raises(ValueError):
            RequestDescriptor("TRACE", "http://test.com/")

    def test_path(self, descriptor: RequestDescriptor):
        assert descriptor.path == "/users/:id"

    def test_headers_case_insensitive(self, descriptor: RequestDescriptor):
        """Should set, add and read headers regardless of case"""
        descriptor.set_header("X-Token", "a")
        descriptor.add_header("x-token", "b")

        assert descriptor.get_header("X-TOKEN") == "a"
        assert descriptor.render().headers["X-Token"] == "a, b"

    def test_set_header_replaces(self, descriptor: RequestDescriptor):
        descriptor.add_header("X-Token", "a")
        descriptor.set_header("X-Token", "b")
        assert descriptor.render().headers["X-Token"] == "b"

    def test_default_headers_come_first(self, descriptor: RequestDescriptor):
        """Should place default values ahead of the request's own"""
        descriptor.add_header("X-Key", "own")
        request = descriptor.render([("X-Key", "default"), ("X-Other", "1")])

        assert request.headers["X-Key"] == "default, own"
        assert request.headers["X-Other"] == "1"

    def test_json_body(self, descriptor: RequestDescriptor):
        """Should serialize JSON and set the content type"""
        descriptor.body = JsonBody({"name": "tree"})
        request = descriptor.render()

        assert json.loads(request.body) == {"name": "tree"}
        assert request.headers["Content-Type"] == MIME_APPLICATION_JSON

    def test_json_body_keeps_content_type(self, descriptor: RequestDescriptor):
        """Should not override an explicit content type"""
        descriptor.set_header("Content-Type", "application/vnd.api+json")
        descriptor.body = JsonBody({"name": "tree"})

        assert descriptor.render().headers["Content-Type"] == "application/vnd.api+json"

    def test_form_body_sets_content_type(self, descriptor: RequestDescriptor):
        """Should always send form bodies as x-www-form-urlencoded"""
        descriptor.set_header("Content-Type", MIME_APPLICATION_JSON)
        descriptor.body = FormBody.from_data({"a": "1"})
        request = descriptor.render()

        assert request.body == "a=1"
        assert request.headers["Content-Type"] == MIME_APPLICATION_FORM_URLENCODED

    def test_raw_body_has_no_content_type(self, descriptor: RequestDescriptor):
        """Should send raw bytes without inferring a content type"""
        descriptor.body = RawBody(b"raw-data")
        request = descriptor.render()

        assert request.body == b"raw-data"
        assert "Content-Type" not in request.headers

    def test_render_is_repeatable(self, descriptor: RequestDescriptor):
        """Should render the same request twice without side effects"""
        descriptor.params["id"] = "1"
        descriptor.body = JsonBody({"a": 1})

        first = descriptor.render([("X-Default", "1")])
        second = descriptor.render([("X-Default", "1")])

        assert first.url == second.url
        assert dict(first.headers) == dict(second.headers)
        assert descriptor.get_header("Content-Type") is None

    def test_unencodable_body(self, descriptor: RequestDescriptor):
        """Should raise a build error for bodies JSON cannot encode"""
        descriptor.body = JsonBody({"value": object()})

        with pytest.raises(RequestBuildError) as exc_info:
            descriptor.render()

        assert exc_info.value.code == "BUILD_BODY"
        assert exc_info.value.is_category(DuskErrorCategory.BUILD)

    def test_invalid_url(self):
        """Should raise a build error for URLs without a scheme"""
        descriptor = RequestDescriptor(HttpMethod.GET, "/users")

        with pytest.raises(RequestBuildError) as exc_info:
            descriptor.render()

        assert exc_info.value.code == "BUILD_URL"
