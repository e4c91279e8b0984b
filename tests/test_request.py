"""Tests for burrow.http.request — the immutable request value."""

import dataclasses

import pytest

from burrow.http.headers import Headers
from burrow.http.request import Request


def _request(target: str = "/", **kwargs) -> Request:
    kwargs.setdefault("headers", Headers([("host", "example.test:8080")]))
    return Request(method="GET", target=target, **kwargs)


class TestRequest:
    def test_path_and_query(self) -> None:
        request = _request("/machines/mars?verbose=1")
        assert request.path == "/machines/mars"
        assert request.query_string == "verbose=1"

    def test_url_from_host_header(self) -> None:
        url = _request("/machines?x=1").url()
        assert (url.scheme, url.netloc, url.path, url.query) == ("http", "example.test:8080", "/machines", "x=1")

    @pytest.mark.parametrize("host", ["example.test?", "example.test/admin", "example.test#frag"])
    def test_host_cannot_rewrite_path(self, host: str) -> None:
        url = _request("/machines?x=1", headers=Headers([("host", host)])).url()
        assert (url.path, url.query) == ("/machines", "x=1")
        assert url.netloc == "example.test"

    def test_url_prefers_authority(self) -> None:
        url = _request("/", scheme="https", authority="api.example.test").url()
        assert url.geturl() == "https://api.example.test/"

    def test_absolute_form_target(self) -> None:
        assert _request("http://other.test/x").url().netloc == "other.test"

    def test_host_default(self) -> None:
        assert _request(headers=Headers()).host == "localhost"

    def test_body_helpers(self) -> None:
        request = _request(body=b'{"id": "mars"}', headers=Headers([("content-type", "application/json")]))
        assert request.text() == '{"id": "mars"}'
        assert request.json() == {"id": "mars"}
        assert request.content_type == "application/json"

    def test_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            _request().method = "POST"  # type: ignore[misc]
