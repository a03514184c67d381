"""
Tests for the ASGI helpers used by the digest auth middleware.
"""

import pytest
from starlette.requests import Request

from digestauth.middleware import path_is_protected, request_target, unauthorized_response


def make_request(path="/dir/index.html", raw_path=None, query_string=b""):
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": query_string,
        "headers": [],
    }
    if raw_path is not None:
        scope["raw_path"] = raw_path
    return Request(scope)


class TestRequestTarget:
    """Test suite for request_target."""

    def test_path_only(self):
        assert request_target(make_request()) == "/dir/index.html"

    def test_with_query(self):
        request = make_request(path="/search", query_string=b"q=lion&page=2")
        assert request_target(request) == "/search?q=lion&page=2"

    def test_raw_path_preferred(self):
        """Test that the undecoded path is used, as the client hashed it."""
        request = make_request(path="/dir/my file.html", raw_path=b"/dir/my%20file.html")
        assert request_target(request) == "/dir/my%20file.html"


class TestPathIsProtected:
    """Test suite for path_is_protected."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/dir", True),
            ("/dir/", True),
            ("/dir/index.html", True),
            ("/directory", False),
            ("/", False),
            ("/other/dir", False),
        ],
    )
    def test_prefix_matching(self, path, expected):
        assert path_is_protected(path, ["/dir"]) is expected

    def test_trailing_slash_in_prefix(self):
        assert path_is_protected("/dir/index.html", ["/dir/"])

    def test_root_protects_everything(self):
        assert path_is_protected("/anything", ["/"])

    def test_multiple_prefixes(self):
        assert path_is_protected("/b/x", ["/a", "/b"])
        assert not path_is_protected("/c", ["/a", "/b"])


def test_unauthorized_response():
    response = unauthorized_response('Digest realm="r", qop="auth", nonce="n", opaque="o"')

    assert response.status_code == 401
    assert response.body == b"Unauthorized"
    assert response.headers["www-authenticate"] == 'Digest realm="r", qop="auth", nonce="n", opaque="o"'
