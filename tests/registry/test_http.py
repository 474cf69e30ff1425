"""
Tests for the httpx-backed HTTP executor.

Uses httpx.MockTransport so no network access is needed.
"""
from __future__ import annotations

import httpx
import pytest

from chartpush.registry.errors import TransportError
from chartpush.registry.http import HttpExecutor, HttpResponse, HttpxExecutor
from chartpush.registry.media_types import USER_AGENT


def _executor(handler, retries=0) -> HttpxExecutor:
    client = httpx.Client(transport=httpx.MockTransport(handler), headers={"User-Agent": USER_AGENT})
    return HttpxExecutor(retries=retries, client=client)


class TestHttpResponse:
    """Test the response value object."""

    def test_header_lookup_is_case_insensitive(self):
        resp = HttpResponse(200, {"Docker-Content-Digest": ["sha256:abc"]})
        assert resp.header("docker-content-digest") == "sha256:abc"
        assert resp.header("DOCKER-CONTENT-DIGEST") == "sha256:abc"
        assert resp.header("Location") is None

    def test_first_value_wins(self):
        resp = HttpResponse(401, {"www-authenticate": ['Bearer realm="a"', 'Basic realm="b"']})
        assert resp.header("WWW-Authenticate") == 'Bearer realm="a"'

    def test_success_range(self):
        assert HttpResponse(201).is_success
        assert HttpResponse(202).is_success
        assert not HttpResponse(301).is_success
        assert not HttpResponse(404).is_success

    def test_text(self):
        assert HttpResponse(400, content=b"bad digest").text == "bad digest"


class TestHttpxExecutor:
    """Test request/response translation."""

    def test_implements_protocol(self):
        assert isinstance(_executor(lambda request: httpx.Response(200)), HttpExecutor)

    def test_request_translation(self):
        """Test method, URL, headers and body reach the transport, and the response comes back."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["Content-Type"]
            seen["user_agent"] = request.headers["User-Agent"]
            seen["body"] = request.read()
            return httpx.Response(201, headers={"Docker-Content-Digest": "sha256:abc"}, content=b"ok")

        with _executor(handler) as executor:
            resp = executor.request(
                "PUT",
                "https://r.example.com/v2/u/c/blobs/uploads/1?digest=sha256:abc",
                {"Content-Type": "application/octet-stream"},
                b"payload",
            )

        assert seen == {
            "method": "PUT",
            "url": "https://r.example.com/v2/u/c/blobs/uploads/1?digest=sha256:abc",
            "content_type": "application/octet-stream",
            "user_agent": USER_AGENT,
            "body": b"payload",
        }
        assert resp.status_code == 201
        assert resp.header("Docker-Content-Digest") == "sha256:abc"
        assert resp.content == b"ok"

    def test_streamed_body(self):
        """Test an iterable of chunks is sent as one body."""
        received = []

        def handler(request):
            received.append(request.read())
            return httpx.Response(201)

        executor = _executor(handler)
        executor.request("PUT", "https://r.example.com/x", {"Content-Length": "6"}, iter([b"abc", b"def"]))
        assert received == [b"abcdef"]

    def test_non_success_status_is_returned(self):
        """Test error statuses are data, not exceptions."""
        executor = _executor(lambda request: httpx.Response(404))
        assert executor.request("HEAD", "https://r.example.com/v2/u/c/blobs/sha256:1").status_code == 404

    def test_network_error_becomes_transport_error(self):
        """Test httpx errors are wrapped and chained."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError, match="Network error during GET") as exc_info:
            _executor(handler).request("GET", "https://r.example.com/v2/")
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    def test_no_retry_by_default(self):
        attempts = []

        def handler(request):
            attempts.append(1)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            _executor(handler).request("HEAD", "https://r.example.com/v2/")
        assert len(attempts) == 1

    def test_connect_errors_retried_when_enabled(self, monkeypatch):
        """Test connection failures are retried up to the configured count."""
        monkeypatch.setattr("time.sleep", lambda seconds: None)
        attempts = []

        def handler(request):
            attempts.append(1)
            if len(attempts) < 3:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        resp = _executor(handler, retries=2).request("HEAD", "https://r.example.com/v2/")
        assert resp.status_code == 200
        assert len(attempts) == 3

    def test_read_errors_not_retried(self, monkeypatch):
        """Test failures after the request was sent are not retried."""
        monkeypatch.setattr("time.sleep", lambda seconds: None)
        attempts = []

        def handler(request):
            attempts.append(1)
            raise httpx.ReadError("reset", request=request)

        with pytest.raises(TransportError):
            _executor(handler, retries=3).request("PUT", "https://r.example.com/x", content=b"x")
        assert len(attempts) == 1
