"""
Unit tests for the HTTP client.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from novel_importer.crawlers.http_client import HTTPClient, UserAgentRotator, DomainRateLimiter
from novel_importer.utils.errors import NetworkError


def _response(status_code=200, text="<html></html>", encoding="utf-8"):
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.encoding = encoding
    response.apparent_encoding = "GB2312"
    response.text = text
    response.content = text.encode("utf-8")
    if status_code >= 400:
        error = requests.exceptions.HTTPError(f"{status_code}", response=response)
        response.raise_for_status.side_effect = error
    return response


class TestHTTPClient:

    def setup_method(self):
        self.client = HTTPClient(timeout=5.0)

    def teardown_method(self):
        self.client.close()

    def test_get_text_returns_body(self):
        with patch.object(self.client.session, "request", return_value=_response(text="hello")) as request:
            assert self.client.get_text("http://example.com/book") == "hello"

        method, url = request.call_args[0]
        assert method == "GET"
        assert url == "http://example.com/book"
        assert request.call_args[1]["timeout"] == 5.0
        assert "User-Agent" in request.call_args[1]["headers"]

    def test_legacy_encoding_replaced_by_detected_one(self):
        response = _response(encoding="ISO-8859-1")
        with patch.object(self.client.session, "request", return_value=response):
            self.client.get_text("http://example.com")
        assert response.encoding == "GB2312"

    def test_http_error_classified(self):
        with patch.object(self.client.session, "request", return_value=_response(status_code=404)):
            with pytest.raises(NetworkError) as exc_info:
                self.client.get_text("http://example.com/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Requested resource not found (404)"
        assert exc_info.value.url == "http://example.com/missing"

    def test_timeout_classified(self):
        with patch.object(self.client.session, "request",
                          side_effect=requests.exceptions.ReadTimeout("slow")):
            with pytest.raises(NetworkError) as exc_info:
                self.client.get_text("http://example.com")
        assert exc_info.value.is_timeout is True

    def test_post_text_sends_payload(self):
        with patch.object(self.client.session, "request", return_value=_response(text="ok")) as request:
            assert self.client.post_text("http://example.com/search", data={"q": "novel"}) == "ok"

        assert request.call_args[0][0] == "POST"
        assert request.call_args[1]["data"] == {"q": "novel"}

    def test_custom_headers_override_defaults(self):
        with patch.object(self.client.session, "request", return_value=_response()) as request:
            self.client.get_text("http://example.com", headers={"Referer": "http://example.com/"})
        assert request.call_args[1]["headers"]["Referer"] == "http://example.com/"


class TestUserAgentRotator:

    def test_round_robin(self):
        rotator = UserAgentRotator(["a", "b"])
        assert [rotator.get_next_user_agent() for _ in range(3)] == ["a", "b", "a"]


class TestDomainRateLimiter:

    def test_disabled_never_waits(self):
        limiter = DomainRateLimiter(0.0)
        assert limiter.wait_if_needed("http://a.com/1") == 0.0
        assert limiter.wait_if_needed("http://a.com/2") == 0.0

    def test_second_request_to_same_host_waits(self):
        limiter = DomainRateLimiter(10.0)
        with patch("novel_importer.crawlers.http_client.time.sleep") as sleep:
            assert limiter.wait_if_needed("http://a.com/1") == 0.0
            delay = limiter.wait_if_needed("http://a.com/2")
            other_host = limiter.wait_if_needed("http://b.com/1")

        assert delay > 0
        assert other_host == 0.0
        sleep.assert_called_once()
