"""
Property-based tests for network error classification.

**Feature: web-novel-importer, Property 2: Retryable iff timeout, 5xx or 429**
"""

import socket

import requests
from hypothesis import given, strategies as st

from novel_importer.crawlers.error_classifier import (
    HTTP_ERROR_MESSAGES,
    TIMEOUT_MESSAGE,
    NO_CONNECTION_MESSAGE,
    classify_error,
    http_error_message,
    is_retryable,
    is_timeout_error,
    is_connection_error
)
from novel_importer.utils.errors import NetworkError


def _http_error(status_code: int) -> requests.exceptions.HTTPError:
    response = requests.Response()
    response.status_code = status_code
    return requests.exceptions.HTTPError(f"{status_code} error", response=response)


class TestRetryability:

    @given(status_code=st.integers(min_value=100, max_value=599), is_timeout=st.booleans())
    def test_retryable_table(self, status_code, is_timeout):
        error = NetworkError("failure", status_code=status_code, is_timeout=is_timeout)
        expected = is_timeout or status_code >= 500 or status_code == 429
        assert is_retryable(error) == expected

    def test_no_status_and_no_timeout_is_not_retryable(self):
        assert is_retryable(NetworkError("offline", is_no_connection=True)) is False

    @given(status_code=st.integers(min_value=400, max_value=599))
    def test_raw_http_errors_classified_before_deciding(self, status_code):
        expected = status_code >= 500 or status_code == 429
        assert is_retryable(_http_error(status_code)) == expected

    def test_raw_timeout_is_retryable(self):
        assert is_retryable(requests.exceptions.ReadTimeout("slow")) is True
        assert is_retryable(socket.timeout("slow")) is True


class TestMessages:

    def test_fixed_table_messages(self):
        assert http_error_message(404) == "Requested resource not found (404)"
        assert http_error_message(429) == "Requests too frequent, please retry later (429)"
        assert http_error_message(503) == "Service temporarily unavailable (503)"

    def test_generic_messages(self):
        assert http_error_message(418) == "Client error (418)"
        assert http_error_message(507) == "Server error (507)"
        assert http_error_message(302) == "Network error (302)"

    @given(status_code=st.integers(min_value=100, max_value=999))
    def test_every_code_gets_a_message_containing_it(self, status_code):
        message = http_error_message(status_code)
        assert str(status_code) in message
        if status_code in HTTP_ERROR_MESSAGES:
            assert message == HTTP_ERROR_MESSAGES[status_code]


class TestClassification:

    def test_network_error_passes_through(self):
        original = NetworkError("already classified", status_code=500)
        assert classify_error(original) is original

    def test_timeout(self):
        error = classify_error(requests.exceptions.ConnectTimeout("connect timeout"), url="http://a.com")
        assert error.is_timeout is True
        assert error.message == TIMEOUT_MESSAGE
        assert error.url == "http://a.com"
        assert is_timeout_error(requests.exceptions.Timeout())

    def test_connection_error(self):
        error = classify_error(requests.exceptions.ConnectionError("refused"))
        assert error.is_no_connection is True
        assert error.message == NO_CONNECTION_MESSAGE
        assert is_connection_error(socket.gaierror("name resolution"))

    def test_http_error_carries_status(self):
        error = classify_error(_http_error(404))
        assert error.status_code == 404
        assert error.message == "Requested resource not found (404)"
        assert error.is_timeout is False

    def test_other_request_exception(self):
        error = classify_error(requests.exceptions.TooManyRedirects("loop"))
        assert error.message.startswith("Network connection error:")

    def test_unknown_exception(self):
        error = classify_error(ValueError("weird"))
        assert error.message == "Network request failed: weird"
        assert error.status_code is None
