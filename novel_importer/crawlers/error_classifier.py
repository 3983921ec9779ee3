"""
Classification of raw transport failures into NetworkError.

``is_retryable`` is the only input the download orchestrator uses to decide
whether a failed chapter fetch is worth another attempt.
"""

import socket
from typing import Optional

import requests

from novel_importer.utils.errors import NetworkError


HTTP_ERROR_MESSAGES = {
    400: "Bad request parameters (400)",
    401: "Unauthorized access (401)",
    403: "Access forbidden (403)",
    404: "Requested resource not found (404)",
    408: "Request timed out (408)",
    429: "Requests too frequent, please retry later (429)",
    500: "Internal server error (500)",
    502: "Bad gateway (502)",
    503: "Service temporarily unavailable (503)",
    504: "Gateway timeout (504)",
}

TIMEOUT_MESSAGE = "Network request timed out, please retry later"
NO_CONNECTION_MESSAGE = "Cannot reach the server, please check your network connection"


def http_error_message(status_code: int) -> str:
    """Human-readable message for an HTTP status code."""
    message = HTTP_ERROR_MESSAGES.get(status_code)
    if message is not None:
        return message
    if 400 <= status_code < 500:
        return f"Client error ({status_code})"
    if status_code >= 500:
        return f"Server error ({status_code})"
    return f"Network error ({status_code})"


def classify_error(error: BaseException, url: Optional[str] = None) -> NetworkError:
    """
    Convert any failure raised while fetching into a NetworkError.

    Args:
        error: The raw exception
        url: URL being fetched, recorded on the result

    Returns:
        A NetworkError; an existing NetworkError is returned unchanged
    """
    if isinstance(error, NetworkError):
        return error

    details = {"error_type": type(error).__name__, "error": str(error)}

    # ConnectTimeout is both a Timeout and a ConnectionError; timeouts win
    if isinstance(error, (requests.exceptions.Timeout, socket.timeout, TimeoutError)):
        return NetworkError(TIMEOUT_MESSAGE, is_timeout=True, url=url, details=details)

    if isinstance(error, requests.exceptions.HTTPError):
        response = error.response
        if response is not None:
            status_code = response.status_code
            return NetworkError(http_error_message(status_code), status_code=status_code,
                                url=url, details=details)
        return NetworkError(f"Network request failed: {error}", url=url, details=details)

    if isinstance(error, (requests.exceptions.ConnectionError, socket.gaierror)):
        return NetworkError(NO_CONNECTION_MESSAGE, is_no_connection=True, url=url, details=details)

    if isinstance(error, (requests.exceptions.RequestException, OSError)):
        return NetworkError(f"Network connection error: {error}", url=url, details=details)

    return NetworkError(f"Network request failed: {error}", url=url, details=details)


def is_retryable(error: BaseException) -> bool:
    """
    True iff the failure is a timeout, a 5xx status or 429.

    Raw exceptions are classified first.
    """
    network_error = classify_error(error)
    if network_error.is_timeout:
        return True
    status_code = network_error.status_code
    if status_code is None:
        return False
    return status_code >= 500 or status_code == 429


def is_timeout_error(error: BaseException) -> bool:
    return classify_error(error).is_timeout


def is_connection_error(error: BaseException) -> bool:
    return classify_error(error).is_no_connection
