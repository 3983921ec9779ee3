"""
Custom exception classes and error handling utilities.
"""

from typing import Optional, Dict, Any, List


class NovelImporterError(Exception):
    """Base exception for all novel importer errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NetworkError(NovelImporterError):
    """Classified transport or HTTP failure."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        is_timeout: bool = False,
        is_no_connection: bool = False,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.is_timeout = is_timeout
        self.is_no_connection = is_no_connection
        self.url = url

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500

    def __repr__(self) -> str:
        return (
            f"NetworkError(message={self.message!r}, status_code={self.status_code}, "
            f"is_timeout={self.is_timeout}, is_no_connection={self.is_no_connection})"
        )


class ParseError(NovelImporterError):
    """Raised when a page cannot be turned into the expected structure."""

    def __init__(self, message: str, url: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.url = url


class ValidationError(NovelImporterError):
    """Exception raised for data validation failures."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        missing_fields: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.field = field
        self.missing_fields = list(missing_fields or [])


class DatabaseError(NovelImporterError):
    """Exception raised during database operations."""
    pass


class ConfigurationError(NovelImporterError):
    """Exception raised for configuration-related issues."""
    pass


class RuleNotFoundError(NovelImporterError):
    """Raised when no parser rule applies to a URL."""
    pass


class DownloadInProgressError(NovelImporterError):
    """Raised when a download is requested while another session is active."""
    pass
