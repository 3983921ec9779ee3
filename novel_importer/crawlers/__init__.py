"""
Page fetching and extraction components.
"""

from .error_classifier import classify_error, http_error_message, is_retryable
from .http_client import HTTPClient, RetryConfig, UserAgentRotator, DomainRateLimiter
from .markup import MarkupQuery, SoupMarkupQuery
from .extraction import ExtractionService, clean_content

__all__ = [
    'classify_error',
    'http_error_message',
    'is_retryable',
    'HTTPClient',
    'RetryConfig',
    'UserAgentRotator',
    'DomainRateLimiter',
    'MarkupQuery',
    'SoupMarkupQuery',
    'ExtractionService',
    'clean_content'
]
