"""
HTTP client used as the transport capability of the import engine.
"""

import time
import threading
from typing import Dict, List, Optional, Any, Union
from dataclasses import dataclass, field
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from novel_importer.utils.logging import get_business_logger
from novel_importer.crawlers.error_classifier import classify_error


DEFAULT_USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
]


@dataclass
class RetryConfig:
    """Transport-level retry configuration (chapter retries live in the orchestrator)."""
    max_attempts: int = 0
    backoff_factor: float = 0.5
    retry_on_status: List[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])


class UserAgentRotator:
    """Rotates user agents to avoid detection."""

    def __init__(self, user_agents: Optional[List[str]] = None):
        self.user_agents = list(user_agents or DEFAULT_USER_AGENTS)
        self.current_index = 0
        self._lock = threading.Lock()

    def get_next_user_agent(self) -> str:
        with self._lock:
            user_agent = self.user_agents[self.current_index]
            self.current_index = (self.current_index + 1) % len(self.user_agents)
            return user_agent


class DomainRateLimiter:
    """Enforces a minimum interval between requests to the same host."""

    def __init__(self, min_interval: float = 0.0):
        self.min_interval = min_interval
        self._last_request: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.logger = get_business_logger('crawler')

    def wait_if_needed(self, url: str) -> float:
        """
        Sleep until the host may be contacted again.

        Returns:
            Seconds waited
        """
        if self.min_interval <= 0:
            return 0.0

        domain = urlparse(url).netloc or "unknown"
        with self._lock:
            now = time.monotonic()
            last = self._last_request.get(domain)
            delay = 0.0 if last is None else max(0.0, last + self.min_interval - now)
            # Reserve the next slot for this host before sleeping
            self._last_request[domain] = now + delay

        if delay > 0:
            self.logger.debug("Rate limiting delay", domain=domain, delay_seconds=round(delay, 3))
            time.sleep(delay)
        return delay


class HTTPClient:
    """Blocking HTTP client returning page text or raising a classified NetworkError."""

    def __init__(self,
                 timeout: float = 15.0,
                 user_agents: Optional[List[str]] = None,
                 retry_config: Optional[RetryConfig] = None,
                 min_request_interval: float = 0.0):
        """
        Initialize HTTP client.

        Args:
            timeout: Request timeout in seconds
            user_agents: User agents to rotate through
            retry_config: Transport-level retry configuration
            min_request_interval: Minimum seconds between requests to one host
        """
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.user_agent_rotator = UserAgentRotator(user_agents)
        self.rate_limiter = DomainRateLimiter(min_request_interval)
        self.session = self._create_session()
        self.logger = get_business_logger('crawler')

    def _create_session(self) -> requests.Session:
        """Create requests session with retry configuration."""
        session = requests.Session()

        retry_strategy = Retry(
            total=self.retry_config.max_attempts,
            backoff_factor=self.retry_config.backoff_factor,
            status_forcelist=self.retry_config.retry_on_status,
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            # Hand the final response back so its status can be classified
            raise_on_status=False
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def get_text(self, url: str,
                 headers: Optional[Dict[str, str]] = None,
                 params: Optional[Dict[str, Any]] = None) -> str:
        """
        GET a page and return its decoded body.

        Raises:
            NetworkError: Classified transport or HTTP failure
        """
        response = self._request("GET", url, headers=headers, params=params)
        return self._decode(response)

    def post_text(self, url: str,
                  data: Optional[Union[Dict[str, Any], str]] = None,
                  json: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> str:
        """
        POST and return the decoded body.

        Raises:
            NetworkError: Classified transport or HTTP failure
        """
        response = self._request("POST", url, data=data, json=json, headers=headers)
        return self._decode(response)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        self.rate_limiter.wait_if_needed(url)

        kwargs['headers'] = self._prepare_headers(kwargs.get('headers'))
        kwargs.setdefault('timeout', self.timeout)

        self.logger.debug("Making HTTP request", method=method, url=url)
        try:
            response = self.session.request(method, url, **kwargs)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            network_error = classify_error(e, url)
            self.logger.warning("HTTP request failed", method=method, url=url,
                                status_code=network_error.status_code,
                                error=network_error.message)
            raise network_error from e

        self.logger.debug("HTTP request successful", method=method, url=url,
                          status_code=response.status_code, size=len(response.content))
        return response

    def _decode(self, response: requests.Response) -> str:
        # requests falls back to ISO-8859-1 when no charset is declared,
        # which garbles GBK/GB2312 novel sites
        if not response.encoding or response.encoding.lower() == 'iso-8859-1':
            response.encoding = response.apparent_encoding
        return response.text

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        default_headers = {
            'User-Agent': self.user_agent_rotator.get_next_user_agent(),
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'zh-CN,zh;q=0.9,en-US;q=0.8,en;q=0.5',
            'Connection': 'keep-alive',
        }

        if headers:
            return {**default_headers, **headers}
        return default_headers

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
