"""
HTTP client for registry APIs.

Wraps a ``requests.Session`` with a shared token-bucket rate limiter and
retries with backoff for transient failures. Requests that never produce a
response return ``None``; callers report that as the ``NETWORK_UNAVAILABLE``
status instead of raising.
"""

import logging
import time
from threading import Lock
from typing import Optional

import requests

from registry_cleaner.models import NETWORK_UNAVAILABLE
from registry_cleaner.retry_utils import RETRYABLE_STATUS_CODES, TransientHTTPError, retry_with_backoff

logger = logging.getLogger(__name__)

USER_AGENT = "registry-cleaner/1.0"


def status_of(response: Optional[requests.Response]) -> int:
    """HTTP status of a response, or the network sentinel when there is none."""
    if response is None:
        return NETWORK_UNAVAILABLE
    return response.status_code


class RegistryHttpClient:
    """Rate limited, retrying HTTP client shared by all workers of a run."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        rate_limit_enabled: bool = True,
        rate_limit_rps: float = 10.0,
        rate_limit_burst: int = 20,
    ):
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

        # Rate limiting
        self.rate_limit_enabled = rate_limit_enabled
        self.rate_limit_rps = rate_limit_rps
        self.rate_limit_burst = rate_limit_burst
        self._rate_limiter_lock = Lock()
        if self.rate_limit_enabled:
            self._init_rate_limiter()

    @classmethod
    def from_config(cls, config_manager, session: Optional[requests.Session] = None) -> "RegistryHttpClient":
        return cls(
            session=session,
            timeout=config_manager.get_retry_timeout(),
            max_retries=config_manager.get_max_retries(),
            initial_delay=config_manager.get_retry_initial_delay(),
            max_delay=config_manager.get_retry_max_delay(),
            exponential_base=config_manager.get_retry_exponential_base(),
            jitter=config_manager.get_retry_jitter(),
            rate_limit_enabled=config_manager.get_rate_limit_enabled(),
            rate_limit_rps=config_manager.get_rate_limit_rps(),
            rate_limit_burst=config_manager.get_rate_limit_burst(),
        )

    def _init_rate_limiter(self):
        """Initialize token bucket rate limiter."""
        self._tokens = float(self.rate_limit_burst)
        self._last_update = time.time()
        self._token_refill_rate = self.rate_limit_rps

    def _acquire_rate_limit_token(self):
        """Acquire a token from the rate limiter, waiting if necessary."""
        if not self.rate_limit_enabled:
            return

        with self._rate_limiter_lock:
            now = time.time()
            elapsed = now - self._last_update

            # Refill tokens based on elapsed time
            self._tokens = min(self.rate_limit_burst, self._tokens + elapsed * self._token_refill_rate)
            self._last_update = now

            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return

            wait_time = (1.0 - self._tokens) / self._token_refill_rate
            if wait_time > 0:
                logger.debug(f"Rate limiting: waiting {wait_time:.2f}s (tokens: {self._tokens:.2f})")
                time.sleep(wait_time)
                self._tokens = 0.0
                self._last_update = time.time()

    def request(self, method: str, url: str, **kwargs) -> Optional[requests.Response]:
        """Send a request, retrying connection errors, timeouts, 429 and 5xx.

        Returns the final response (which may still be a 429/5xx once retries
        are exhausted), or None when the endpoint could not be reached.
        """
        kwargs.setdefault("timeout", self.timeout)

        @retry_with_backoff(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
        )
        def _execute():
            self._acquire_rate_limit_token()
            response = self.session.request(method, url, **kwargs)
            if response.status_code in RETRYABLE_STATUS_CODES:
                raise TransientHTTPError(response)
            return response

        try:
            return _execute()
        except TransientHTTPError as e:
            return e.response
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {url} failed: {type(e).__name__}: {e}")
            return None

    def get(self, url: str, **kwargs) -> Optional[requests.Response]:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> Optional[requests.Response]:
        return self.request("POST", url, **kwargs)

    def head(self, url: str, **kwargs) -> Optional[requests.Response]:
        return self.request("HEAD", url, **kwargs)

    def delete(self, url: str, **kwargs) -> Optional[requests.Response]:
        return self.request("DELETE", url, **kwargs)

    def close(self) -> None:
        self.session.close()
