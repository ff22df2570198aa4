"""
HTTP client module for blog replay.

This module provides a blocking HTTP client for the platform APIs. It wraps an
httpx.Client with the project user agent and timeout, single-attempt GET
helpers, the retry engine and the courtesy delay between page fetches.
"""
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import httpx
import structlog

from replay import USER_AGENT
from replay.config import HTTPConfig
from replay.fetcher.retry import DEFAULT_BASE_DELAY, DEFAULT_JITTER, retry_request

# Set up structured logger
logger = structlog.get_logger()

R = TypeVar("R")

DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_PAGE_DELAY = 1.0  # seconds


class HTTPClient:
    """
    Blocking HTTP client for the platform APIs.

    Requests made through ``get`` are single attempts; callers wrap whole
    operations (request plus decoding) in ``retrying`` so a retry repeats the
    operation, not just the socket call.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_RETRY_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_jitter: float = DEFAULT_JITTER,
        page_delay: float = DEFAULT_PAGE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the HTTP client.

        Args:
            client: Preconfigured httpx client (tests pass one with a mock transport)
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per operation
            retry_base_delay: Delay before the first retry in seconds
            retry_jitter: Upper bound of random jitter added to retry delays
            page_delay: Pause between successive page fetches in seconds
            sleep: Blocking sleep function
            default_headers: Default headers to include in all requests
        """
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_jitter = retry_jitter
        self.page_delay = page_delay
        self.sleep = sleep

        self.default_headers = default_headers or {}
        if "User-Agent" not in self.default_headers:
            self.default_headers["User-Agent"] = USER_AGENT

        if client is None:
            client = httpx.Client(
                timeout=timeout,
                follow_redirects=True,
                headers=self.default_headers,
            )
        else:
            client.headers.update(self.default_headers)
        self.client = client

    @classmethod
    def from_config(cls, config: HTTPConfig, **kwargs: Any) -> "HTTPClient":
        return cls(
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            retry_jitter=config.retry_jitter,
            page_delay=config.page_delay_seconds,
            **kwargs,
        )

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """
        Make a single GET request.

        Raises:
            httpx.HTTPStatusError: If the response status is 4xx or 5xx
            httpx.HTTPError: On transport failures
        """
        start_time = time.monotonic()
        response = self.client.get(url, params=params)
        logger.debug(
            "HTTP request completed",
            url=str(response.request.url),
            status_code=response.status_code,
            elapsed_seconds=round(time.monotonic() - start_time, 3),
        )
        response.raise_for_status()
        return response

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a URL and decode its JSON body.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return self.get(url, params=params).json()

    def retrying(self, action: Callable[[], R]) -> R:
        """Run ``action`` under the retry engine with this client's settings."""
        return retry_request(
            self.max_retries,
            action,
            base_delay=self.retry_base_delay,
            jitter=self.retry_jitter,
            sleep=self.sleep,
        )

    def pause(self) -> None:
        """Courtesy delay between successive page fetches of one stream."""
        if self.page_delay > 0:
            self.sleep(self.page_delay)
