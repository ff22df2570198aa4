"""
Fetcher package for blog replay.

This package handles talking to the platform APIs: a blocking HTTP client and
the retry engine that decides which failures are worth another attempt.
"""
from replay.fetcher.http_client import HTTPClient
from replay.fetcher.retry import is_retryable, retry_request

__all__ = [
    "HTTPClient",
    "is_retryable",
    "retry_request",
]
