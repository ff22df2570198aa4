"""
Exception hierarchy for blog replay.

Everything raised on purpose by this package derives from ReplayError, so the
command line entry point can report it without a traceback. Platform specific
exceptions (httpx, JSON decoding, pydantic validation) are translated into
these types inside ``replay.blogs`` and never escape it.
"""
from typing import Any, Dict, Optional


class ReplayError(Exception):
    """Base class for all blog replay errors."""


class ConfigurationError(ReplayError):
    """Invalid or missing configuration."""


class RemoteError(ReplayError):
    """
    A remote API call failed.

    ``transient`` is True when the final failure was a server error that was
    retried until the attempt budget ran out, False for failures that are never
    retried (client errors, malformed bodies, missing headers).
    """

    def __init__(self, message: str, transient: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code


class ConsistencyError(ReplayError):
    """The remote data contradicted itself (counts, author ids, publication ids)."""


class StorageError(ReplayError):
    """A durable store operation failed and was rolled back."""


class DetectionError(ReplayError):
    """No supported platform recognised the blog URL."""


class NotThisPlatform(DetectionError):
    """A single platform probe did not recognise the blog URL."""


class FeedFileError(ReplayError):
    """An existing rendered feed file could not be read."""


class FeedGenerationError(ReplayError):
    """
    One or more feeds failed during a generate pass over all feeds.

    ``results`` holds what the feeds that did not fail replayed, ``failures``
    the error of each feed that did.
    """

    def __init__(self, results: Dict[str, Any], failures: Dict[str, ReplayError]):
        super().__init__(f"Failed to generate {len(failures)} feed(s): {', '.join(sorted(failures))}")
        self.results = results
        self.failures = failures
