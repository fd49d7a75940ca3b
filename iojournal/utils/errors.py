"""
Error taxonomy shared by the journal client, retry engine and poller.

- NetworkFailure: no HTTP response was received
- TransientFailure: a retryable HTTP status survived the retry budget
- TerminalFailure: a non-retryable status or a malformed response
- TimeoutExceeded: a caller-level time budget ran out
"""

from typing import Optional


class JournalError(Exception):
    """Base class for all errors raised by iojournal."""


class ConfigurationError(JournalError):
    """Required configuration is missing or invalid."""


class NetworkFailure(JournalError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class HttpFailure(JournalError):
    """An HTTP response was received but its status is a failure."""

    def __init__(self, status: int, reason: str = "", url: Optional[str] = None) -> None:
        self.status = status
        self.reason = reason
        self.url = url
        super().__init__(f"{status} {reason}".strip())


class TransientFailure(HttpFailure):
    """Retryable HTTP failure (5xx, or 204 on send) after retries ran out."""


class TerminalFailure(HttpFailure):
    """Non-retryable HTTP failure or a response that could not be decoded."""


class TimeoutExceeded(JournalError):
    """A time budget was exhausted before the awaited outcome happened."""
