"""
iojournal - client-side consumer for an HTTP event journal

Polls a paginated, cursor-linked journal, dispatches events to listeners,
retries transient failures with exponential backoff and restarts from the
journal origin after errors (at-least-once delivery).
"""

from iojournal.apps.client.journal import JournalClient
from iojournal.apps.poller.finder import find_event_in_journal
from iojournal.apps.poller.poller import JournalPoller
from iojournal.utils.errors import (
    ConfigurationError,
    HttpFailure,
    JournalError,
    NetworkFailure,
    TerminalFailure,
    TimeoutExceeded,
    TransientFailure,
)
from iojournal.utils.retry import RetryEngine, RetryPolicy
from iojournal.utils.schemas import JournalEvent, JournalPage, OutboundEvent, PollerOptions, PollerState

__all__ = [
    "ConfigurationError",
    "HttpFailure",
    "JournalClient",
    "JournalError",
    "JournalEvent",
    "JournalPage",
    "JournalPoller",
    "NetworkFailure",
    "OutboundEvent",
    "PollerOptions",
    "PollerState",
    "RetryEngine",
    "RetryPolicy",
    "TerminalFailure",
    "TimeoutExceeded",
    "TransientFailure",
    "find_event_in_journal",
]
