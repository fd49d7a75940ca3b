"""
Find a single event in a journal.

Built only from JournalPoller primitives: the deadline is checked on every
"poll" notification and the poller is always stopped (and awaited) before
the result or error is returned.
"""

import asyncio
import logging
from typing import Callable, Optional

from iojournal.apps.client.journal import JournalClient
from iojournal.apps.poller.poller import ERROR, EVENT, POLL, JournalPoller
from iojournal.utils.errors import TimeoutExceeded
from iojournal.utils.schemas import JournalEvent, PollerOptions

logger = logging.getLogger(__name__)


async def find_event_in_journal(
    client: JournalClient,
    journal_url: str,
    timeout_ms: int,
    predicate: Callable[[JournalEvent], bool],
    options: Optional[PollerOptions] = None,
) -> JournalEvent:
    """
    Poll a journal until an event matches the predicate.

    Args:
        client: Journal client
        journal_url: Absolute journal URL
        timeout_ms: Time budget; checked each time a poll cycle starts
        predicate: Returns True for the wanted event
        options: Poller options (restart_url / latest / interval_ms)

    Returns:
        The first matching event

    Raises:
        TimeoutExceeded: A poll cycle started after the deadline
        JournalError: The first polling error (the poller does not retry on our behalf)
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000.0
    outcome: asyncio.Future = loop.create_future()

    poller = JournalPoller(client, journal_url, options)

    def on_poll() -> None:
        if not outcome.done() and loop.time() >= deadline:
            outcome.set_exception(TimeoutExceeded(f"Timeout, unable to find event within {timeout_ms}ms"))
            poller.request_stop()

    def on_event(event: JournalEvent) -> None:
        if not outcome.done() and predicate(event):
            outcome.set_result(event)
            poller.request_stop()

    def on_error(error: Exception) -> None:
        if not outcome.done():
            outcome.set_exception(error)
            poller.request_stop()

    poller.on(POLL, on_poll)
    poller.on(EVENT, on_event)
    poller.on(ERROR, on_error)

    try:
        event = await outcome
        logger.info("Event found in journal", extra={"event_id": event.id, "event_code": event.code})
        return event
    finally:
        await poller.stop()
