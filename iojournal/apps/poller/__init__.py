"""
Poller App - Continuous journal consumption

Responsibilities:
- Poll the journal page by page, following Link rel="next"
- Dispatch events in response order to poll/event/error listeners
- Honour Retry-After on empty pages
- Restart from the journal origin after any failure (at-least-once)
- Cooperative stop that lets the in-flight cycle finish
- find_event_in_journal() for waiting on one specific event
"""

from iojournal.apps.poller.finder import find_event_in_journal
from iojournal.apps.poller.poller import ERROR, EVENT, POLL, JournalPoller

__all__ = ["ERROR", "EVENT", "POLL", "JournalPoller", "find_event_in_journal"]
