"""
Journal Client App - HTTP access to the event journal service

Responsibilities:
- Fetch and decode journal pages (events + Link next + Retry-After)
- Publish events to the ingress API with 204-aware retries
- Register providers, event types and journals
"""

from iojournal.apps.client.journal import Groups, JournalClient, Metadata

__all__ = ["Groups", "JournalClient", "Metadata"]
