"""
Pydantic Schemas - Data Validation Models

Defines the schemas used throughout the journal consumer:
- Journal pages and events (decoded responses)
- Journal cursor and poller state / options
- Outbound events and the ingress envelope sent on the wire
- Registration requests (providers, event types, journals)

Usage:
    from iojournal.utils.schemas import JournalPage

    page = JournalPage(events=[...], next_url="https://.../journal?since=abc")
"""

import base64
from enum import Enum
from typing import Any, Optional, Union

import orjson
from pydantic import BaseModel, Field, validator


class JournalEvent(BaseModel):
    """One journal event.

    The consumer does not interpret events: id, code and payload are exposed
    when present and every other key is preserved as sent by the server.
    """

    id: Optional[Union[str, int]] = Field(default=None, description="Event id")
    code: Optional[str] = Field(default=None, description="Event type code")
    payload: Any = Field(default=None, description="Opaque event payload")

    class Config:
        extra = "allow"


class JournalPage(BaseModel):
    """One decoded journal response (HTTP 200 or 204)."""

    events: list[JournalEvent] = Field(default_factory=list, description="Events in response order")
    next_url: str = Field(..., min_length=1, description="Absolute URL of the next page")
    retry_after_ms: Optional[int] = Field(default=None, description="Retry-After hint in milliseconds")


class JournalCursor(BaseModel):
    """Read position in the journal.

    current_url only ever holds an absolute URL: the origin, a restart URL
    supplied by the caller, or a `next` link resolved against the page URL.
    """

    origin_url: str = Field(..., min_length=1)
    current_url: str = Field(..., min_length=1)
    restart_on_error_url: str = Field(..., min_length=1)

    @classmethod
    def start(cls, origin_url: str, restart_url: Optional[str] = None) -> "JournalCursor":
        return cls(
            origin_url=origin_url,
            current_url=restart_url or origin_url,
            restart_on_error_url=origin_url,
        )

    def advance(self, next_url: str) -> None:
        self.current_url = next_url

    def reset(self) -> None:
        self.current_url = self.restart_on_error_url


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPING = "stopping"
    STOPPED = "stopped"


class PollerOptions(BaseModel):
    """Caller configuration for a JournalPoller."""

    restart_url: Optional[str] = Field(default=None, description="Resume from a previously received next link")
    latest: bool = Field(default=False, description="Start from (and restart at) the latest events")
    interval_ms: Optional[int] = Field(default=None, ge=0, description="Fixed idle / error interval")


class OutboundEvent(BaseModel):
    """Event to publish through the ingress API."""

    provider: Optional[str] = Field(default=None, description="Provider id, falls back to the configured default")
    code: str = Field(..., min_length=1, description="Event type code")
    payload: Any = Field(default_factory=dict, description="JSON-serializable payload")


class IngressEnvelope(BaseModel):
    """Wire body for POST /api/events."""

    user_guid: str
    provider_id: str
    event_code: str
    event: str = Field(..., description="base64(JSON(payload))")

    @classmethod
    def wrap(cls, org_id: str, provider_id: str, event: OutboundEvent) -> "IngressEnvelope":
        payload = event.payload if event.payload is not None else {}
        return cls(
            user_guid=org_id,
            provider_id=provider_id,
            event_code=event.code,
            event=base64.b64encode(orjson.dumps(payload)).decode("ascii"),
        )


class EventProvider(BaseModel):
    id: Optional[str] = Field(default=None, description="Provider id (no spaces)")
    label: str = Field(..., min_length=1)
    grouping: str = Field(..., min_length=1)
    metadata: Optional[str] = Field(default=None)
    instance_id: Optional[str] = Field(default=None)

    @validator("id")
    def validate_id(cls, v: Optional[str]) -> Optional[str]:
        """Provider ids are used in URLs and must not contain whitespace."""
        if v is not None and any(ch.isspace() for ch in v):
            raise ValueError("provider id must not contain whitespace")
        return v


class EventType(BaseModel):
    provider: Optional[str] = Field(default=None)
    code: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    description: str = Field(default="")


class EventOfInterest(BaseModel):
    type: str = Field(..., min_length=1)
    provider_id: Optional[str] = Field(default=None)


class JournalRegistration(BaseModel):
    """Request to create a journal registration."""

    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    event_types: list[Union[str, EventOfInterest]] = Field(..., min_length=1)
    provider_id: Optional[str] = Field(default=None)
    consumer_id: Optional[str] = Field(default=None)
    application_id: Optional[str] = Field(default=None)
