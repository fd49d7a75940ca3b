"""
Journal Client - HTTP collaborator for the event journal service

Wraps the journal service endpoints used by the poller and by producers:
- GET journal page (cursor fetch, decoded into a JournalPage)
- POST event to the ingress API (retries 204 and 5xx)
- Provider / event type / journal registration calls

All requests are built with build_request() and executed through the
RetryEngine so every call shares the same retry and error semantics.

Usage:
    from iojournal.apps.client import JournalClient

    async with JournalClient.from_settings() as client:
        page = await client.fetch_journal_page(settings.JOURNAL_URL)
        await client.send_event(OutboundEvent(code="asset_created", payload={"id": 1}))
"""

import logging
from typing import Any, Mapping, Optional

import httpx
import orjson
from pydantic import ValidationError

from iojournal.utils.config import Settings, settings
from iojournal.utils.errors import ConfigurationError, TerminalFailure
from iojournal.utils.headers import parse_link_header, parse_retry_after
from iojournal.utils.http import build_request, create_client, with_query_params
from iojournal.utils.retry import (
    RetryEngine,
    RetryOptions,
    resolve_retry_policy,
    retry_on_send_response,
)
from iojournal.utils.schemas import (
    EventProvider,
    EventType,
    IngressEnvelope,
    JournalEvent,
    JournalPage,
    JournalRegistration,
    OutboundEvent,
)

logger = logging.getLogger(__name__)


class Groups:
    """Known groups for event providers."""

    MARKETING_CLOUD = "Marketing Cloud"
    DOCUMENT_CLOUD = "Document Cloud"
    CREATIVE_CLOUD = "Creative Cloud"
    EXPERIENCE_PLATFORM = "Experience Platform"


class Metadata:
    """Known provider metadata ids."""

    ACS = "acs"
    AEM = "aem"
    ASSET_COMPUTE = "asset_compute"
    CCSTORAGE = "ccstorage"
    CLOUDMANAGER = "cloudmanager"
    PROFILE = "profile"
    STOCK = "stock"
    TRIGGERS = "triggers"
    XD = "xd"
    XD_ANNOTATIONS = "xd_annotations"
    AEP_STREAMING_SERVICES = "aep_streaming_services"
    GDPR_EVENTS = "gdpr_events"
    TEST = "test"


class JournalClient:
    """
    Client for the journal and ingress APIs of one technical account.

    Handles:
    - Authentication headers (bearer token, org id, api key)
    - Page decoding (events, Link next, Retry-After)
    - Retry policy selection per call
    """

    def __init__(
        self,
        org_id: str,
        access_token: str,
        client_id: str,
        http: Optional[httpx.AsyncClient] = None,
        retry_engine: Optional[RetryEngine] = None,
        config: Optional[Settings] = None,
    ) -> None:
        """
        Initialize journal client.

        Args:
            org_id: Organization id sent as x-ims-org-id
            access_token: Bearer token of the technical account
            client_id: Client id sent as x-api-key
            http: Shared AsyncClient; one is created (and owned) when omitted
            retry_engine: Retry engine, defaults to RetryEngine()
            config: Settings to read defaults and hosts from
        """
        if not org_id or not access_token:
            raise ConfigurationError("JournalClient requires an org id and an access token")

        self.org_id = org_id
        self.access_token = access_token
        self.client_id = client_id
        self.config = config or settings
        self._owns_http = http is None
        self.http = http or create_client(self.config.HTTP_TIMEOUT_MS)
        self.retry_engine = retry_engine or RetryEngine()

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None, **kwargs: Any) -> "JournalClient":
        """Build a client from IMS_ORG_ID / ACCESS_TOKEN / CLIENT_ID."""
        config = config or settings
        return cls(
            org_id=config.IMS_ORG_ID,
            access_token=config.ACCESS_TOKEN,
            client_id=config.CLIENT_ID,
            config=config,
            **kwargs,
        )

    async def __aenter__(self) -> "JournalClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http:
            await self.http.aclose()

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "x-ims-org-id": self.org_id,
        }
        if self.client_id:
            headers["x-api-key"] = self.client_id
        headers.update(extra)
        return headers

    async def _execute(
        self,
        method: str,
        url: str,
        retry: RetryOptions,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        retry_on_response: Any = None,
    ) -> httpx.Response:
        request = build_request(method, url, headers or self._headers(), body, client=self.http)
        policy = resolve_retry_policy(retry, retry_on_response)

        async def send() -> httpx.Response:
            return await self.http.send(request)

        return await self.retry_engine.execute(send, policy, url=url)

    # ------------------------------------------------------------------
    # Journal

    async def fetch_journal_page(
        self,
        journal_url: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> JournalPage:
        """
        Fetch and decode one journal page.

        Journal reads are never retried here: the poller is the retry loop.

        Args:
            journal_url: Absolute URL of the page (the cursor)
            options: Extra query params (latest, seek, limit); falsy values are dropped

        Returns:
            JournalPage with events in response order, the next link and Retry-After

        Raises:
            NetworkFailure: No response received
            TransientFailure: 5xx response
            TerminalFailure: Any other non 200/204 status, or a malformed page
        """
        url = with_query_params(journal_url, options or {})
        response = await self._execute("GET", url, retry=False)

        status = response.status_code
        if status not in (200, 204):
            raise TerminalFailure(status, f"get journal events failed: {response.reason_phrase}", url=url)

        events: list[JournalEvent] = []
        if status == 200 and response.content:
            events = self._decode_events(response, url)

        links = parse_link_header(journal_url, response.headers.get("link"))
        next_url = links.get("next")
        if not next_url:
            raise TerminalFailure(status, "journal page has no next link", url=url)

        retry_after_ms: Optional[int] = None
        retry_after = response.headers.get("retry-after")
        if retry_after:
            try:
                retry_after_ms = parse_retry_after(retry_after)
            except ValueError:
                logger.warning("Ignoring invalid Retry-After header (url=%s): %r", url, retry_after)

        logger.debug(
            "Journal page fetched",
            extra={"url": url, "status": status, "events": len(events), "retry_after_ms": retry_after_ms},
        )
        return JournalPage(events=events, next_url=next_url, retry_after_ms=retry_after_ms)

    @staticmethod
    def _decode_events(response: httpx.Response, url: str) -> list[JournalEvent]:
        try:
            body = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise TerminalFailure(response.status_code, f"malformed journal page: {e}", url=url) from e

        if not isinstance(body, dict):
            raise TerminalFailure(response.status_code, "malformed journal page: expected an object", url=url)

        raw_events = body.get("events") or []
        if not isinstance(raw_events, list):
            raise TerminalFailure(response.status_code, "malformed journal page: events is not a list", url=url)

        try:
            return [JournalEvent.model_validate(raw) for raw in raw_events]
        except ValidationError as e:
            raise TerminalFailure(response.status_code, f"malformed journal event: {e}", url=url) from e

    # ------------------------------------------------------------------
    # Ingress

    async def send_event(self, event: OutboundEvent, retry: RetryOptions = True) -> None:
        """
        Publish an event through the ingress API.

        HTTP 204 means the event was accepted without any registration
        interested in it yet (e.g. a journal still being created); the event
        is lost, so it is retried like a 5xx unless the caller supplies its
        own policy.

        Args:
            event: Event to send
            retry: Retry options, False for a single attempt

        Raises:
            ConfigurationError: No provider id on the event nor in settings
            TransientFailure: 204 / 5xx persisted until retries ran out
            TerminalFailure: Any other status than 200
        """
        provider_id = event.provider or self.config.PROVIDER_ID
        if not provider_id:
            raise ConfigurationError("send_event requires event.provider or PROVIDER_ID")

        url = f"{self.config.ingress_host}/api/events"
        envelope = IngressEnvelope.wrap(self.org_id, provider_id, event)
        response = await self._execute(
            "POST",
            url,
            retry=retry,
            body=envelope,
            retry_on_response=retry_on_send_response,
        )

        if response.status_code != 200:
            logger.error(
                "Sending event failed",
                extra={"url": url, "status": response.status_code, "event_code": event.code},
            )
            raise TerminalFailure(
                response.status_code, f"sending event failed: {response.reason_phrase}", url=url
            )

        logger.info("Event sent", extra={"provider_id": provider_id, "event_code": event.code})

    # ------------------------------------------------------------------
    # Registration

    async def register_event_provider(self, provider: EventProvider, retry: RetryOptions = True) -> Any:
        """Register a new event provider or update an existing one."""
        url = f"{self.config.csm_host}/csm/events/provider"
        body = {
            "provider": provider.id or self.config.PROVIDER_ID,
            "grouping": provider.grouping,
            "label": provider.label,
            "provider_metadata": provider.metadata,
            "instance_id": provider.instance_id,
        }
        response = await self._execute("POST", url, retry=retry, body={k: v for k, v in body.items() if v is not None})
        return self._json_or_raise(response, url)

    async def delete_event_provider(self, provider_id: str, retry: RetryOptions = True) -> None:
        """Delete an event provider."""
        url = f"{self.config.csm_host}/csm/events/provider/{provider_id}"
        response = await self._execute("DELETE", url, retry=retry)
        self._json_or_raise(response, url)

    async def register_event_type(self, event_type: EventType, retry: RetryOptions = True) -> Any:
        """Register a new event type or update an existing one."""
        url = f"{self.config.csm_host}/csm/events/metadata"
        body = {
            "provider": event_type.provider or self.config.PROVIDER_ID,
            "event_code": event_type.code,
            "label": event_type.label,
            "description": event_type.description,
        }
        response = await self._execute("POST", url, retry=retry, body=body)
        return self._json_or_raise(response, url)

    async def create_journal(self, journal: JournalRegistration, retry: RetryOptions = True) -> Any:
        """
        Create a journal registration for the given event types.

        Args:
            journal: Registration request; ids fall back to settings
            retry: Retry options

        Returns:
            Decoded registration response (contains the journal URL)

        Raises:
            ConfigurationError: Consumer or application id missing
        """
        consumer_id = journal.consumer_id or self.config.CONSUMER_ID
        application_id = journal.application_id or self.config.APPLICATION_ID
        if not consumer_id or not application_id:
            raise ConfigurationError("create_journal requires consumer_id and application_id")

        default_provider = journal.provider_id or self.config.PROVIDER_ID
        events_of_interest = []
        for event_type in journal.event_types:
            if isinstance(event_type, str):
                events_of_interest.append({"event_code": event_type, "provider": default_provider})
            else:
                events_of_interest.append(
                    {"event_code": event_type.type, "provider": event_type.provider_id or default_provider}
                )

        url = (
            f"{self.config.io_api_host}/events/organizations/{consumer_id}"
            f"/integrations/{application_id}/registrations"
        )
        body = {
            "client_id": self.client_id,
            "name": journal.name,
            "description": journal.description,
            "events_of_interest": events_of_interest,
            "delivery_type": "JOURNAL",
        }
        response = await self._execute("POST", url, retry=retry, body=body)
        return self._json_or_raise(response, url)

    async def delete_journal(self, registration_id: str, retry: RetryOptions = True) -> None:
        """
        Delete a journal or webhook registration.

        Raises:
            ConfigurationError: DELETE_JOURNAL_API_KEY is not configured
        """
        api_key = self.config.DELETE_JOURNAL_API_KEY
        if not api_key:
            raise ConfigurationError("delete_journal requires DELETE_JOURNAL_API_KEY")

        url = f"{self.config.csm_host}/csm/webhooks/{self.client_id}/{registration_id}"
        headers = self._headers(**{"x-api-key": api_key})
        if self.config.CONSUMER_ID:
            headers["x-ams-consumer-id"] = self.config.CONSUMER_ID
        if self.config.APPLICATION_ID:
            headers["x-ams-application-id"] = self.config.APPLICATION_ID
        response = await self._execute("DELETE", url, retry=retry, headers=headers)
        self._json_or_raise(response, url)

    @staticmethod
    def _json_or_raise(response: httpx.Response, url: str) -> Any:
        if not response.is_success:
            raise TerminalFailure(response.status_code, response.reason_phrase, url=url)
        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError:
            return response.text
