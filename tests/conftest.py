"""Shared fixtures: test settings and a JournalClient backed by httpx.MockTransport."""

from typing import Any, Callable, Optional

import httpx
import pytest

from iojournal.apps.client.journal import JournalClient
from iojournal.utils.config import Settings
from iojournal.utils.retry import RetryEngine

JOURNAL_URL = "https://journal.test/events/organizations/org/integrations/app/reg"


def page_response(
    events: Optional[list] = None,
    next_since: Optional[str] = "next",
    retry_after: Optional[str] = None,
    status: Optional[int] = None,
) -> httpx.Response:
    """Build a journal page response; events=None gives an empty 204 page."""
    headers = {}
    if next_since is not None:
        headers["link"] = f'</events/organizations/org/integrations/app/reg?since={next_since}>; rel="next"'
    if retry_after is not None:
        headers["retry-after"] = retry_after

    if events is None:
        return httpx.Response(status or 204, headers=headers)
    return httpx.Response(status or 200, headers=headers, json={"events": events})


def copy_response(response: httpx.Response) -> httpx.Response:
    """Fresh copy of a scripted response, so one script entry can be served repeatedly."""
    return httpx.Response(response.status_code, headers=response.headers, content=response.content)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        IMS_ORG_ID="org@AdobeOrg",
        ACCESS_TOKEN="token",
        CLIENT_ID="client-id",
        PROVIDER_ID="provider-1",
        CONSUMER_ID="consumer-1",
        APPLICATION_ID="app-1",
        JOURNAL_URL=JOURNAL_URL,
        DEFAULT_IDLE_INTERVAL_MS=10,
        RETRY_MAX_ELAPSED_MS=1000,
        RETRY_INITIAL_DELAY_MS=1,
    )


@pytest.fixture
def make_client(test_settings: Settings) -> Callable[..., JournalClient]:
    """Factory: make_client(handler, sleep=...) -> JournalClient."""

    def factory(handler: Callable[[httpx.Request], Any], sleep: Any = None) -> JournalClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        engine = RetryEngine(sleep=sleep) if sleep is not None else RetryEngine()
        return JournalClient(
            org_id=test_settings.IMS_ORG_ID,
            access_token=test_settings.ACCESS_TOKEN,
            client_id=test_settings.CLIENT_ID,
            http=http,
            retry_engine=engine,
            config=test_settings,
        )

    return factory
