import asyncio

import httpx
import pytest

from iojournal.apps.poller.poller import ERROR, EVENT, POLL, JournalPoller
from iojournal.utils.errors import TerminalFailure, TransientFailure
from iojournal.utils.schemas import PollerOptions, PollerState
from tests.conftest import JOURNAL_URL, copy_response, page_response


async def wait_until(condition, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def since(request):
    return request.url.params.get("since")


class Journal:
    """Scripted journal keyed by the `since` cursor; unknown cursors serve an empty page."""

    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        page = self.pages.get(since(request))
        if callable(page):
            return page(request)
        if page is None:
            return page_response(None, next_since=since(request) or "tail")
        return copy_response(page)


@pytest.mark.asyncio
async def test_events_dispatched_in_order_across_pages(make_client):
    journal = Journal(
        {
            None: page_response([{"id": 1}, {"id": 2}], "p2"),
            "p2": page_response([{"id": 3}], "p3"),
        }
    )
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)
    received = []
    polls = []
    poller.on(EVENT, lambda event: received.append(event.id))
    poller.on(POLL, lambda: polls.append(poller.current_url))

    await wait_until(lambda: len(received) == 3)
    await poller.stop()

    assert received == [1, 2, 3]
    assert [since(r) for r in journal.requests[:3]] == [None, "p2", "p3"]
    assert polls[0] == JOURNAL_URL
    assert poller.state is PollerState.STOPPED


@pytest.mark.asyncio
async def test_async_listeners_are_awaited_before_next_page(make_client):
    journal = Journal(
        {
            None: page_response([{"id": 1}], "p2"),
            "p2": page_response([{"id": 2}], "p3"),
        }
    )
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)
    seen = []

    async def slow_listener(event):
        await asyncio.sleep(0.01)
        seen.append((event.id, len(journal.requests)))

    poller.on(EVENT, slow_listener)
    await wait_until(lambda: len(seen) == 2)
    await poller.stop()

    assert seen == [(1, 1), (2, 2)]


@pytest.mark.asyncio
async def test_concurrent_stop_waits_for_in_flight_cycle(make_client):
    entered = asyncio.Event()
    release = asyncio.Event()
    requests = []

    async def handler(request):
        requests.append(request)
        entered.set()
        await release.wait()
        return page_response([{"id": 1}], "p2")

    poller = JournalPoller(make_client(handler), JOURNAL_URL, default_interval_ms=10)
    received = []
    polls = []
    poller.on(EVENT, lambda event: received.append(event.id))
    poller.on(POLL, lambda: polls.append(poller.current_url))
    await asyncio.wait_for(entered.wait(), 1)

    stops = [asyncio.ensure_future(poller.stop()) for _ in range(2)]
    await asyncio.sleep(0.01)
    assert poller.state is PollerState.STOPPING
    assert not any(stop.done() for stop in stops)

    release.set()
    await asyncio.wait_for(asyncio.gather(*stops), 1)

    assert poller.state is PollerState.STOPPED
    assert not poller.running
    assert received == [1]
    assert len(requests) == 1
    polls_at_stop = len(polls)
    assert polls_at_stop == 1

    await asyncio.sleep(0.05)
    await poller.stop()
    assert len(polls) == polls_at_stop
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_stop_while_idle_is_immediate(make_client):
    journal = Journal({None: page_response(None, "p1", retry_after="60")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)

    await wait_until(lambda: poller.cycles == 1)
    assert poller.state is PollerState.IDLE

    await asyncio.wait_for(poller.stop(), 0.5)

    assert poller.state is PollerState.STOPPED
    assert not poller.running
    assert len(journal.requests) == 1


@pytest.mark.asyncio
async def test_stop_before_first_cycle_makes_no_request(make_client):
    journal = Journal({})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)

    await poller.stop()

    assert not poller.running
    assert poller.state is PollerState.STOPPED
    assert journal.requests == []


@pytest.mark.asyncio
async def test_stop_from_event_listener(make_client):
    journal = Journal({None: page_response([{"id": 1}, {"id": 2}], "p2")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)
    received = []

    async def on_event(event):
        received.append(event.id)
        await poller.stop()

    poller.on(EVENT, on_event)
    await wait_until(lambda: poller.state is PollerState.STOPPED)

    # the running cycle completes, no further page is requested
    assert received == [1, 2]
    assert len(journal.requests) == 1


@pytest.mark.asyncio
async def test_failure_restarts_from_origin(make_client):
    pages = {
        None: page_response([{"id": 1}], "p2"),
        "p2": page_response([{"id": 2}], "p3"),
        "p3": page_response([{"id": 3}], "p4"),
        "p4": page_response([{"id": 4}], "p5"),
        "p5": httpx.Response(500),
    }
    journal = Journal(pages)
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)
    received = []
    errors = []
    poller.on(EVENT, lambda event: received.append(event.id))
    poller.on(ERROR, errors.append)

    def origin_serves_empty_page_after_failure(request):
        return page_response(None, "tail")

    await wait_until(lambda: len(journal.requests) >= 5)
    pages[None] = origin_serves_empty_page_after_failure
    await wait_until(lambda: len(journal.requests) >= 6)
    await poller.stop()

    assert received == [1, 2, 3, 4]
    assert len(errors) == 1
    assert isinstance(errors[0], TransientFailure)
    assert since(journal.requests[4]) == "p5"
    assert str(journal.requests[5].url) == JOURNAL_URL


@pytest.mark.asyncio
async def test_error_listener_receives_terminal_failure_and_waits_interval(make_client):
    journal = Journal({None: httpx.Response(403)})
    options = PollerOptions(interval_ms=25)
    poller = JournalPoller(make_client(journal), JOURNAL_URL, options, default_interval_ms=10)
    errors = []
    poller.on(ERROR, errors.append)

    await wait_until(lambda: poller.cycles == 1)
    await poller.stop()

    assert isinstance(errors[0], TerminalFailure)
    assert errors[0].status == 403
    assert poller.last_delay_ms == 25


@pytest.mark.asyncio
async def test_empty_page_honours_retry_after(make_client):
    journal = Journal({None: page_response(None, "p1", retry_after="5")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)

    await wait_until(lambda: poller.cycles == 1)
    await asyncio.sleep(0.05)

    assert poller.last_delay_ms == 5000
    assert len(journal.requests) == 1
    await poller.stop()


@pytest.mark.asyncio
async def test_fixed_interval_overrides_retry_after(make_client):
    journal = Journal({None: page_response(None, "p1", retry_after="5")})
    poller = JournalPoller(
        make_client(journal), JOURNAL_URL, PollerOptions(interval_ms=20), default_interval_ms=10
    )

    await wait_until(lambda: len(journal.requests) >= 2)
    await poller.stop()

    assert poller.last_delay_ms == 20
    assert since(journal.requests[1]) == "p1"


@pytest.mark.asyncio
async def test_empty_page_without_hint_uses_default_interval(make_client):
    journal = Journal({None: page_response(None, "p1")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=15)

    await wait_until(lambda: poller.cycles == 1)
    await poller.stop()

    assert poller.last_delay_ms == 15


@pytest.mark.asyncio
async def test_non_empty_page_polls_again_immediately(make_client):
    journal = Journal({None: page_response([{"id": 1}], "p2")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=1000)

    await wait_until(lambda: len(journal.requests) >= 2, timeout=0.5)
    await poller.stop()

    assert since(journal.requests[1]) == "p2"


@pytest.mark.asyncio
async def test_latest_and_restart_url(make_client):
    restart_url = f"{JOURNAL_URL}?since=saved"
    journal = Journal({"saved": httpx.Response(500)})
    options = PollerOptions(latest=True, restart_url=restart_url)
    poller = JournalPoller(make_client(journal), JOURNAL_URL, options, default_interval_ms=10)

    await wait_until(lambda: len(journal.requests) >= 2)
    await poller.stop()

    assert str(journal.requests[0].url) == restart_url
    assert journal.requests[1].url.params["latest"] == "true"
    assert since(journal.requests[1]) is None


@pytest.mark.asyncio
async def test_listener_exception_takes_error_path(make_client):
    journal = Journal({None: page_response([{"id": 1}], "p2")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)
    errors = []

    def broken_listener(event):
        raise RuntimeError("listener failed")

    poller.on(EVENT, broken_listener)
    poller.on(ERROR, errors.append)

    await wait_until(lambda: len(errors) >= 1)
    await poller.stop()

    assert isinstance(errors[0], RuntimeError)
    assert poller.current_url == JOURNAL_URL


@pytest.mark.asyncio
async def test_off_and_unknown_kind(make_client):
    journal = Journal({None: page_response([{"id": 1}], "p2")})
    poller = JournalPoller(make_client(journal), JOURNAL_URL, default_interval_ms=10)
    received = []

    def listener(event):
        received.append(event.id)

    poller.on(EVENT, listener)
    poller.off(EVENT, listener)
    poller.off(EVENT, listener)
    with pytest.raises(ValueError):
        poller.on("message", listener)

    await wait_until(lambda: poller.cycles >= 1)
    await poller.stop()

    assert received == []


def test_poller_requires_running_loop(make_client):
    with pytest.raises(RuntimeError):
        JournalPoller(make_client(Journal({})), JOURNAL_URL)
