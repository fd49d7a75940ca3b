"""
Journal Poller - continuous cursor-driven journal consumption

Reads a journal page by page and dispatches events to listeners:
- one asyncio task per poller, exactly one page fetch in flight
- events of a page are dispatched (in order) before the next page is requested
- empty pages back off (fixed interval, else Retry-After, else idle default)
- any failure notifies error listeners and restarts the cursor at the origin
- stop() never aborts a fetch; it waits for the running cycle to finish

Usage:
    poller = JournalPoller(client, settings.JOURNAL_URL, PollerOptions(latest=True))
    poller.on("event", handle_event)
    poller.on("error", handle_error)
    ...
    await poller.stop()
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from iojournal.apps.client.journal import JournalClient
from iojournal.utils.config import settings
from iojournal.utils.http import with_query_params
from iojournal.utils.schemas import JournalCursor, PollerOptions, PollerState

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]

POLL = "poll"
EVENT = "event"
ERROR = "error"
_KINDS = (POLL, EVENT, ERROR)


class JournalPoller:
    """
    Self-starting journal poller.

    Notifications:
    - "poll": before each cycle, no arguments
    - "event": once per journal event, with the JournalEvent
    - "error": once per failed cycle, with the exception

    Listeners may be plain callables or coroutine functions; coroutines are
    awaited one at a time so dispatch order is response order.
    """

    def __init__(
        self,
        client: JournalClient,
        journal_url: str,
        options: Optional[PollerOptions] = None,
        default_interval_ms: Optional[int] = None,
    ) -> None:
        """
        Create the poller and schedule its first cycle on the running loop.

        Args:
            client: Journal client used for page fetches
            journal_url: Absolute journal URL (the origin)
            options: restart_url / latest / interval_ms
            default_interval_ms: Idle interval when neither interval_ms nor
                Retry-After applies, defaults to settings.DEFAULT_IDLE_INTERVAL_MS

        Raises:
            RuntimeError: If called outside a running event loop
        """
        loop = asyncio.get_running_loop()

        self.options = options or PollerOptions()
        origin_url = with_query_params(journal_url, {"latest": self.options.latest})
        self._cursor = JournalCursor.start(origin_url, self.options.restart_url)
        self._client = client
        self._default_interval_ms = (
            default_interval_ms if default_interval_ms is not None else settings.DEFAULT_IDLE_INTERVAL_MS
        )

        self._listeners: dict[str, list[Listener]] = {kind: [] for kind in _KINDS}
        self._state = PollerState.IDLE
        self._stop_requested = False
        self._wake = asyncio.Event()
        self.last_delay_ms: Optional[int] = None
        self.cycles = 0

        logger.info(
            "Journal poller starting",
            extra={"origin_url": origin_url, "restart_url": self.options.restart_url},
        )
        self._task = loop.create_task(self._run())

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def current_url(self) -> str:
        return self._cursor.current_url

    @property
    def running(self) -> bool:
        """True until the polling task has exited."""
        return not self._task.done()

    # ------------------------------------------------------------------
    # Subscription

    def on(self, kind: str, listener: Listener) -> None:
        """Register a listener for "poll", "event" or "error"."""
        if kind not in self._listeners:
            raise ValueError(f"Unknown notification kind: {kind}")
        self._listeners[kind].append(listener)

    def off(self, kind: str, listener: Listener) -> None:
        """Remove a previously registered listener; unknown listeners are ignored."""
        if kind in self._listeners and listener in self._listeners[kind]:
            self._listeners[kind].remove(listener)

    async def _dispatch(self, kind: str, *args: Any) -> None:
        for listener in list(self._listeners[kind]):
            result = listener(*args)
            if inspect.isawaitable(result):
                await result

    async def _notify_error(self, error: Exception) -> None:
        for listener in list(self._listeners[ERROR]):
            try:
                result = listener(error)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error listener failed")

    # ------------------------------------------------------------------
    # Cancellation

    def request_stop(self) -> None:
        """
        Request a stop without waiting for it.

        Idle pollers stop immediately; a running cycle finishes first.
        Safe to call from listeners.
        """
        self._stop_requested = True
        self._wake.set()
        if self._state == PollerState.IDLE:
            self._state = PollerState.STOPPED
        elif self._state == PollerState.POLLING:
            self._state = PollerState.STOPPING

    async def stop(self) -> None:
        """
        Stop polling.

        Resolves once the in-flight cycle (if any) has completed and the
        polling task has exited; every concurrent caller waits on the same
        task. From inside a listener the stop is only requested, since the
        cycle cannot finish while its own listener waits for it.
        """
        self.request_stop()
        if asyncio.current_task() is self._task:
            return
        await asyncio.shield(self._task)

    # ------------------------------------------------------------------
    # Polling loop

    async def _run(self) -> None:
        try:
            while not self._stop_requested:
                self._state = PollerState.POLLING
                delay_ms = await self._poll_once()
                self.cycles += 1
                self.last_delay_ms = delay_ms
                if self._stop_requested:
                    break
                self._state = PollerState.IDLE
                await self._wait(delay_ms)
        finally:
            self._state = PollerState.STOPPED
            logger.info("Journal poller stopped", extra={"cycles": self.cycles})

    async def _wait(self, delay_ms: int) -> None:
        if delay_ms <= 0:
            # yield so stop() and other tasks get a turn between back-to-back pages
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=delay_ms / 1000.0)
        except asyncio.TimeoutError:
            pass

    async def _poll_once(self) -> int:
        """Run one cycle and return the delay before the next one (ms)."""
        url = self._cursor.current_url
        try:
            await self._dispatch(POLL)
            if self._stop_requested:
                return 0

            page = await self._client.fetch_journal_page(url)
            self._cursor.advance(page.next_url)
            for event in page.events:
                await self._dispatch(EVENT, event)

        except Exception as error:
            logger.warning(
                "Journal poll failed, restarting from origin",
                extra={"url": url, "origin_url": self._cursor.origin_url, "error": str(error)},
            )
            await self._notify_error(error)
            self._cursor.reset()
            return self._fixed_or_default_interval()

        logger.debug(
            "Journal poll complete",
            extra={"url": url, "next_url": page.next_url, "events": len(page.events)},
        )
        if page.events:
            return 0
        if self.options.interval_ms is not None:
            return self.options.interval_ms
        if page.retry_after_ms is not None:
            return max(0, page.retry_after_ms)
        return self._default_interval_ms

    def _fixed_or_default_interval(self) -> int:
        if self.options.interval_ms is not None:
            return self.options.interval_ms
        return self._default_interval_ms
