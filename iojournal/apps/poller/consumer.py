"""
Journal Consumer - long-running journal polling service

Polls the configured journal and writes every event to stdout as one JSON
line. Polling errors are logged and polling continues from the journal
origin.

Features:
- Settings-driven poller (JOURNAL_URL, POLL_LATEST, POLL_INTERVAL_MS, POLL_RESTART_URL)
- One JSON line per event (orjson)
- Graceful shutdown on SIGINT/SIGTERM: the in-flight cycle finishes first
- Structured logging

Usage:
    python -m iojournal.apps.poller
"""

import asyncio
import logging
import signal
import sys
from typing import IO, Optional

import orjson

from iojournal.apps.client.journal import JournalClient
from iojournal.apps.poller.poller import ERROR, EVENT, JournalPoller
from iojournal.utils.config import Settings, settings
from iojournal.utils.errors import ConfigurationError
from iojournal.utils.logging import setup_logging
from iojournal.utils.schemas import JournalEvent, PollerOptions

logger = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class JournalConsumer:
    """
    Consumer that prints journal events until a shutdown is requested.

    Handles:
    - Client and poller lifecycle
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        client: JournalClient,
        config: Optional[Settings] = None,
        output: Optional[IO[str]] = None,
    ) -> None:
        """
        Initialize journal consumer.

        Args:
            client: Journal client
            config: Settings, defaults to the global settings
            output: Stream events are written to, defaults to stdout
        """
        self.client = client
        self.config = config or settings
        self.output = output or sys.stdout
        self.shutdown_event = asyncio.Event()
        self.poller: JournalPoller | None = None
        self._event_count = 0
        self._error_count = 0

        if not self.config.JOURNAL_URL:
            raise ConfigurationError("JOURNAL_URL is not configured")

    def handle_event(self, event: JournalEvent) -> None:
        """Write one event as a JSON line."""
        self.output.write(orjson.dumps(event.model_dump(exclude_none=True)).decode("utf-8") + "\n")
        self.output.flush()
        self._event_count += 1

    def handle_error(self, error: Exception) -> None:
        self._error_count += 1
        logger.error(
            "Journal polling error, continuing from origin",
            extra={"error": str(error), "error_type": type(error).__name__},
        )

    def handle_signal(self, signum: int) -> None:
        logger.info("Received signal, initiating graceful shutdown", extra={"signal": signal.Signals(signum).name})
        self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """
        Install SIGINT/SIGTERM handlers on the running event loop.

        A signal sets shutdown_event immediately, also while the poller sits
        in a long idle wait.
        """
        loop = asyncio.get_running_loop()
        for signum in _SHUTDOWN_SIGNALS:
            loop.add_signal_handler(signum, self.handle_signal, signum)

    def remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in _SHUTDOWN_SIGNALS:
            loop.remove_signal_handler(signum)

    async def start(self) -> None:
        """
        Start polling and run until a shutdown is requested.

        The poller is stopped (waiting for the current cycle) and the client
        closed before returning.
        """
        options = PollerOptions(
            restart_url=self.config.POLL_RESTART_URL,
            latest=self.config.POLL_LATEST,
            interval_ms=self.config.POLL_INTERVAL_MS,
        )

        self.poller = JournalPoller(
            self.client,
            self.config.JOURNAL_URL,
            options,
            default_interval_ms=self.config.DEFAULT_IDLE_INTERVAL_MS,
        )
        self.poller.on(EVENT, self.handle_event)
        self.poller.on(ERROR, self.handle_error)

        logger.info("Consumer started, waiting for events...")

        try:
            await self.shutdown_event.wait()
        finally:
            self.remove_signal_handlers()
            await self.poller.stop()
            await self.client.close()
            logger.info(
                "Consumer shutdown complete",
                extra={
                    "events": self._event_count,
                    "errors": self._error_count,
                    "restart_url": self.poller.current_url,
                },
            )


async def main() -> None:
    """Main entry point for the journal consumer."""
    setup_logging(level=settings.LOG_LEVEL, format_type=settings.LOG_FORMAT, output="stderr")

    try:
        consumer = JournalConsumer(JournalClient.from_settings())
        consumer.setup_signal_handlers()
        await consumer.start()
    except Exception as e:
        logger.error("Consumer failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
